"""Perspective correction of a document to a flat rectangle."""

from typing import Optional, Tuple

import cv2
import numpy as np

from .detector import order_points


class PerspectiveTransformer:
    """Warps the quadrilateral given by 4 corners to an upright rectangle.

    The output keeps the page proportions measured along its edges.
    """

    def __init__(self, interpolation: int = cv2.INTER_CUBIC):
        self.interpolation = interpolation

    def compute_output_dimensions(self, pts: np.ndarray) -> Tuple[int, int]:
        """Output (width, height) from the longest opposite edges.

        Args:
            pts: Array of 4 corner points in any order.
        """
        tl, tr, br, bl = order_points(pts)

        width = max(np.linalg.norm(tr - tl), np.linalg.norm(br - bl))
        height = max(np.linalg.norm(bl - tl), np.linalg.norm(br - tr))

        return max(int(round(width)), 1), max(int(round(height)), 1)

    def transform(
        self,
        image: np.ndarray,
        pts: np.ndarray,
        output_size: Optional[Tuple[int, int]] = None,
    ) -> np.ndarray:
        """Extract and flatten the document.

        Args:
            image: Source image in BGR format.
            pts: 4 corner points in image pixels.
            output_size: Optional (width, height); computed when omitted.

        Returns:
            The perspective-corrected document.
        """
        src = order_points(pts)
        if output_size is None:
            width, height = self.compute_output_dimensions(src)
        else:
            width, height = max(output_size[0], 1), max(output_size[1], 1)

        dst = np.array([
            [0, 0],
            [width - 1, 0],
            [width - 1, height - 1],
            [0, height - 1],
        ], dtype=np.float32)

        matrix = cv2.getPerspectiveTransform(src, dst)
        return cv2.warpPerspective(
            image, matrix, (width, height),
            flags=self.interpolation,
            borderMode=cv2.BORDER_REPLICATE,
        )
