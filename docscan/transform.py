"""Mapping between image space and the scaled display surface."""

from typing import Sequence, Tuple

from .geometry import Point, clamp, fit_scale


class CoordinateTransform:
    """Scale-to-fit transform for a single render pass.

    The display surface never upscales past native resolution. Display to
    image conversion clamps into the image bounds so pointer input outside
    the picture cannot produce out-of-bounds corners.
    """

    def __init__(
        self,
        image_width: float,
        image_height: float,
        max_width: float,
        max_height: float,
    ):
        self.image_width = image_width
        self.image_height = image_height
        self.scale = fit_scale(image_width, image_height, max_width, max_height)

    @property
    def display_width(self) -> float:
        return self.image_width * self.scale

    @property
    def display_height(self) -> float:
        return self.image_height * self.scale

    @property
    def display_size(self) -> Tuple[int, int]:
        """Integer pixel size of the surface (fractions are truncated)."""
        return max(1, int(self.display_width)), max(1, int(self.display_height))

    def to_display(self, point: Sequence[float]) -> Point:
        return Point(point[0] * self.scale, point[1] * self.scale)

    def to_image(self, point: Sequence[float]) -> Point:
        x = point[0] / self.scale
        y = point[1] / self.scale
        return Point(
            clamp(x, 0.0, float(self.image_width)),
            clamp(y, 0.0, float(self.image_height)),
        )

    def __repr__(self) -> str:
        return (
            f"CoordinateTransform({self.image_width}x{self.image_height}, "
            f"scale={self.scale:.4f})"
        )
