"""Document boundary detection using several edge strategies."""

import logging
from typing import List, NamedTuple, Optional, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class Detection(NamedTuple):
    """Best quadrilateral found in an image."""

    corners: np.ndarray  # 4x2 float32, ordered TL, TR, BR, BL
    confidence: float
    method: str


class DocumentDetector:
    """Detects page boundaries on a contrasting background.

    Runs Canny at several thresholds, adaptive thresholding, background
    colour separation and a gradient-magnitude pass, then keeps the
    quadrilateral that looks most like a sheet of paper.
    """

    # Common paper formats (long side / short side)
    PAPER_ASPECT_RATIOS = {
        "iso-a": 1.414,   # A3, A4, A5
        "letter": 1.294,
        "legal": 1.647,
        "id-card": 1.586,
        "square": 1.0,
    }

    def __init__(
        self,
        min_area_ratio: float = 0.1,
        max_area_ratio: float = 0.98,
        contour_epsilon: float = 0.02,
        max_dimension: int = 1500,
    ):
        """Initialize the detector.

        Args:
            min_area_ratio: Minimum contour area as ratio of image area.
            max_area_ratio: Maximum contour area as ratio of image area.
            contour_epsilon: Epsilon factor for contour approximation.
            max_dimension: Larger images are downscaled to this size first.
        """
        self.min_area_ratio = min_area_ratio
        self.max_area_ratio = max_area_ratio
        self.contour_epsilon = contour_epsilon
        self.max_dimension = max_dimension

    def detect(self, image: np.ndarray) -> Optional[Detection]:
        """Find the document boundary.

        Args:
            image: Input image in BGR format.

        Returns:
            The best detection in full-resolution coordinates, or None.
        """
        scale = 1.0
        h, w = image.shape[:2]
        if max(h, w) > self.max_dimension:
            scale = self.max_dimension / max(h, w)
            proc_image = cv2.resize(image, None, fx=scale, fy=scale, interpolation=cv2.INTER_AREA)
        else:
            proc_image = image

        candidates: List[Tuple[str, np.ndarray]] = []

        for low, high in [(30, 100), (50, 150), (75, 200)]:
            quad = self._detect_canny(proc_image, low, high)
            if quad is not None:
                candidates.append(("canny", quad))

        for method, finder in [
            ("adaptive", self._detect_adaptive_threshold),
            ("background", self._detect_background_separation),
            ("gradient", self._detect_gradient),
        ]:
            quad = finder(proc_image)
            if quad is not None:
                candidates.append((method, quad))

        if not candidates:
            logger.debug("No quadrilateral candidates in %dx%d image", w, h)
            return None

        image_area = proc_image.shape[0] * proc_image.shape[1]
        scored = [
            (self._score_quadrilateral(quad, image_area), method, quad)
            for method, quad in candidates
        ]
        scored.sort(key=lambda x: x[0], reverse=True)
        score, method, best = scored[0]

        if scale != 1.0:
            best = best / scale

        corners = order_points(best)
        corners[:, 0] = np.clip(corners[:, 0], 0, w)
        corners[:, 1] = np.clip(corners[:, 1], 0, h)
        return Detection(corners.astype(np.float32), float(np.clip(score, 0.0, 1.0)), method)

    def _detect_canny(self, image: np.ndarray, low: int, high: int) -> Optional[np.ndarray]:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

        # Bilateral filter keeps paper edges sharp while flattening print
        filtered = cv2.bilateralFilter(gray, 9, 75, 75)
        clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
        enhanced = clahe.apply(filtered)

        edges = cv2.Canny(enhanced, low, high)
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (5, 5))
        edges = cv2.dilate(edges, kernel, iterations=2)
        edges = cv2.erode(edges, kernel, iterations=1)

        return self._find_best_quadrilateral(image, edges)

    def _detect_adaptive_threshold(self, image: np.ndarray) -> Optional[np.ndarray]:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        blurred = cv2.GaussianBlur(gray, (5, 5), 0)
        thresh = cv2.adaptiveThreshold(
            blurred, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 11, 2
        )

        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (5, 5))
        thresh = cv2.morphologyEx(thresh, cv2.MORPH_CLOSE, kernel)
        thresh = cv2.morphologyEx(thresh, cv2.MORPH_OPEN, kernel)
        edges = cv2.Canny(thresh, 50, 150)

        return self._find_best_quadrilateral(image, edges)

    def _detect_background_separation(self, image: np.ndarray) -> Optional[np.ndarray]:
        """Separate the page from the background sampled along the borders."""
        lab = cv2.cvtColor(image, cv2.COLOR_BGR2LAB)
        lightness = lab[:, :, 0]

        border = max(2, min(20, min(image.shape[:2]) // 10))
        samples = np.concatenate([
            lightness[:border, :].ravel(),
            lightness[-border:, :].ravel(),
            lightness[:, :border].ravel(),
            lightness[:, -border:].ravel(),
        ])
        bg_mean = float(np.mean(samples))
        bg_std = float(np.std(samples))

        diff = np.abs(lightness.astype(np.float32) - bg_mean)
        mask = (diff > max(bg_std * 1.5, 10.0)).astype(np.uint8) * 255

        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (7, 7))
        mask = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, kernel)
        mask = cv2.morphologyEx(mask, cv2.MORPH_OPEN, kernel)
        edges = cv2.Canny(mask, 50, 150)
        edges = cv2.dilate(edges, kernel, iterations=1)

        return self._find_best_quadrilateral(image, edges)

    def _detect_gradient(self, image: np.ndarray) -> Optional[np.ndarray]:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        sobelx = cv2.Sobel(gray, cv2.CV_64F, 1, 0, ksize=3)
        sobely = cv2.Sobel(gray, cv2.CV_64F, 0, 1, ksize=3)
        magnitude = np.sqrt(sobelx ** 2 + sobely ** 2)
        peak = magnitude.max()
        if peak <= 0:
            return None
        magnitude = (magnitude / peak * 255).astype(np.uint8)

        _, edges = cv2.threshold(magnitude, 30, 255, cv2.THRESH_BINARY)
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (5, 5))
        edges = cv2.morphologyEx(edges, cv2.MORPH_CLOSE, kernel)

        return self._find_best_quadrilateral(image, edges)

    def _find_best_quadrilateral(self, image: np.ndarray, edges: np.ndarray) -> Optional[np.ndarray]:
        contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        if not contours:
            return None

        image_area = image.shape[0] * image.shape[1]
        min_area = image_area * self.min_area_ratio
        max_area = image_area * self.max_area_ratio

        candidates = []
        for contour in contours:
            area = cv2.contourArea(contour)
            if area < min_area or area > max_area:
                continue

            perimeter = cv2.arcLength(contour, True)
            epsilon = self.contour_epsilon * perimeter
            for eps_mult in [0.5, 1.0, 1.5, 2.0]:
                approx = cv2.approxPolyDP(contour, epsilon * eps_mult, True)
                if len(approx) == 4:
                    quad = approx.reshape(4, 2).astype(np.float32)
                    candidates.append((self._score_quadrilateral(quad, image_area), quad))
                    break

        if not candidates:
            return None

        candidates.sort(key=lambda x: x[0], reverse=True)
        return candidates[0][1]

    def _score_quadrilateral(self, quad: np.ndarray, image_area: float) -> float:
        """Score in [0, 1] for how much ``quad`` looks like a document page."""
        points = quad.reshape(4, 2).astype(np.float32)
        area = cv2.contourArea(points)
        if area <= 0:
            return 0.0

        # Documents usually fill a large share of the frame
        area_ratio = area / image_area
        area_score = min(1.0, area_ratio / 0.5)

        hull = cv2.convexHull(points)
        hull_area = cv2.contourArea(hull)
        convexity = area / hull_area if hull_area > 0 else 0.0

        rect = cv2.minAreaRect(points)
        w, h = rect[1]
        if w == 0 or h == 0:
            return 0.0
        rectangularity = area / (w * h)
        aspect_score = self._aspect_ratio_score(max(w, h) / min(w, h))

        score = (
            area_score * 0.3
            + convexity * 0.2
            + rectangularity * 0.3
            + aspect_score * 0.2
        )
        return float(min(1.0, max(0.0, score)))

    def _aspect_ratio_score(self, aspect: float) -> float:
        best = 0.0
        for target in self.PAPER_ASPECT_RATIOS.values():
            best = max(best, 1.0 - abs(aspect - target) / 0.5)
        return max(0.0, best)


def order_points(pts: np.ndarray) -> np.ndarray:
    """Order 4 points as top-left, top-right, bottom-right, bottom-left."""
    pts = np.asarray(pts, dtype=np.float32).reshape(4, 2)
    ordered = np.zeros((4, 2), dtype=np.float32)

    # Sum: smallest is top-left, largest is bottom-right
    s = pts.sum(axis=1)
    ordered[0] = pts[np.argmin(s)]
    ordered[2] = pts[np.argmax(s)]

    # Difference (y - x): smallest is top-right, largest is bottom-left
    d = np.diff(pts, axis=1).flatten()
    ordered[1] = pts[np.argmin(d)]
    ordered[3] = pts[np.argmax(d)]

    return ordered


def default_corners(width: int, height: int, margin: float = 0.05) -> np.ndarray:
    """Full-frame rectangle inset by ``margin`` of each dimension."""
    mx = width * margin
    my = height * margin
    return np.array([
        [mx, my],
        [width - mx, my],
        [width - mx, height - my],
        [mx, height - my],
    ], dtype=np.float32)
