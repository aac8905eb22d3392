"""Pure geometry helpers shared by the editor and the renderer."""

import math
from typing import Iterable, List, NamedTuple, Sequence, Tuple


class Point(NamedTuple):
    """A 2D point. Image space unless explicitly scaled for display."""

    x: float
    y: float


# Ordered corners 0..3; the order is the detector's winding and is preserved
# all the way to the finalize call.
Quadrilateral = Tuple[Point, ...]


class BoundingBox(NamedTuple):
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def is_degenerate(self) -> bool:
        return self.width <= 0 or self.height <= 0


def fit_scale(width: float, height: float, max_width: float, max_height: float) -> float:
    """Largest scale that fits (width, height) into the box, never above 1.

    Args:
        width: Natural width of the content.
        height: Natural height of the content.
        max_width: Width of the target box.
        max_height: Height of the target box.

    Returns:
        min(max_width / width, max_height / height, 1)
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Content size must be positive, got {width}x{height}")
    if max_width <= 0 or max_height <= 0:
        raise ValueError(f"Target box must be positive, got {max_width}x{max_height}")
    return min(max_width / width, max_height / height, 1.0)


def distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Euclidean distance between two points."""
    return math.hypot(a[0] - b[0], a[1] - b[1])


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(value, upper))


def bounding_box(points: Iterable[Sequence[float]]) -> BoundingBox:
    """Axis-aligned bounding box of a non-empty point set."""
    points = list(points)
    if not points:
        raise ValueError("Cannot compute the bounding box of no points")
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return BoundingBox(min(xs), min(ys), max(xs), max(ys))


def clip_path(
    points: Iterable[Sequence[float]],
    origin: Tuple[float, float] = (0.0, 0.0),
    scale: float = 1.0,
) -> List[Tuple[float, float]]:
    """Polygon vertices translated to a local origin and scaled.

    Used to build the clip region for both render passes: the boundary pass
    scales around (0, 0), the crop preview translates to the bounding box
    corner first.
    """
    ox, oy = origin
    return [((p[0] - ox) * scale, (p[1] - oy) * scale) for p in points]


def to_quadrilateral(corners: Iterable[Sequence[float]]) -> Quadrilateral:
    """Convert a raw ``[[x, y], ...]`` corner list into a Quadrilateral."""
    quad = tuple(Point(float(c[0]), float(c[1])) for c in corners)
    if len(quad) != 4:
        raise ValueError(f"Expected exactly 4 corners, got {len(quad)}")
    return quad


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def to_submission(quad: Sequence[Point]) -> List[List[int]]:
    """Integer image-space corners in the original index order."""
    if len(quad) != 4:
        raise ValueError(f"Expected exactly 4 corners, got {len(quad)}")
    return [[_round_half_up(p.x), _round_half_up(p.y)] for p in quad]
