"""Document boundary detection and perspective correction."""

from .detector import Detection, DocumentDetector, default_corners, order_points
from .transformer import PerspectiveTransformer

__all__ = [
    "Detection",
    "DocumentDetector",
    "PerspectiveTransformer",
    "default_corners",
    "order_points",
]
