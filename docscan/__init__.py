"""Document boundary editing and per-item processing workflow."""

from .collaborators import (
    Credentials,
    DocumentPage,
    SavedDocument,
    StoredUrls,
    UploadedFile,
)
from .editor import COMPACT_PICK_RADIUS, PICK_RADIUS, BoundaryEditor
from .errors import (
    AuthError,
    DetectionError,
    DocScanError,
    FinalizeError,
    InvalidTransitionError,
    OperationInProgressError,
    UploadError,
    ValidationError,
)
from .geometry import Point, Quadrilateral, to_quadrilateral, to_submission
from .lifecycle import DetectionResult, FinalizeResult, Item, ItemStatus
from .orchestrator import Orchestrator
from .renderer import (
    COMPACT_STYLE,
    PRIMARY_STYLE,
    BoundaryView,
    render_boundary,
    render_crop_preview,
)
from .resources import ObjectUrlRegistry
from .surface import PillowSurface
from .transform import CoordinateTransform

__all__ = [
    "AuthError",
    "BoundaryEditor",
    "BoundaryView",
    "COMPACT_PICK_RADIUS",
    "COMPACT_STYLE",
    "CoordinateTransform",
    "Credentials",
    "DetectionError",
    "DetectionResult",
    "DocScanError",
    "DocumentPage",
    "FinalizeError",
    "FinalizeResult",
    "InvalidTransitionError",
    "Item",
    "ItemStatus",
    "ObjectUrlRegistry",
    "OperationInProgressError",
    "Orchestrator",
    "PICK_RADIUS",
    "PRIMARY_STYLE",
    "PillowSurface",
    "Point",
    "Quadrilateral",
    "SavedDocument",
    "StoredUrls",
    "UploadError",
    "UploadedFile",
    "ValidationError",
    "render_boundary",
    "render_crop_preview",
    "to_quadrilateral",
    "to_submission",
]
