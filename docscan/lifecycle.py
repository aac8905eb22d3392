"""Per-item processing state machine.

An item moves ``pending -> detecting -> detected -> processing -> completed``.
``error`` is reachable from ``detecting`` and ``processing``. Nothing leaves
``completed`` or ``error`` except removal of the item.

Items are immutable; every transition returns a new ``Item`` so the
collection can swap snapshots atomically.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from .errors import InvalidTransitionError
from .geometry import Quadrilateral, to_quadrilateral

if TYPE_CHECKING:
    from .collaborators import UploadedFile


class ItemStatus(str, Enum):
    PENDING = "pending"
    DETECTING = "detecting"
    DETECTED = "detected"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]


STATUS_LABELS = {
    ItemStatus.PENDING: "Pending",
    ItemStatus.DETECTING: "Detecting...",
    ItemStatus.DETECTED: "Ready",
    ItemStatus.PROCESSING: "Processing...",
    ItemStatus.COMPLETED: "Done",
    ItemStatus.ERROR: "Error",
}

TRANSITIONS = {
    ItemStatus.PENDING: {ItemStatus.DETECTING},
    ItemStatus.DETECTING: {ItemStatus.DETECTED, ItemStatus.ERROR},
    ItemStatus.DETECTED: {ItemStatus.PROCESSING},
    ItemStatus.PROCESSING: {ItemStatus.COMPLETED, ItemStatus.ERROR},
    ItemStatus.COMPLETED: set(),
    ItemStatus.ERROR: set(),
}

IN_FLIGHT = frozenset({ItemStatus.DETECTING, ItemStatus.PROCESSING})


@dataclass(frozen=True)
class DetectionResult:
    """What the detector reported for one file. Never mutated after creation."""

    success: bool
    file_id: str
    preview_url: str
    corners: Quadrilateral
    confidence: float
    method: str
    image_width: int
    image_height: int
    warning: Optional[str] = None
    original_url: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_response(cls, data: Mapping[str, Any]) -> "DetectionResult":
        """Parse the backend's camelCase detection payload."""
        size = data.get("imageSize") or {}
        success = bool(data.get("success"))
        raw_corners = data.get("corners") or []
        corners = to_quadrilateral(raw_corners) if success or raw_corners else ()
        return cls(
            success=success,
            file_id=data.get("fileId") or "",
            preview_url=data.get("previewUrl") or "",
            corners=corners,
            confidence=float(data.get("confidence") or 0.0),
            method=data.get("method") or "",
            image_width=int(size.get("width") or 0),
            image_height=int(size.get("height") or 0),
            warning=data.get("warning"),
            original_url=data.get("originalUrl"),
            error=data.get("error"),
        )

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "fileId": self.file_id,
            "previewUrl": self.preview_url,
            "originalUrl": self.original_url,
            "corners": [[p.x, p.y] for p in self.corners],
            "confidence": self.confidence,
            "method": self.method,
            "warning": self.warning,
            "imageSize": {"width": self.image_width, "height": self.image_height},
        }


@dataclass(frozen=True)
class FinalizeResult:
    success: bool
    cropped_url: str = ""
    width: Optional[int] = None
    height: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def from_response(cls, data: Mapping[str, Any]) -> "FinalizeResult":
        dims = data.get("dimensions") or {}
        return cls(
            success=bool(data.get("success")),
            cropped_url=data.get("croppedUrl") or "",
            width=dims.get("width"),
            height=dims.get("height"),
            error=data.get("error"),
        )


class CancelToken:
    """Invalidated when its item is removed; async results check it first."""

    __slots__ = ("_cancelled",)

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass(frozen=True)
class Item:
    """One user-selected file tracked through detection and finalization."""

    id: str
    file: "UploadedFile"
    local_url: str
    status: ItemStatus = ItemStatus.PENDING
    detection: Optional[DetectionResult] = None
    cropped_url: Optional[str] = None
    error: Optional[str] = None
    working: Quadrilateral = ()
    token: CancelToken = field(default_factory=CancelToken, compare=False, repr=False)

    @property
    def filename(self) -> str:
        return self.file.name

    @property
    def reset_corners(self) -> Quadrilateral:
        """The as-detected quadrilateral, kept so edits can be discarded."""
        return self.detection.corners if self.detection else ()

    @property
    def editable(self) -> bool:
        return self.status is ItemStatus.DETECTED

    @property
    def in_flight(self) -> bool:
        return self.status in IN_FLIGHT

    @property
    def display_url(self) -> str:
        if self.detection and self.detection.preview_url:
            return self.detection.preview_url
        return self.local_url

    def _move(self, target: ItemStatus, **changes) -> "Item":
        if target not in TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Item {self.id}: cannot go from {self.status.value} to {target.value}"
            )
        return replace(self, status=target, **changes)

    def start_detection(self) -> "Item":
        return self._move(ItemStatus.DETECTING)

    def detection_succeeded(self, result: DetectionResult) -> "Item":
        return self._move(
            ItemStatus.DETECTED, detection=result, working=tuple(result.corners), error=None
        )

    def detection_failed(self, message: str) -> "Item":
        return self._move(ItemStatus.ERROR, error=message)

    def start_processing(self, quad: Quadrilateral) -> "Item":
        return self._move(ItemStatus.PROCESSING, working=tuple(quad), error=None)

    def processing_succeeded(self, cropped_url: str) -> "Item":
        return self._move(ItemStatus.COMPLETED, cropped_url=cropped_url)

    def processing_failed(self, message: str) -> "Item":
        return self._move(ItemStatus.ERROR, error=message)

    def with_working(self, quad: Quadrilateral) -> "Item":
        if not self.editable:
            raise InvalidTransitionError(
                f"Item {self.id}: boundary is not editable while {self.status.value}"
            )
        if len(quad) != 4:
            raise ValueError(f"Expected exactly 4 corners, got {len(quad)}")
        return replace(self, working=tuple(quad))
