"""Interactive editor for the four boundary handles of the selected item."""

import logging
from typing import Callable, List, Optional, Sequence, Tuple

from .geometry import Point, Quadrilateral, distance
from .lifecycle import Item, ItemStatus
from .transform import CoordinateTransform

logger = logging.getLogger(__name__)

PICK_RADIUS = 14.0
COMPACT_PICK_RADIUS = 15.0

HANDLE_NAMES = ["Top-Left", "Top-Right", "Bottom-Right", "Bottom-Left"]


class BoundaryEditor:
    """Holds the working quadrilateral of one item and applies drag edits.

    The editor borrows the selected item's boundary: ``attach`` seeds a
    working copy, drags mutate it in image space, and ``end_drag``/``reset``
    hand the result back through ``on_commit``.
    """

    def __init__(
        self,
        pick_radius: float = PICK_RADIUS,
        on_commit: Optional[Callable[[str, Quadrilateral], None]] = None,
    ):
        self.pick_radius = pick_radius
        self.on_commit = on_commit
        self.transform: Optional[CoordinateTransform] = None
        self._item_id: Optional[str] = None
        self._detection = None
        self._status: Optional[ItemStatus] = None
        self._corners: List[Point] = []
        self._initial: Quadrilateral = ()
        self._active: Optional[int] = None

    # -- attachment -------------------------------------------------------

    def attach(self, item: Optional[Item]):
        """Borrow ``item``'s boundary.

        The working copy is only re-seeded when the item or its detection
        changed, so re-attaching the same item on every redraw keeps edits.
        """
        if item is None:
            self.detach()
            return

        self._status = item.status
        if item.id == self._item_id and item.detection is self._detection:
            return

        self._item_id = item.id
        self._detection = item.detection
        self._active = None
        self._initial = tuple(item.reset_corners)
        self._corners = list(item.working or item.reset_corners)

    def detach(self):
        self._item_id = None
        self._detection = None
        self._status = None
        self._corners = []
        self._initial = ()
        self._active = None
        self.transform = None

    def layout(self, image_width: float, image_height: float, box: Tuple[float, float]) -> CoordinateTransform:
        """Recompute the display transform for the current render pass."""
        self.transform = CoordinateTransform(image_width, image_height, box[0], box[1])
        return self.transform

    # -- state ------------------------------------------------------------

    @property
    def item_id(self) -> Optional[str]:
        return self._item_id

    @property
    def corners(self) -> Quadrilateral:
        return tuple(self._corners)

    @property
    def initial_corners(self) -> Quadrilateral:
        return self._initial

    @property
    def active_handle(self) -> Optional[int]:
        return self._active

    @property
    def editable(self) -> bool:
        return self._status is ItemStatus.DETECTED and len(self._corners) == 4

    @property
    def is_dirty(self) -> bool:
        return tuple(self._corners) != self._initial

    def corner_labels(self) -> List[str]:
        return [
            f"{HANDLE_NAMES[i]}: ({round(p.x)}, {round(p.y)})"
            for i, p in enumerate(self._corners)
        ]

    # -- operations -------------------------------------------------------

    def hit_test(self, display_point: Sequence[float]) -> Optional[int]:
        """Index of the first handle within the pick radius, or None."""
        if self.transform is None:
            return None
        for index, corner in enumerate(self._corners):
            if distance(display_point, self.transform.to_display(corner)) < self.pick_radius:
                return index
        return None

    def begin_drag(self, index: int) -> bool:
        if not self.editable:
            return False
        if self._active is not None:
            return False
        if not 0 <= index < len(self._corners):
            raise IndexError(f"Handle index out of range: {index}")
        self._active = index
        return True

    def update_drag(self, display_point: Sequence[float]) -> Optional[Point]:
        """Move the active handle to the pointer, clamped into the image."""
        if self._active is None or self.transform is None:
            return None
        point = self.transform.to_image(display_point)
        self._corners[self._active] = point
        return point

    def end_drag(self):
        if self._active is None:
            return
        self._active = None
        self._commit()

    def reset(self):
        """Restore the as-detected boundary."""
        if not self._initial or not self.editable:
            return
        self._active = None
        self._corners = list(self._initial)
        self._commit()

    def set_corner(self, index: int, image_point: Sequence[float]) -> Optional[Point]:
        """Place a handle at an image-space position (keyboard / numeric entry)."""
        if not self.editable or self.transform is None:
            return None
        if not self.begin_drag(index):
            return None
        point = self.update_drag(self.transform.to_display(image_point))
        self.end_drag()
        return point

    # -- pointer events ---------------------------------------------------

    def pointer_down(self, display_point: Sequence[float]) -> Optional[int]:
        if self._active is not None:
            return None
        index = self.hit_test(display_point)
        if index is not None and self.begin_drag(index):
            return index
        return None

    def pointer_move(self, display_point: Sequence[float]) -> Optional[Point]:
        return self.update_drag(display_point)

    def pointer_up(self):
        self.end_drag()

    def pointer_click(self, display_point: Sequence[float]) -> Optional[Point]:
        """Click-only input: the first click picks a handle, the next click drops it there."""
        if self._active is None:
            self.pointer_down(display_point)
            return None
        point = self.update_drag(display_point)
        self.end_drag()
        return point

    def _commit(self):
        if self.on_commit is not None and self._item_id is not None and self.editable:
            self.on_commit(self._item_id, tuple(self._corners))
