"""Boundary and crop-preview render passes.

Both passes are pure functions of (image, quadrilateral, highlighted handle,
target box). ``BoundaryView`` wires them to an editor and only redraws when
one of those inputs changed.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from PIL import Image

from .editor import BoundaryEditor
from .geometry import Point, bounding_box, clip_path, fit_scale
from .lifecycle import Item, ItemStatus
from .surface import Color, PillowSurface
from .transform import CoordinateTransform

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderStyle:
    overlay: Color
    stroke: Color
    stroke_width: int
    handle_radius: float
    handle_fill: Color
    handle_accent: Color
    handle_outline: Color
    handle_outline_width: int
    label: Color


PRIMARY_STYLE = RenderStyle(
    overlay=(0, 0, 0, 102),
    stroke="#4CAF50",
    stroke_width=3,
    handle_radius=14,
    handle_fill="#4CAF50",
    handle_accent="#2196F3",
    handle_outline="#FFFFFF",
    handle_outline_width=3,
    label="#FFFFFF",
)

COMPACT_STYLE = RenderStyle(
    overlay=(0, 0, 0, 77),
    stroke="#4CAF50",
    stroke_width=2,
    handle_radius=8,
    handle_fill="#4CAF50",
    handle_accent="#2196F3",
    handle_outline="#FFFFFF",
    handle_outline_width=2,
    label="#FFFFFF",
)

# Items in these states show static result images instead of the canvas.
NO_REDRAW = frozenset({ItemStatus.PROCESSING, ItemStatus.COMPLETED})


def render_boundary(
    surface: PillowSurface,
    image: Image.Image,
    quad: Sequence[Point],
    highlighted: Optional[int],
    box: Tuple[float, float],
    style: RenderStyle = PRIMARY_STYLE,
) -> CoordinateTransform:
    """Draw the image with a dimmed surround, the boundary and its handles.

    Returns:
        The transform used for this pass, for hit-testing pointer input.
    """
    transform = CoordinateTransform(image.width, image.height, box[0], box[1])
    width, height = transform.display_size
    surface.resize(width, height)
    surface.draw_image(image, (0, 0, width, height))

    if len(quad) != 4:
        return transform

    scaled = clip_path(quad, scale=transform.scale)

    surface.fill_rect((0, 0, width, height), style.overlay)
    with surface.clip(scaled):
        surface.draw_image(image, (0, 0, width, height))

    surface.stroke_polygon(scaled, style.stroke, style.stroke_width)

    for index, (x, y) in enumerate(scaled):
        fill = style.handle_accent if index == highlighted else style.handle_fill
        surface.fill_circle(
            (x, y),
            style.handle_radius,
            fill,
            outline=style.handle_outline,
            outline_width=style.handle_outline_width,
        )
        surface.draw_text((x, y), str(index + 1), style.label)

    return transform


def render_crop_preview(
    surface: PillowSurface,
    image: Image.Image,
    quad: Sequence[Point],
    box: Tuple[float, float],
    style: RenderStyle = PRIMARY_STYLE,
) -> Optional[float]:
    """Draw the quadrilateral's bounding region, clipped to the polygon.

    This approximates the final crop without unwarping the perspective.

    Returns:
        The preview scale, or None when nothing was drawn.
    """
    if len(quad) != 4:
        return None

    bbox = bounding_box(quad)
    if bbox.is_degenerate:
        return None

    scale = fit_scale(bbox.width, bbox.height, box[0], box[1])
    width = max(1, int(bbox.width * scale))
    height = max(1, int(bbox.height * scale))
    surface.resize(width, height)

    local = clip_path(quad, origin=(bbox.min_x, bbox.min_y), scale=scale)
    with surface.clip(local):
        surface.draw_image(
            image,
            (0, 0, width, height),
            source=(bbox.min_x, bbox.min_y, bbox.max_x, bbox.max_y),
        )
    surface.stroke_polygon(local, style.stroke, style.stroke_width)
    return scale


class BoundaryView:
    """The editable canvas and crop preview for the selected item."""

    def __init__(
        self,
        editor: BoundaryEditor,
        style: RenderStyle = PRIMARY_STYLE,
        boundary_surface: Optional[PillowSurface] = None,
        preview_surface: Optional[PillowSurface] = None,
    ):
        self.editor = editor
        self.style = style
        self.boundary_surface = boundary_surface or PillowSurface()
        self.preview_surface = preview_surface or PillowSurface()
        self.preview_drawn = False
        self._last_key = None

    def invalidate(self):
        self._last_key = None

    def redraw(self, item: Optional[Item], image: Optional[Image.Image], box: Tuple[float, float]) -> bool:
        """Re-run both passes if any input changed.

        Returns:
            True when the surfaces were redrawn.
        """
        if item is None or image is None:
            return False
        self.editor.attach(item)
        if item.status in NO_REDRAW:
            logger.debug("Skipping redraw of %s while %s", item.id, item.status.value)
            return False

        corners = self.editor.corners
        key = (id(image), image.size, corners, self.editor.active_handle, tuple(box))
        if key == self._last_key:
            return False

        self.editor.transform = render_boundary(
            self.boundary_surface, image, corners, self.editor.active_handle, box, self.style
        )
        self.preview_drawn = render_crop_preview(
            self.preview_surface, image, corners, box, self.style
        ) is not None
        self._last_key = key
        return True
