"""Immediate-mode 2D drawing surface backed by Pillow.

Provides the primitives the renderer needs: image blits, filled rectangles,
polygon clipping, polygon strokes, filled circles and centered text. Every
primitive is drawn on a transparent layer and composited through the current
clip mask.
"""

from contextlib import contextmanager
from typing import List, Optional, Sequence, Tuple, Union

from PIL import Image, ImageChops, ImageColor, ImageDraw, ImageFont

Color = Union[str, Tuple[int, int, int], Tuple[int, int, int, int]]
Box = Tuple[float, float, float, float]


def to_rgba(color: Color) -> Tuple[int, int, int, int]:
    if isinstance(color, str):
        rgb = ImageColor.getrgb(color)
        return rgb if len(rgb) == 4 else (*rgb, 255)
    if len(color) == 3:
        return (*color, 255)
    return tuple(color)


class PillowSurface:
    """A resizable RGBA canvas with a clip stack."""

    def __init__(self, width: int = 1, height: int = 1):
        self.canvas = Image.new("RGBA", (max(1, int(width)), max(1, int(height))), (0, 0, 0, 0))
        self._clips: List[Image.Image] = []
        self._font = ImageFont.load_default()

    @property
    def width(self) -> int:
        return self.canvas.width

    @property
    def height(self) -> int:
        return self.canvas.height

    @property
    def size(self) -> Tuple[int, int]:
        return self.canvas.size

    def resize(self, width: int, height: int):
        """Resize and clear, like assigning a new size to an HTML canvas."""
        self.canvas = Image.new("RGBA", (max(1, int(width)), max(1, int(height))), (0, 0, 0, 0))
        self._clips = []

    def clear(self):
        self.canvas = Image.new("RGBA", self.canvas.size, (0, 0, 0, 0))

    def _layer(self) -> Image.Image:
        return Image.new("RGBA", self.canvas.size, (0, 0, 0, 0))

    def _composite(self, layer: Image.Image):
        if self._clips:
            alpha = ImageChops.multiply(layer.getchannel("A"), self._clips[-1])
            layer.putalpha(alpha)
        self.canvas.alpha_composite(layer)

    def draw_image(self, image: Image.Image, dest: Box, source: Optional[Box] = None):
        """Blit ``image`` (or its ``source`` region) scaled into ``dest``."""
        dx0, dy0, dx1, dy1 = dest
        width = max(1, int(round(dx1 - dx0)))
        height = max(1, int(round(dy1 - dy0)))

        picture = image.convert("RGBA")
        if source is not None:
            sx0, sy0, sx1, sy1 = source
            picture = picture.crop((int(sx0), int(sy0), int(round(sx1)), int(round(sy1))))
        if picture.size != (width, height):
            picture = picture.resize((width, height), Image.Resampling.BILINEAR)

        layer = self._layer()
        layer.paste(picture, (int(round(dx0)), int(round(dy0))))
        self._composite(layer)

    def fill_rect(self, box: Box, color: Color):
        layer = self._layer()
        ImageDraw.Draw(layer).rectangle(box, fill=to_rgba(color))
        self._composite(layer)

    @contextmanager
    def clip(self, polygon: Sequence[Sequence[float]]):
        """Restrict drawing to ``polygon`` for the duration of the block."""
        mask = Image.new("L", self.canvas.size, 0)
        ImageDraw.Draw(mask).polygon([tuple(p) for p in polygon], fill=255)
        if self._clips:
            mask = ImageChops.multiply(mask, self._clips[-1])
        self._clips.append(mask)
        try:
            yield self
        finally:
            self._clips.pop()

    def stroke_polygon(self, polygon: Sequence[Sequence[float]], color: Color, width: int = 1):
        points = [tuple(p) for p in polygon]
        if len(points) < 2:
            return
        layer = self._layer()
        ImageDraw.Draw(layer).line(points + [points[0]], fill=to_rgba(color), width=width, joint="curve")
        self._composite(layer)

    def fill_circle(
        self,
        center: Sequence[float],
        radius: float,
        fill: Color,
        outline: Optional[Color] = None,
        outline_width: int = 0,
    ):
        x, y = center
        layer = self._layer()
        ImageDraw.Draw(layer).ellipse(
            (x - radius, y - radius, x + radius, y + radius),
            fill=to_rgba(fill),
            outline=to_rgba(outline) if outline is not None else None,
            width=outline_width,
        )
        self._composite(layer)

    def draw_text(self, center: Sequence[float], text: str, color: Color):
        layer = self._layer()
        draw = ImageDraw.Draw(layer)
        left, top, right, bottom = draw.textbbox((0, 0), text, font=self._font)
        x = center[0] - (right - left) / 2 - left
        y = center[1] - (bottom - top) / 2 - top
        draw.text((x, y), text, fill=to_rgba(color), font=self._font)
        self._composite(layer)

    def pixel(self, x: int, y: int) -> Tuple[int, int, int, int]:
        return self.canvas.getpixel((x, y))

    def to_image(self, mode: str = "RGB") -> Image.Image:
        if mode == "RGBA":
            return self.canvas.copy()
        background = Image.new("RGBA", self.canvas.size, (255, 255, 255, 255))
        background.alpha_composite(self.canvas)
        return background.convert(mode)
