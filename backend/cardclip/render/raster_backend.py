"""Raster backend: immediate-mode drawing onto a Pillow surface."""

import io
import logging
from functools import lru_cache
from typing import Callable, Protocol

from PIL import Image, ImageChops, ImageColor, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

from cardclip.config import get_settings
from cardclip.exceptions import InternalError, ValidationError
from cardclip.render.scene import (
    DrawClippedCircleImage,
    DrawImage,
    DrawText,
    FillBackground,
    Scene,
)

logger = logging.getLogger(__name__)

# Scene anchors -> Pillow anchors (horizontal + vertical middle)
_PIL_ANCHORS = {"start": "lm", "middle": "mm", "end": "rm"}


@lru_cache(maxsize=64)
def get_font(size: int, bold: bool = False) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load the first available font from the configured candidates.

    Falls back to Pillow's bundled font when none of the paths exist.
    """
    settings = get_settings()
    candidates = settings.bold_font_paths if bold else settings.font_paths
    for path in candidates:
        try:
            return ImageFont.truetype(path, size)
        except OSError:
            continue
    try:
        return ImageFont.truetype("DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf", size)
    except OSError:
        logger.warning(f"[FONT] No configured font found, using Pillow default (size={size})")
        return ImageFont.load_default(size=size)


def measure_text(text: str, font_size: int, bold: bool = False) -> float:
    """Rendered width of text in pixels."""
    if not text:
        return 0.0
    return float(get_font(font_size, bold).getlength(text))


def parse_color(color: str) -> tuple[int, ...]:
    try:
        return ImageColor.getcolor(color, "RGBA")
    except ValueError as e:
        raise ValidationError(f"Unsupported color: {color!r}", stage="render") from e


def validate_color(color: str, field: str) -> str:
    """Reject colors Pillow cannot resolve, before any fetch or encode work."""
    try:
        ImageColor.getrgb(color)
    except ValueError as e:
        raise ValidationError(f"Unsupported {field}: {color!r}", stage="validate") from e
    return color


class DrawingSurface(Protocol):
    """Capabilities the raster backend needs from a drawing surface."""

    def fill_rect(self, x: float, y: float, width: float, height: float, color: str) -> None:
        ...

    def draw_text(
        self, text: str, x: float, y: float, font_size: int, color: str, anchor: str = "start", bold: bool = False
    ) -> None:
        ...

    def measure_text(self, text: str, font_size: int, bold: bool = False) -> float:
        ...

    def draw_image(
        self, data: bytes, x: float, y: float, width: float, height: float, circular: bool = False
    ) -> None:
        ...

    def to_bytes(self) -> bytes:
        ...


class PillowSurface:
    """DrawingSurface backed by a Pillow RGBA image."""

    def __init__(self, width: int, height: int, image_format: str = "PNG"):
        self.image = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        self.draw = ImageDraw.Draw(self.image)
        self.image_format = image_format

    def fill_rect(self, x: float, y: float, width: float, height: float, color: str) -> None:
        self.draw.rectangle(
            [(round(x), round(y)), (round(x + width) - 1, round(y + height) - 1)],
            fill=parse_color(color),
        )

    def draw_text(
        self, text: str, x: float, y: float, font_size: int, color: str, anchor: str = "start", bold: bool = False
    ) -> None:
        if not text:
            return
        self.draw.text(
            (x, y),
            text,
            font=get_font(font_size, bold),
            fill=parse_color(color),
            anchor=_PIL_ANCHORS.get(anchor, "lm"),
        )

    def measure_text(self, text: str, font_size: int, bold: bool = False) -> float:
        return measure_text(text, font_size, bold)

    def draw_image(
        self, data: bytes, x: float, y: float, width: float, height: float, circular: bool = False
    ) -> None:
        try:
            src = Image.open(io.BytesIO(data))
            src.load()
        except Image.DecompressionBombError as e:
            raise ValidationError("Image dimensions exceed the decode limit", stage="render", cause=str(e)) from e
        except (UnidentifiedImageError, OSError) as e:
            raise ValidationError("Image could not be decoded", stage="render", cause=str(e)) from e

        box = (max(1, round(width)), max(1, round(height)))
        img = ImageOps.fit(src.convert("RGBA"), box, Image.Resampling.LANCZOS)
        mask = img.getchannel("A")
        if circular:
            circle = Image.new("L", box, 0)
            ImageDraw.Draw(circle).ellipse((0, 0, box[0] - 1, box[1] - 1), fill=255)
            mask = ImageChops.multiply(mask, circle)
        self.image.paste(img, (round(x), round(y)), mask)

    def to_bytes(self) -> bytes:
        buf = io.BytesIO()
        if self.image_format.upper() in ("JPEG", "JPG"):
            self.image.convert("RGB").save(buf, "JPEG", quality=90)
        else:
            self.image.save(buf, "PNG", optimize=True)
        return buf.getvalue()


class RasterBackend:
    """Materializes a Scene through a DrawingSurface."""

    mime_type = "image/png"

    def __init__(self, surface_factory: Callable[[int, int], DrawingSurface] = PillowSurface):
        self.surface_factory = surface_factory

    def materialize(self, scene: Scene) -> bytes:
        surface = self.surface_factory(scene.width, scene.height)
        for op in scene.consume():
            if isinstance(op, FillBackground):
                surface.fill_rect(0, 0, scene.width, scene.height, op.color)
            elif isinstance(op, DrawText):
                surface.draw_text(op.text, op.x, op.y, op.font_size, op.color, op.anchor, op.bold)
            elif isinstance(op, DrawClippedCircleImage):
                surface.draw_image(op.asset.data, op.x, op.y, op.size, op.size, circular=True)
            elif isinstance(op, DrawImage):
                surface.draw_image(op.asset.data, op.x, op.y, op.width, op.height)
            else:
                raise InternalError(f"Unknown draw operation: {type(op).__name__}", stage="render")
        return surface.to_bytes()
