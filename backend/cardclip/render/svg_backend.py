"""Vector backend: emits a standalone SVG document."""

from typing import Optional

from cardclip.config import get_settings
from cardclip.exceptions import InternalError
from cardclip.render.markup import escape_markup, validate_attribute_value
from cardclip.render.scene import (
    DrawClippedCircleImage,
    DrawImage,
    DrawText,
    FillBackground,
    Scene,
)


def _num(value: float) -> str:
    """Compact number formatting for attributes."""
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return "0" if text == "-0" else text


class SvgBackend:
    """Materializes a Scene as SVG markup.

    Text content goes through escape_markup; attribute values that come from
    outside (colors, image data references) are checked with
    validate_attribute_value.
    """

    mime_type = "image/svg+xml"

    def __init__(self, font_family: Optional[str] = None):
        self.font_family = font_family or get_settings().font_family

    def render(self, scene: Scene) -> str:
        defs: list[str] = []
        body: list[str] = []
        font_family = escape_markup(self.font_family)

        for op in scene.consume():
            if isinstance(op, FillBackground):
                body.append(f'<rect width="100%" height="100%" fill="{self._color(op.color)}" />')
            elif isinstance(op, DrawClippedCircleImage):
                clip_id = f"clip{len(defs)}"
                r = op.size / 2
                defs.append(
                    f'<clipPath id="{clip_id}"><circle cx="{_num(op.x + r)}" cy="{_num(op.y + r)}" r="{_num(r)}" /></clipPath>'
                )
                body.append(
                    f'<image href="{self._href(op.asset.to_data_reference())}" x="{_num(op.x)}" y="{_num(op.y)}" '
                    f'width="{_num(op.size)}" height="{_num(op.size)}" preserveAspectRatio="xMidYMid slice" '
                    f'clip-path="url(#{clip_id})" />'
                )
            elif isinstance(op, DrawImage):
                body.append(
                    f'<image href="{self._href(op.asset.to_data_reference())}" x="{_num(op.x)}" y="{_num(op.y)}" '
                    f'width="{_num(op.width)}" height="{_num(op.height)}" preserveAspectRatio="xMidYMid slice" />'
                )
            elif isinstance(op, DrawText):
                weight = "700" if op.bold else "400"
                body.append(
                    f'<text x="{_num(op.x)}" y="{_num(op.y)}" fill="{self._color(op.color)}" '
                    f'font-size="{op.font_size}" font-family="{font_family}" font-weight="{weight}" '
                    f'text-anchor="{op.anchor}" dominant-baseline="middle">{escape_markup(op.text)}</text>'
                )
            else:
                raise InternalError(f"Unknown draw operation: {type(op).__name__}", stage="render")

        parts = [
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{scene.width}" height="{scene.height}" '
            f'viewBox="0 0 {scene.width} {scene.height}">'
        ]
        if defs:
            parts.append("<defs>" + "".join(defs) + "</defs>")
        parts.extend(body)
        parts.append("</svg>")
        return "\n".join(parts)

    def materialize(self, scene: Scene) -> bytes:
        return self.render(scene).encode("utf-8")

    @staticmethod
    def _color(color: str) -> str:
        return validate_attribute_value(color, "color")

    @staticmethod
    def _href(reference: str) -> str:
        return validate_attribute_value(reference, "image reference")
