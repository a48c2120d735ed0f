"""Aspect-ratio token to canvas size lookup."""

from dataclasses import dataclass


@dataclass(frozen=True)
class CanvasSize:
    """Canvas dimensions in pixels."""

    width: int
    height: int

    @property
    def short_side(self) -> int:
        return min(self.width, self.height)


DEFAULT_RATIO = "16:9"

RATIOS: dict[str, CanvasSize] = {
    "1:1": CanvasSize(1080, 1080),
    "9:16": CanvasSize(1080, 1920),
    "16:9": CanvasSize(1920, 1080),
}


def resolve_ratio(token: str | None) -> CanvasSize:
    """Return the canvas for a ratio token. Unknown or missing tokens get 16:9."""
    if token is None:
        return RATIOS[DEFAULT_RATIO]
    return RATIOS.get(token.strip(), RATIOS[DEFAULT_RATIO])
