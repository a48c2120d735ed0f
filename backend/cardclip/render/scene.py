"""Backend-agnostic scene construction.

A Scene is an ordered list of draw operations built from a Geometry and the
resolved slot contents. It is produced once and handed to exactly one
backend (SVG or raster) for materialization.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, Sequence, Union

from cardclip.exceptions import InternalError
from cardclip.media import MediaAsset
from cardclip.render.layout import Geometry, Slot, SlotBox
from cardclip.render.text_wrap import wrap_text

# measure(text, font_size, bold) -> width in pixels
TextMeasure = Callable[[str, int, bool], float]

LINE_HEIGHT = 1.2


@dataclass(frozen=True)
class FillBackground:
    color: str


@dataclass(frozen=True)
class DrawText:
    text: str
    x: float
    y: float
    font_size: int
    color: str
    anchor: str = "start"
    bold: bool = False


@dataclass(frozen=True)
class DrawImage:
    """Image scaled and cropped to cover its box."""

    asset: MediaAsset
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class DrawClippedCircleImage:
    """Image cropped to a square box and clipped to the inscribed circle."""

    asset: MediaAsset
    x: float
    y: float
    size: float


DrawOp = Union[FillBackground, DrawText, DrawImage, DrawClippedCircleImage]


@dataclass
class Scene:
    width: int
    height: int
    operations: list[DrawOp] = field(default_factory=list)
    _consumed: bool = field(default=False, init=False, repr=False)

    def consume(self) -> list[DrawOp]:
        """Hand the operations to a backend. A scene renders exactly once."""
        if self._consumed:
            raise InternalError("Scene was already rendered", stage="render")
        self._consumed = True
        return list(self.operations)


class SceneBackend(Protocol):
    mime_type: str

    def materialize(self, scene: Scene) -> bytes:
        ...


def materialize(scene: Scene, backend: SceneBackend) -> bytes:
    """Render a scene with the given backend."""
    data = backend.materialize(scene)
    if not data:
        raise InternalError(f"{type(backend).__name__} produced no output", stage="render")
    return data


@dataclass(frozen=True)
class CardContent:
    """Resolved slot contents for a card. Strings are raw user input."""

    text: str
    text_color: str
    background_color: str
    font_size: Optional[int] = None
    username: str = ""
    avatar: Optional[MediaAsset] = None
    song_title: str = ""
    artist: str = ""
    song_art: Optional[MediaAsset] = None
    caption: str = ""

    @property
    def populated_slots(self) -> set[str]:
        slots = {Slot.TITLE}
        optional = {
            Slot.AVATAR: self.avatar,
            Slot.USERNAME: self.username,
            Slot.SONG_ART: self.song_art,
            Slot.SONG_TITLE: self.song_title,
            Slot.ARTIST: self.artist,
            Slot.CAPTION: self.caption,
        }
        slots.update(name for name, value in optional.items() if value)
        return slots


@dataclass(frozen=True)
class StoryPageContent:
    heading: str
    text_color: str
    background_color: str
    images: Sequence[MediaAsset] = ()
    footer: str = ""


class SceneBuilder:
    """Turns geometry plus content into a Scene."""

    def __init__(self, measure: TextMeasure, line_height: float = LINE_HEIGHT):
        self.measure = measure
        self.line_height = line_height

    def build_card(self, geometry: Geometry, content: CardContent) -> Scene:
        scene = Scene(width=geometry.width, height=geometry.height)
        ops = scene.operations
        ops.append(FillBackground(content.background_color))

        for slot, asset in ((Slot.AVATAR, content.avatar), (Slot.SONG_ART, content.song_art)):
            box = geometry.get(slot)
            if box is not None and asset is not None:
                ops.append(DrawClippedCircleImage(asset=asset, x=box.x, y=box.y, size=box.size))

        ops.extend(self._text_block(geometry.get(Slot.TITLE), content.text, content.text_color, bold=True))

        labels = (
            (Slot.USERNAME, content.username, True),
            (Slot.SONG_TITLE, content.song_title, True),
            (Slot.ARTIST, content.artist, False),
            (Slot.CAPTION, content.caption, False),
        )
        for slot, text, bold in labels:
            box = geometry.get(slot)
            if box is not None and text:
                ops.append(self._label(box, text, content.text_color, bold))
        return scene

    def build_story_page(self, geometry: Geometry, content: StoryPageContent) -> Scene:
        scene = Scene(width=geometry.width, height=geometry.height)
        ops = scene.operations
        ops.append(FillBackground(content.background_color))
        ops.extend(self._text_block(geometry.get(Slot.TITLE), content.heading, content.text_color, bold=True))

        for i, asset in enumerate(content.images):
            box = geometry.get(f"image{i}")
            if box is None:
                break
            ops.append(DrawImage(asset=asset, x=box.x, y=box.y, width=box.size, height=box.size))

        footer = geometry.get(Slot.FOOTER)
        if footer is not None and content.footer:
            ops.append(self._label(footer, content.footer, content.text_color, bold=False))
        return scene

    def _text_block(self, box: Optional[SlotBox], text: str, color: str, bold: bool) -> list[DrawText]:
        """Wrapped lines stacked around the box's vertical center."""
        if box is None:
            raise InternalError("Title slot missing from geometry", stage="layout")
        size = int(box.size)
        max_width = box.max_width or float("inf")
        lines = wrap_text(text, max_width, lambda s: self.measure(s, size, bold))
        step = size * self.line_height
        first_y = box.y - step * (len(lines) - 1) / 2
        return [
            DrawText(text=line, x=box.x, y=first_y + i * step, font_size=size, color=color, anchor=box.anchor, bold=bold)
            for i, line in enumerate(lines)
        ]

    @staticmethod
    def _label(box: SlotBox, text: str, color: str, bold: bool) -> DrawText:
        return DrawText(text=text, x=box.x, y=box.y, font_size=int(box.size), color=color, anchor=box.anchor, bold=bold)
