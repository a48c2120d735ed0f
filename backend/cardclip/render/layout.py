"""Layout engine for card scenes.

All offsets and sizes are fractions of the canvas so the same formulas serve
every supported aspect ratio. Corner placement of the avatar, song art and
clip caption is configuration, not code.

Slot coordinates:
- image slots (avatar, songArt, imageN): ``x``/``y`` are the top-left corner
  of a ``size`` x ``size`` box
- text slots (title, username, songTitle, artist, caption, footer): ``x``/``y``
  are the anchor point, ``size`` is the font size and ``anchor`` is the
  horizontal alignment (start, middle, end); text is vertically centered on y
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from cardclip.config import Settings, get_settings
from cardclip.render.ratios import CanvasSize

logger = logging.getLogger(__name__)


class Corner(Enum):
    """Canvas corners available for anchored slots."""

    TOP_LEFT = "top_left"
    TOP_RIGHT = "top_right"
    BOTTOM_LEFT = "bottom_left"
    BOTTOM_RIGHT = "bottom_right"

    @property
    def is_left(self) -> bool:
        return self in (Corner.TOP_LEFT, Corner.BOTTOM_LEFT)

    @property
    def is_top(self) -> bool:
        return self in (Corner.TOP_LEFT, Corner.TOP_RIGHT)


class Slot:
    """Logical slot names."""

    TITLE = "title"
    AVATAR = "avatar"
    USERNAME = "username"
    SONG_ART = "songArt"
    SONG_TITLE = "songTitle"
    ARTIST = "artist"
    CAPTION = "caption"
    FOOTER = "footer"

    IMAGE_SLOTS = frozenset({AVATAR, SONG_ART})


@dataclass(frozen=True)
class SlotBox:
    """Position and size of one slot."""

    x: float
    y: float
    size: float
    anchor: str = "start"
    max_width: Optional[float] = None


@dataclass(frozen=True)
class Geometry:
    """Canvas size plus the boxes of every populated slot."""

    width: int
    height: int
    slots: Mapping[str, SlotBox] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "slots", MappingProxyType(dict(self.slots)))

    def get(self, name: str) -> Optional[SlotBox]:
        return self.slots.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self.slots


@dataclass(frozen=True)
class LayoutConfig:
    """Tunable layout policy."""

    title_center_ratio: float = 0.5
    title_font_ratio: float = 0.045
    title_max_width_ratio: float = 0.8
    safe_margin_ratio: float = 0.05
    avatar_size_ratio: float = 0.09
    song_art_size_ratio: float = 0.12
    label_gap_ratio: float = 0.013
    username_font_ratio: float = 0.02
    song_title_font_ratio: float = 0.018
    artist_font_ratio: float = 0.014
    caption_font_ratio: float = 0.016
    avatar_corner: Corner = Corner.TOP_LEFT
    song_art_corner: Corner = Corner.BOTTOM_LEFT
    caption_corner: Corner = Corner.BOTTOM_RIGHT

    def __post_init__(self):
        if self.avatar_corner == self.song_art_corner:
            raise ValueError("avatar and song art must be anchored to different corners")
        if not 0 < self.title_center_ratio < 1:
            raise ValueError(f"title_center_ratio must be within (0, 1), got {self.title_center_ratio}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "LayoutConfig":
        return cls(
            title_center_ratio=settings.title_center_ratio,
            title_font_ratio=settings.title_font_ratio,
            title_max_width_ratio=settings.title_max_width_ratio,
            safe_margin_ratio=settings.safe_margin_ratio,
            avatar_size_ratio=settings.avatar_size_ratio,
            song_art_size_ratio=settings.song_art_size_ratio,
            label_gap_ratio=settings.label_gap_ratio,
            username_font_ratio=settings.username_font_ratio,
            song_title_font_ratio=settings.song_title_font_ratio,
            artist_font_ratio=settings.artist_font_ratio,
            caption_font_ratio=settings.caption_font_ratio,
            avatar_corner=Corner(settings.avatar_corner),
            song_art_corner=Corner(settings.song_art_corner),
            caption_corner=Corner(settings.caption_corner),
        )


# Story pages
STORY_TITLE_Y_RATIO = 0.18
STORY_TITLE_FONT_RATIO = 0.06
STORY_IMAGE_Y_RATIO = 0.28
STORY_IMAGE_SIZE_RATIO = 0.28
STORY_IMAGE_GAP_RATIO = 0.04
STORY_MAX_IMAGES = 3
STORY_FOOTER_X_RATIO = 0.12
STORY_FOOTER_Y_RATIO = 0.95
STORY_FOOTER_FONT_RATIO = 0.03


class LayoutEngine:
    """Computes slot geometry for a canvas."""

    def __init__(self, config: Optional[LayoutConfig] = None):
        self.config = config or LayoutConfig.from_settings(get_settings())

    def layout(
        self,
        canvas: CanvasSize,
        slots: Iterable[str],
        title_font_size: Optional[int] = None,
    ) -> Geometry:
        """Compute the geometry of every populated slot.

        Args:
            canvas: Canvas size
            slots: Names of populated slots; the title is always laid out
            title_font_size: Explicit title font size; defaults to width * k

        Returns:
            Geometry containing only the populated slots
        """
        cfg = self.config
        populated = set(slots)
        w, h = canvas.width, canvas.height
        short = canvas.short_side
        safe = short * cfg.safe_margin_ratio
        gap = short * cfg.label_gap_ratio

        boxes: dict[str, SlotBox] = {
            Slot.TITLE: SlotBox(
                x=w / 2,
                y=h * cfg.title_center_ratio,
                size=title_font_size or round(w * cfg.title_font_ratio),
                anchor="middle",
                max_width=w * cfg.title_max_width_ratio,
            )
        }

        avatar = self._corner_box(canvas, cfg.avatar_corner, short * cfg.avatar_size_ratio, safe)
        if Slot.AVATAR in populated:
            boxes[Slot.AVATAR] = avatar
        if Slot.USERNAME in populated:
            x, anchor = self._label_x(avatar, cfg.avatar_corner, Slot.AVATAR in populated, gap)
            boxes[Slot.USERNAME] = SlotBox(
                x=x,
                y=avatar.y + avatar.size / 2,
                size=round(w * cfg.username_font_ratio),
                anchor=anchor,
            )

        art = self._corner_box(canvas, cfg.song_art_corner, short * cfg.song_art_size_ratio, safe)
        if Slot.SONG_ART in populated:
            boxes[Slot.SONG_ART] = art
        x, anchor = self._label_x(art, cfg.song_art_corner, Slot.SONG_ART in populated, gap)
        if Slot.SONG_TITLE in populated:
            boxes[Slot.SONG_TITLE] = SlotBox(
                x=x, y=art.y + art.size * 0.32, size=round(w * cfg.song_title_font_ratio), anchor=anchor
            )
        if Slot.ARTIST in populated:
            boxes[Slot.ARTIST] = SlotBox(
                x=x, y=art.y + art.size * 0.6, size=round(w * cfg.artist_font_ratio), anchor=anchor
            )

        if Slot.CAPTION in populated:
            corner = cfg.caption_corner
            size = round(w * cfg.caption_font_ratio)
            boxes[Slot.CAPTION] = SlotBox(
                x=safe if corner.is_left else w - safe,
                y=safe + size / 2 if corner.is_top else h - safe - size / 2,
                size=size,
                anchor="start" if corner.is_left else "end",
            )

        logger.debug(f"[LAYOUT] {w}x{h} slots={sorted(boxes)}")
        return Geometry(width=w, height=h, slots=boxes)

    def layout_story_page(self, canvas: CanvasSize, image_count: int, has_footer: bool = True) -> Geometry:
        """Geometry for one story page: heading, a row of up to three images, footer."""
        w, h = canvas.width, canvas.height
        count = max(0, min(image_count, STORY_MAX_IMAGES))
        size = w * STORY_IMAGE_SIZE_RATIO
        gap = w * STORY_IMAGE_GAP_RATIO

        boxes: dict[str, SlotBox] = {
            Slot.TITLE: SlotBox(
                x=w / 2,
                y=h * STORY_TITLE_Y_RATIO,
                size=round(w * STORY_TITLE_FONT_RATIO),
                anchor="middle",
                max_width=w * self.config.title_max_width_ratio,
            )
        }
        for i in range(count):
            # Row is centered on the canvas midline
            offset = ((count - 1) / 2 - i) * (size + gap)
            boxes[f"image{i}"] = SlotBox(x=w / 2 - offset - size / 2, y=h * STORY_IMAGE_Y_RATIO, size=size)
        if has_footer:
            boxes[Slot.FOOTER] = SlotBox(
                x=w * STORY_FOOTER_X_RATIO,
                y=h * STORY_FOOTER_Y_RATIO,
                size=round(w * STORY_FOOTER_FONT_RATIO),
            )
        return Geometry(width=w, height=h, slots=boxes)

    @staticmethod
    def _corner_box(canvas: CanvasSize, corner: Corner, size: float, safe: float) -> SlotBox:
        x = safe if corner.is_left else canvas.width - size - safe
        y = safe if corner.is_top else canvas.height - size - safe
        return SlotBox(x=x, y=y, size=size)

    @staticmethod
    def _label_x(box: SlotBox, corner: Corner, image_present: bool, gap: float) -> tuple[float, str]:
        """Labels sit on the inner side of their corner image."""
        if corner.is_left:
            return (box.x + box.size + gap if image_present else box.x), "start"
        return (box.x - gap if image_present else box.x + box.size), "end"
