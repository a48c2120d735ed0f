from cardclip.render.clip_range import ClipRange, format_clip_caption, validate_clip_range
from cardclip.render.layout import Corner, Geometry, LayoutConfig, LayoutEngine, Slot, SlotBox
from cardclip.render.markup import escape_markup, validate_attribute_value
from cardclip.render.ratios import DEFAULT_RATIO, RATIOS, CanvasSize, resolve_ratio
from cardclip.render.text_wrap import wrap_text

__all__ = [
    "CanvasSize",
    "ClipRange",
    "Corner",
    "DEFAULT_RATIO",
    "Geometry",
    "LayoutConfig",
    "LayoutEngine",
    "RATIOS",
    "Slot",
    "SlotBox",
    "escape_markup",
    "format_clip_caption",
    "resolve_ratio",
    "validate_attribute_value",
    "validate_clip_range",
    "wrap_text",
]
