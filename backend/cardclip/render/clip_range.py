"""Clip range validation.

A clip range selects the ``[start, start + duration)`` window of the source
audio that ends up in the output. Validation happens before any network or
encoder work so a bad range costs nothing.
"""

import math
from dataclasses import dataclass
from typing import Optional

from cardclip.exceptions import InvalidClipRangeError


@dataclass(frozen=True)
class ClipRange:
    """Validated clip window in seconds."""

    start: float
    duration: float

    @property
    def end(self) -> float:
        return self.start + self.duration


def _to_number(value: object, name: str) -> float:
    if isinstance(value, bool) or value is None:
        raise InvalidClipRangeError(reason=f"{name} must be a number, got {value!r}")
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as e:
        raise InvalidClipRangeError(reason=f"{name} must be a number, got {value!r}") from e
    if not math.isfinite(number):
        raise InvalidClipRangeError(reason=f"{name} must be finite, got {value!r}")
    return number


def validate_clip_range(
    start: object,
    end: object,
    max_duration: Optional[float] = None,
) -> ClipRange:
    """Validate a (start, end) pair into a ClipRange.

    Args:
        start: Clip start in seconds (numbers and numeric strings accepted)
        end: Clip end in seconds
        max_duration: Optional ceiling; longer clips are shortened to it

    Returns:
        ClipRange with start >= 0 and a positive duration

    Raises:
        InvalidClipRangeError: If a value is not a finite number or end <= start
    """
    start_s = _to_number(start, "clipStart")
    end_s = _to_number(end, "clipEnd")

    if end_s <= start_s:
        raise InvalidClipRangeError(start, end, reason=f"clipEnd ({end_s}) must be greater than clipStart ({start_s})")

    # Negative starts are pulled to zero; the window keeps its end
    start_s = max(start_s, 0.0)
    duration = end_s - start_s
    if duration <= 0:
        raise InvalidClipRangeError(start, end, reason="clip ends before the start of the audio")

    if max_duration is not None and max_duration > 0:
        duration = min(duration, max_duration)

    return ClipRange(start=start_s, duration=duration)


def _format_timestamp(seconds: float) -> str:
    whole = int(seconds)
    return f"{whole // 60}:{whole % 60:02d}"


def format_clip_caption(clip: ClipRange) -> str:
    """Human-readable caption such as ``0:05 - 0:20``."""
    return f"{_format_timestamp(clip.start)} - {_format_timestamp(clip.end)}"
