"""Greedy word wrapping against an injected width measurement."""

from typing import Callable

MeasureFn = Callable[[str], float]


def wrap_text(text: str, max_width: float, measure: MeasureFn) -> list[str]:
    """Wrap text into lines no wider than max_width.

    Words are added to the current line until the next one would overflow;
    then the line is closed and the word starts a new one. A word that is
    wider than max_width on its own gets a line to itself and is never split.
    Explicit newlines in the input start a new paragraph.

    Args:
        text: Text to wrap
        max_width: Maximum line width in the units returned by measure
        measure: Returns the rendered width of a string

    Returns:
        At least one line. Empty input yields a single empty line.
    """
    lines: list[str] = []

    for paragraph in text.split("\n"):
        current: list[str] = []
        for word in paragraph.split():
            candidate = " ".join(current + [word])
            if current and measure(candidate) > max_width:
                lines.append(" ".join(current))
                current = [word]
            else:
                current.append(word)
        if current:
            lines.append(" ".join(current))

    return lines or [""]
