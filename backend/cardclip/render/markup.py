"""Escaping for untrusted strings placed into SVG markup."""

from cardclip.exceptions import ValidationError

_ENTITIES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
}

# Characters that could close or reopen an attribute value
_ATTRIBUTE_BREAKERS = frozenset('"\'<>')


def escape_markup(text: str | None) -> str:
    """Escape &, <, > and " in text.

    Each source character is looked up once, so entities produced here are
    never escaped a second time.
    """
    if not text:
        return ""
    return "".join(_ENTITIES.get(ch, ch) for ch in text)


def validate_attribute_value(value: str, field: str = "attribute") -> str:
    """Reject values that would break out of a quoted XML attribute."""
    bad = _ATTRIBUTE_BREAKERS.intersection(value)
    if bad:
        raise ValidationError(
            f"{field} contains characters not allowed in markup attributes: {''.join(sorted(bad))}",
            stage="render",
        )
    return value
