"""Conversions between values and what the grid shows or receives as keystrokes."""

import locale
from datetime import date, datetime
from typing import Any, Optional

from serial_tester.description import ANY, BOOLEAN, STRING, Description
from serial_tester.errors import DecodingError

TRUE_TOKENS = frozenset({"si", "Si", "SI", "sí", "Sí", "SÍ", "yes", "Yes", "YES"})
FALSE_TOKENS = frozenset({"no", "No", "NO"})


def keystroke_string(value: Any) -> str:
    """Text typed into a grid cell to enter ``value``."""
    if isinstance(value, bool):
        return "Y" if value else "N"
    if value is None:
        return ""
    if isinstance(value, int):
        return locale.format_string("%d", value, grouping=True)
    if isinstance(value, float):
        return locale.str(value)
    if isinstance(value, datetime):
        return value.strftime("%x %X")
    if isinstance(value, date):
        return value.strftime("%x")
    return str(value)


def value_from_visual_representation(text: Optional[str], description: Description) -> Any:
    """Decode the rendered text of a cell.

    Empty or missing text is null, which only nullable/optional fields accept.
    Columns described as any come back as their raw text.
    """
    if not text and description.accepts_null:
        return None
    base = description.base
    if base.kind == ANY:
        return text or None
    if base.kind == STRING and text is not None:
        return text
    if base.kind == BOOLEAN:
        if text in TRUE_TOKENS:
            return True
        if text in FALSE_TOKENS:
            return False
    raise DecodingError(text, description)
