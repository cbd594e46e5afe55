"""Structured value codec shared with the backend.

Plain JSON plus tagged wrappers for the values JSON cannot carry::

    {"$special": "Date", "$value": "2024-05-01T10:00:00.000Z"}
    {"$special": "date", "$value": "2024-05-01"}
    {"$special": "Infinity"} / {"$special": "-Infinity"} / {"$special": "NaN"}
    {"$special": "Decimal", "$value": "12.50"}
    {"$special": "set", "$value": [1, 2]}
    {"$special": "undefined"}

A mapping that owns a ``$special`` or ``$escape`` key of its own travels as
``{"$escape": {...}}``. Output is compact (no spaces), like the backend emits.
"""

import json
import math
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

SPECIAL = "$special"
VALUE = "$value"
ESCAPE = "$escape"


def _encode_datetime(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value.isoformat(timespec="milliseconds") + "Z"
    return value.isoformat(timespec="milliseconds")


def encode(value: Any) -> Any:
    """Turn a Python value into its plain-JSON representation."""
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value):
            return {SPECIAL: "NaN"}
        if math.isinf(value):
            return {SPECIAL: "Infinity" if value > 0 else "-Infinity"}
        return value
    # datetime is a date subclass
    if isinstance(value, datetime):
        return {SPECIAL: "Date", VALUE: _encode_datetime(value)}
    if isinstance(value, date):
        return {SPECIAL: "date", VALUE: value.isoformat()}
    if isinstance(value, Decimal):
        return {SPECIAL: "Decimal", VALUE: str(value)}
    if isinstance(value, (set, frozenset)):
        return {SPECIAL: "set", VALUE: [encode(item) for item in value]}
    if isinstance(value, (list, tuple)):
        return [encode(item) for item in value]
    if isinstance(value, dict):
        plain = {str(key): encode(item) for key, item in value.items()}
        if SPECIAL in plain or ESCAPE in plain:
            return {ESCAPE: plain}
        return plain
    raise TypeError(f"json4all cannot encode {type(value).__name__}")


def decode(value: Any) -> Any:
    """Inverse of :func:`encode` over an already-parsed JSON value."""
    if isinstance(value, list):
        return [decode(item) for item in value]
    if not isinstance(value, dict):
        return value
    if ESCAPE in value and len(value) == 1:
        return {key: decode(item) for key, item in value[ESCAPE].items()}
    if SPECIAL in value:
        return _decode_special(value[SPECIAL], value.get(VALUE))
    return {key: decode(item) for key, item in value.items()}


def _decode_special(kind: str, payload: Any) -> Any:
    if kind == "Date":
        return datetime.fromisoformat(payload)
    if kind == "date":
        return date.fromisoformat(payload)
    if kind == "Infinity":
        return math.inf
    if kind == "-Infinity":
        return -math.inf
    if kind == "NaN":
        return math.nan
    if kind == "Decimal":
        return Decimal(payload)
    if kind == "set":
        return set(decode(payload))
    if kind == "undefined":
        return None
    raise ValueError(f"json4all unknown special value {kind!r}")


def stringify(value: Any) -> str:
    return json.dumps(encode(value), ensure_ascii=False, separators=(",", ":"), allow_nan=False)


def parse(text: str) -> Any:
    return decode(json.loads(text))
