"""Decoding of backend response bodies.

The default ``JSON+`` framing interleaves progress notices with the final
payload on one stream::

    {"message": "processing table users"}
    {"message": "1 row updated"}
    --
    {"command": "UPDATE", "row": {...}}

Every line before the ``--`` separator is a notice; the single line after it
is the result. A line carrying ``{"error": {"message", "code"}}`` aborts the
call with a ``BackendError``.
"""

import re
from enum import Enum
from typing import Any, Optional

import structlog

from serial_tester import json4all
from serial_tester.errors import BackendError, ProtocolError

logger = structlog.get_logger()

SEPARATOR = "--"

_LINE_BREAK = re.compile(r"\r?\n")
_LOGIN_ERROR_MESSAGE = re.compile(r"\berror-message[^>]*>([^<]*)<")


class ResultAs(str, Enum):
    """How a response body is decoded."""
    JSON_PLUS = "JSON+"
    JSON = "JSON"
    TEXT = "text"
    LOGIN_ERROR = "bp-login-error"


def read_json_plus(text: str) -> tuple[Any, list[str]]:
    """Split a JSON+ stream into its result and its notices.

    Raises:
        BackendError: a record before the separator carries ``error``
        ProtocolError: a record is not valid JSON4all, or there is no separator
    """
    lines = _LINE_BREAK.split(text)
    notices: list[str] = []
    position = 0
    while position < len(lines):
        line = lines[position]
        position += 1
        if line == SEPARATOR:
            payload = lines[position] if position < len(lines) else ""
            return json4all.parse(payload or "null"), notices
        try:
            record = json4all.parse(line or "{}")
        except ValueError as e:
            raise ProtocolError(f"invalid JSON+ record: {line!r}") from e
        if isinstance(record, dict) and record.get("error"):
            error = record["error"]
            if isinstance(error, dict):
                raise BackendError(str(error.get("message")), error.get("code"))
            raise BackendError(str(error))
        notices.append(line)
    raise ProtocolError("result not received")


def extract_login_error(text: str) -> Optional[str]:
    """Inner text of the rendered ``error-message`` element, if any."""
    match = _LOGIN_ERROR_MESSAGE.search(text)
    return match.group(1) if match else None


def parse_result(text: str, result_as: ResultAs = ResultAs.JSON_PLUS, verbose: bool = False) -> Any:
    """Decode ``text`` according to ``result_as``."""
    result_as = ResultAs(result_as)
    if result_as == ResultAs.TEXT:
        return text
    if result_as == ResultAs.JSON_PLUS:
        result, notices = read_json_plus(text)
        for notice in notices:
            logger.debug("Backend notice", notice=notice)
        if notices and verbose:
            logger.info("Backend notices received", count=len(notices))
        return result
    if result_as == ResultAs.LOGIN_ERROR:
        return extract_login_error(text)
    try:
        return json4all.parse(text)
    except ValueError as e:
        raise ProtocolError(f"invalid JSON response: {text[:200]!r}") from e
