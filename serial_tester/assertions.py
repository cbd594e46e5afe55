"""Assertion helpers for test scenarios."""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from serial_tester.errors import ExpectedErrorNotRaised, OperationTimeoutError, UnexpectedErrorCode

logger = structlog.get_logger()

T = TypeVar("T")


def _check_code(error: Exception, code: str) -> None:
    if getattr(error, "code", None) != code:
        logger.warning("Unexpected error code", expected=code, obtained=getattr(error, "code", None), error=str(error))
        raise UnexpectedErrorCode(code, error) from error


async def _expect_error_async(pending: Awaitable[Any], code: str) -> None:
    try:
        await pending
    except Exception as e:
        _check_code(e, code)
        return
    raise ExpectedErrorNotRaised(f"expected an error with code {code!r}, none raised")


def expect_error(action: Callable[[], Any], code: str) -> Optional[Awaitable[None]]:
    """
    Assert that ``action`` fails with an error whose ``code`` is ``code``.

    If ``action`` returns an awaitable the check happens when it is awaited:

        await expect_error(lambda: session.save_record(users, row, "new"), "23505")
        expect_error(lambda: parse_something("bad"), "P0001")
    """
    try:
        result = action()
    except Exception as e:
        _check_code(e, code)
        return None
    if inspect.isawaitable(result):
        return _expect_error_async(result, code)
    raise ExpectedErrorNotRaised(f"expected an error with code {code!r}, none raised")


async def with_timeout(pending: Awaitable[T], seconds: float, message: str) -> T:
    """Await ``pending`` for at most ``seconds``."""
    try:
        return await asyncio.wait_for(pending, timeout=seconds)
    except asyncio.TimeoutError as e:
        raise OperationTimeoutError(message) from e
