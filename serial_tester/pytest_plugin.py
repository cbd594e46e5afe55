"""pytest integration for session-based scenarios."""

from contextlib import asynccontextmanager

import pytest

from serial_tester.config import get_settings
from serial_tester.utils.logging import LogContext, configure_logging


def pytest_configure(config):
    """Register the session-mode markers and set up structured logging."""
    configure_logging()
    config.addinivalue_line(
        "markers", "api: scenario runs over the HTTP API"
    )
    config.addinivalue_line(
        "markers", "browser: scenario runs in a real browser"
    )


def some_test_fails(request) -> bool:
    """Whether any test of the running pytest session has failed so far."""
    return request.session.testsfailed > 0


@asynccontextmanager
async def closing_session(session, **context):
    """Yield ``session`` and always close it afterwards.

    Log lines emitted inside the block carry the session mode plus ``context``.
    """
    with LogContext(session_mode=type(session).__name__, **context):
        try:
            yield session
        finally:
            await session.close_session()


@pytest.fixture
def serial_tester_settings():
    """Settings read from the environment."""
    return get_settings()
