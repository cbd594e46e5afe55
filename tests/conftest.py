"""Shared fixtures for session tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "smoke: mark test as smoke test (fast, critical path - included in CI)"
    )
    config.addinivalue_line(
        "markers", "e2e: mark test as end-to-end test against a running backend"
    )


class FakeBackend:
    """In-memory stand-in for the backend application."""

    def __init__(self, config=None, primary_keys=None):
        self.config = config or {
            "server": {"port": 3033, "base-url": ""},
            "login": {"plus": {"successRedirect": "/menu"}},
            "test": {"only-in-db": "test_db"},
            "db": {"database": "test_db"},
        }
        self.primary_keys = primary_keys if primary_keys is not None else {
            "users": ["id"],
            "periods": ["year", "month"],
        }
        self.started = False
        self.log_until = None

    async def start(self):
        self.started = True

    def table_primary_key(self, table):
        return self.primary_keys.get(table)

    def set_log(self, until):
        self.log_until = until


@pytest.fixture
def backend():
    """A fake backend listening on port 3033 with success redirect /menu."""
    return FakeBackend()


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("SERIAL_TESTER_HEADLESS", "true")
    monkeypatch.setenv("SERIAL_TESTER_TIMEOUT_MS", "1000")
    monkeypatch.delenv("SERIAL_TESTER_BENCHMARKS", raising=False)
    monkeypatch.delenv("SERIAL_TESTER_VERBOSE", raising=False)


@pytest.fixture
def mock_page():
    """Create a mock Playwright page."""
    page = MagicMock()
    page.url = "http://localhost:3033/menu"
    page.goto = AsyncMock()
    page.fill = AsyncMock()
    page.click = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.query_selector = AsyncMock(return_value=None)
    page.query_selector_all = AsyncMock(return_value=[])
    page.evaluate = AsyncMock(return_value=False)
    page.screenshot = AsyncMock()
    page.close = AsyncMock()
    page.keyboard = MagicMock()
    page.keyboard.press = AsyncMock()
    page.keyboard.insert_text = AsyncMock()
    return page


def make_element(text=None, attributes=None, visible=True):
    """Create a mock Playwright element handle."""
    element = MagicMock()
    attributes = attributes or {}
    element.text_content = AsyncMock(return_value=text)
    element.get_attribute = AsyncMock(side_effect=lambda name: attributes.get(name))
    element.is_visible = AsyncMock(return_value=visible)
    element.focus = AsyncMock()
    element.click = AsyncMock()
    element.wait_for_element_state = AsyncMock()
    element.wait_for_selector = AsyncMock()
    element.query_selector_all = AsyncMock(return_value=[])
    return element


@pytest.fixture
def element_factory():
    """Factory for mock element handles."""
    return make_element
