"""Lifecycle of the one browser a test run shares between sessions."""

from typing import Optional

import structlog

from serial_tester.config import BrowserConfig

logger = structlog.get_logger()

LAUNCH_ARGS = ["--start-maximized", "--window-position=0,0"]


class BrowserManager:
    """
    Manages one launched Playwright browser.

    Sessions open their own contexts on it, so each session gets its own
    cookies and storage.
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()
        self._playwright = None
        self._browser = None
        self.log = logger.bind(component="browser", browser_type=self.config.browser_type.value)

    async def start(self):
        """Launch the browser."""
        from playwright.async_api import async_playwright

        if self._browser is not None:
            raise RuntimeError("Browser already started. Use stop() to close it first.")

        self._playwright = await async_playwright().start()
        browser_app = getattr(self._playwright, self.config.browser_type.value, None)
        if browser_app is None:
            await self._playwright.stop()
            self._playwright = None
            raise ValueError(f"Unsupported browser type: {self.config.browser_type.value}")

        self._browser = await browser_app.launch(
            headless=self.config.headless,
            slow_mo=self.config.slow_mo,
            args=LAUNCH_ARGS,
        )
        self.log.info("Browser started", headless=self.config.headless)
        return self._browser

    async def stop(self) -> None:
        """Close the browser."""
        if self._browser:
            await self._browser.close()
            self._browser = None
            self.log.info("Browser stopped")
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    def get_browser(self):
        if self._browser is None:
            raise RuntimeError("Browser not started. Call start_browser() first.")
        return self._browser

    def is_started(self) -> bool:
        return self._browser is not None

    async def __aenter__(self) -> "BrowserManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()


async def start_browser(config: Optional[BrowserConfig] = None) -> BrowserManager:
    """Start a browser with ``config`` (defaults from settings)."""
    manager = BrowserManager(config or BrowserConfig.from_settings())
    await manager.start()
    return manager
