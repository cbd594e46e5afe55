"""Test-run contexts: a started backend plus a way to open sessions on it."""

from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from serial_tester.backend import AppBackend, BackendSettings, start_server
from serial_tester.browser_manager import BrowserManager, start_browser
from serial_tester.config import BrowserConfig, SessionConfig, get_settings
from serial_tester.session.base import Session
from serial_tester.session.browser import BrowserSession
from serial_tester.session.http import HttpSession

logger = structlog.get_logger()

SessionFactory = Callable[[AppBackend, int], Session]


@dataclass
class Contexts:
    """A running backend and the factory for sessions bound to it."""
    backend: AppBackend
    session_factory: SessionFactory
    verbose: bool = False
    browser_manager: Optional[BrowserManager] = None

    def create_session(self) -> Session:
        port = BackendSettings.from_app(self.backend).port
        session = self.session_factory(self.backend, port)
        if self.verbose:
            session.verbose = self.verbose
        return session

    async def close(self) -> None:
        """Stop the browser, if this context launched one."""
        if self.browser_manager is not None:
            await self.browser_manager.stop()


async def start_context(
    app_factory: Callable[[], AppBackend],
    session_factory: SessionFactory,
    verbose: Optional[bool] = None,
) -> Contexts:
    backend = await start_server(app_factory)
    if verbose is None:
        verbose = get_settings().verbose
    return Contexts(backend=backend, session_factory=session_factory, verbose=verbose)


async def start_backend_api_context(
    app_factory: Callable[[], AppBackend],
    verbose: Optional[bool] = None,
) -> Contexts:
    """Context whose sessions call the HTTP API."""
    settings = get_settings()
    return await start_context(
        app_factory,
        lambda backend, port: HttpSession(backend, port, timeout=settings.http_timeout),
        verbose,
    )


async def start_navigator_context(
    app_factory: Callable[[], AppBackend],
    browser_config: Optional[BrowserConfig] = None,
    verbose: Optional[bool] = None,
) -> Contexts:
    """Context whose sessions drive the rendered UI in one shared browser."""
    context = await start_backend_api_context(app_factory, verbose)
    manager = await start_browser(browser_config)
    session_config = SessionConfig.from_settings()
    browser = manager.get_browser()
    context.session_factory = lambda backend, port: BrowserSession(backend, browser, port, session_config)
    context.browser_manager = manager
    logger.info("Navigator context ready", browser_type=manager.config.browser_type.value)
    return context
