"""Session that drives the backend through its rendered UI.

Each session owns one browser context (its own cookie jar and storage) and
one page on it. Records are saved and read through the table grid, the way
a user would do it.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union
from urllib.parse import urljoin

import structlog
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from serial_tester import json4all, protocol
from serial_tester.backend import AppBackend
from serial_tester.comparison import show_and_throw
from serial_tester.config import SessionConfig
from serial_tester.description import Description, ProcedureTarget, TableTarget, guarantee
from serial_tester.errors import LoginError, UITimeoutError
from serial_tester.grid import GridEditor
from serial_tester.protocol import ResultAs
from serial_tester.session.base import (
    Credentials,
    EasyFixedFields,
    Row,
    SaveStatus,
    SessionSupport,
    fixed_fields_json,
    form_value,
    table_data_save_and_test,
    table_name,
    to_fixed_fields,
    with_fixed_values,
)
from serial_tester.utils.logging import log_operation

logger = structlog.get_logger()

USERNAME_INPUT = 'input[name="username"]'
PASSWORD_INPUT = 'input[name="password"]'
SUBMIT_BUTTON = 'button[type="submit"], input[type="submit"]'
LOGIN_ERROR = ".error-message"
ACTIVE_USER = "#total-layout #active-user"


class BrowserSession:
    """
    Session over a real browser page.

    Usage:
        manager = await start_browser()
        session = BrowserSession(backend, manager.get_browser())
        await session.login(Credentials("admin", "secret"))
        row = await session.create_record(users, {"username": "bob", "active": True})
        await session.close_session()
    """

    def __init__(
        self,
        backend: AppBackend,
        browser,
        port: Optional[int] = None,
        session_config: Optional[SessionConfig] = None,
        verbose: bool = False,
    ):
        self.support = SessionSupport(backend, port)
        self.base_url = self.support.root_url
        self.browser = browser
        self.session_config = session_config or SessionConfig()
        self.config: Optional[dict] = None
        self.verbose = verbose
        self._context = None
        self._page = None
        self.log = logger.bind(component="browser_session", base_url=self.base_url)

    @property
    def page(self):
        return self._page

    def _require_page(self):
        if self._page is None:
            raise RuntimeError("Browser session not initialized")
        return self._page

    async def init_session(self) -> None:
        """Open the context and the page, once."""
        if self._context is not None:
            return
        self._context = await self.browser.new_context(
            viewport=self.session_config.viewport,
            user_agent=self.session_config.user_agent,
            record_video_dir=self.session_config.videos_dir if self.session_config.record_video else None,
            record_video_size=self.session_config.viewport if self.session_config.record_video else None,
        )
        self._context.set_default_timeout(self.session_config.timeout_ms)
        self._page = await self._context.new_page()
        self._page.on("console", lambda message: self.log.info("[browser] console", text=message.text))
        self._page.on("pageerror", lambda error: self.log.error("[browser] page error", error=str(error)))

    async def close_session(self) -> None:
        """Close page and context. Safe to call more than once."""
        if self._page is not None:
            page, self._page = self._page, None
            await page.close()
        if self._context is not None:
            context, self._context = self._context, None
            await context.close()
        self.config = None

    async def __aenter__(self) -> "BrowserSession":
        await self.init_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close_session()

    async def _api_request(
        self,
        path: str,
        payload: Optional[dict[str, Any]] = None,
        method: str = "post",
        result_as: ResultAs = ResultAs.JSON_PLUS,
    ) -> Any:
        """Call the backend with the page's cookies."""
        await self.init_session()
        url = urljoin(self.base_url, path.lstrip("/"))
        if method == "get":
            response = await self._context.request.get(url)
        else:
            form = {key: form_value(value) for key, value in (payload or {}).items()}
            response = await self._context.request.post(url, form=form)
        return protocol.parse_result(await response.text(), result_as, verbose=self.verbose)

    async def login(self, credentials: Credentials, return_error_message: bool = False) -> Optional[str]:
        """
        Log in through the rendered login form.

        Success also requires the active user indicator to show
        ``credentials.username``.

        Returns:
            None on success; the rendered error message when the login is
            rejected and ``return_error_message`` is set
        """
        await self.init_session()
        page = self._require_page()
        timeout_ms = self.session_config.login_confirmation_timeout_ms
        with log_operation("login", self.log, username=credentials.username):
            login_url = urljoin(self.base_url, "login")
            self.log.debug("Going to login page", url=login_url)
            await page.goto(login_url)
            await page.fill(USERNAME_INPUT, credentials.username)
            await page.fill(PASSWORD_INPUT, credentials.password)
            await page.click(SUBMIT_BUTTON)
            await page.wait_for_load_state()
            current_url = page.url
            if not self.support.is_success_location(current_url):
                if return_error_message:
                    try:
                        message = await page.locator(LOGIN_ERROR).first.text_content(timeout=timeout_ms)
                    except PlaywrightTimeoutError as e:
                        raise UITimeoutError("login error message not rendered", selector=LOGIN_ERROR) from e
                    return message or "Login failed"
                raise LoginError(
                    f"Login failed. Current URL: {current_url}",
                    expected=self.support.settings.success_redirect,
                    obtained=self.support.location_path(current_url),
                )
            try:
                active_user = await page.wait_for_selector(ACTIVE_USER, timeout=timeout_ms)
            except PlaywrightTimeoutError as e:
                raise UITimeoutError("active user indicator not rendered", selector=ACTIVE_USER) from e
            show_and_throw(await active_user.text_content(), credentials.username)
            self.config = await self._api_request("client-setup", method="get", result_as=ResultAs.JSON)
            return None

    async def call_procedure(self, target: ProcedureTarget, params: dict[str, Any]) -> Any:
        """Call a backend procedure sharing the page's login."""
        payload: dict[str, Any] = {name: None for name in target.parameters}
        payload.update({name: json4all.stringify(value) for name, value in params.items()})
        result = await self._api_request("/" + target.procedure, payload)
        return guarantee(target.result, result)

    def grid(self) -> GridEditor:
        return GridEditor(
            self._require_page(),
            self.base_url,
            timeout_ms=self.session_config.timeout_ms,
        )

    async def open_grid(self, table: str, fixed_fields: EasyFixedFields = None) -> GridEditor:
        fixed = to_fixed_fields(fixed_fields)
        grid = self.grid()
        await grid.open(table, fixed_fields_json(fixed) if fixed else None)
        return grid

    async def save_record(
        self,
        target: TableTarget,
        row: Row,
        status: Union[SaveStatus, str],
        primary_key_values: Optional[list] = None,
    ) -> Row:
        """Enter ``row`` in the grid and return it as the grid shows it once saved."""
        status = SaveStatus(status)
        new = status == SaveStatus.NEW
        signature = None
        if not new or primary_key_values is not None or self.support.has_primary_key(target.table, row):
            signature = self.support.json_pk_values(target.table, row, primary_key_values)
        with log_operation("save_record", self.log, table=target.table, status=status.value):
            return await self.grid().save(target.table, row, new, signature, target.description)

    async def create_record(self, target: TableTarget, row: Row) -> Row:
        return await self.save_record(target, row, SaveStatus.NEW)

    async def update_record(self, target: TableTarget, row: Row, primary_key_values: Optional[list] = None) -> Row:
        return await self.save_record(target, row, SaveStatus.UPDATE, primary_key_values)

    async def get_all_visible_rows_from_grid(
        self,
        target: Union[TableTarget, str],
        fixed_fields: EasyFixedFields = None,
    ) -> list[Row]:
        """Every row of the grid, after loading all of them."""
        description: Optional[Description] = None if isinstance(target, str) else target.description
        grid = await self.open_grid(table_name(target), fixed_fields)
        await grid.show_all_rows()
        return await grid.read_visible_rows(description)

    async def table_data_test(
        self,
        target: Union[TableTarget, str],
        rows: list[Row],
        compare: str = "all",
        fixed_fields: EasyFixedFields = None,
    ) -> None:
        """Read the grid and compare it with ``rows``."""
        fixed = to_fixed_fields(fixed_fields)
        observed = await self.get_all_visible_rows_from_grid(target, fixed)
        self.support.compare_rows(
            with_fixed_values(observed, fixed),
            with_fixed_values(rows, fixed),
            compare,
            verbose=self.verbose,
        )

    async def table_data_save_and_test(
        self,
        table: str,
        rows: list[Row],
        compare: str = "all",
        status: Union[SaveStatus, str] = SaveStatus.NEW,
    ) -> None:
        await table_data_save_and_test(self, table, rows, compare, status)

    async def take_screenshot(self, name: Optional[str] = None) -> str:
        """Save a full-page screenshot and return its path."""
        page = self._require_page()
        timestamp = datetime.now().isoformat().replace(":", "-").replace(".", "-")
        directory = Path(self.session_config.screenshots_dir)
        directory.mkdir(parents=True, exist_ok=True)
        filename = str(directory / f"{name or 'screenshot'}-{timestamp}.png")
        await page.screenshot(path=filename, full_page=True)
        return filename

    async def wait_for_element(self, selector: str, timeout_ms: int = 5000) -> None:
        page = self._require_page()
        try:
            await page.wait_for_selector(selector, timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise UITimeoutError(f"timeout waiting for {selector}", selector=selector) from e

    async def get_element_text(self, selector: str) -> str:
        page = self._require_page()
        return await page.locator(selector).text_content() or ""

    async def click_element(self, selector: str) -> None:
        page = self._require_page()
        await page.click(selector)

    async def fill_form(self, selector: str, data: dict[str, Any]) -> None:
        """Fill the fields of a form by name or id."""
        page = self._require_page()
        for field_name, value in data.items():
            await page.fill(f'{selector} [name="{field_name}"], {selector} #{field_name}', str(value))

    async def submit_form(self, selector: str) -> None:
        page = self._require_page()
        await page.click(f'{selector} button[type="submit"], {selector} input[type="submit"]')
        await page.wait_for_load_state()
