"""Session that drives the backend straight through its HTTP API."""

from dataclasses import dataclass
from typing import Any, Optional, Union
from urllib.parse import urljoin

import httpx
import structlog

from serial_tester import json4all, protocol
from serial_tester.backend import AppBackend
from serial_tester.description import ProcedureTarget, TableTarget, guarantee, is_array, is_object
from serial_tester.errors import ContractViolation, LoginError, ProtocolError
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
)
from serial_tester.utils.logging import log_operation

logger = structlog.get_logger()

SAVE_COMMANDS = ("INSERT", "UPDATE")


@dataclass
class ResponseHeaders:
    """What a headers-only request returns."""
    status: int
    location: Optional[str]


class HttpSession:
    """
    Session over direct API calls.

    Cookies are captured from every response and replace the previous set;
    one request is in flight at a time.

    Usage:
        async with HttpSession(backend) as session:
            await session.login(Credentials("admin", "secret"))
            row = await session.create_record(users, {"username": "bob"})
    """

    def __init__(
        self,
        backend: AppBackend,
        port: Optional[int] = None,
        parse_result: ResultAs = ResultAs.JSON_PLUS,
        verbose: bool = False,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            backend: Running backend application
            port: Port override (defaults to the backend's configured port)
            parse_result: Default decoding for POST responses
            verbose: Log notices and compared rows
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        """
        self.support = SessionSupport(backend, port)
        self.base_url = self.support.root_url
        self.cookies: list[str] = []
        self.config: Optional[dict] = None
        self.parse_result = ResultAs(parse_result)
        self.verbose = verbose
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.log = logger.bind(component="http_session", base_url=self.base_url)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                follow_redirects=False,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def fetch(
        self,
        target: str,
        method: str,
        headers: dict[str, str],
        body: Optional[dict[str, str]],
        only_headers: bool = False,
    ) -> Union[ResponseHeaders, str]:
        client = await self._get_client()
        response = await client.request(method.upper(), target, headers=headers, data=body)
        self.cookies = response.headers.get_list("set-cookie")
        # the captured list is the only cookie state
        client.cookies.clear()
        if only_headers:
            return ResponseHeaders(status=response.status_code, location=response.headers.get("location"))
        return response.text

    async def request(
        self,
        path: str,
        payload: Optional[dict[str, Any]] = None,
        method: str = "post",
        only_headers: Optional[bool] = None,
        parse_result: Optional[ResultAs] = None,
    ) -> Any:
        """
        Send a request to the backend.

        Args:
            path: Path relative to the backend root (or an absolute URL)
            payload: Flat mapping sent form-encoded
            method: HTTP method
            only_headers: Return status and location instead of the body
                (defaults to True for HEAD)
            parse_result: Body decoding (defaults to text for GET,
                to the session default otherwise)

        Returns:
            ``ResponseHeaders`` or the decoded body
        """
        if only_headers is None:
            only_headers = method == "head"
        if parse_result is None:
            parse_result = ResultAs.TEXT if method == "get" else self.parse_result
        headers: dict[str, str] = {}
        body = None
        if payload is not None:
            headers["Content-Type"] = "application/x-www-form-urlencoded"
            body = {key: form_value(value) for key, value in payload.items()}
        if self.cookies:
            headers["Cookie"] = "; ".join(cookie.split(";")[0] for cookie in self.cookies)
        target = urljoin(self.base_url, path.lstrip("/"))
        self.log.debug("Request", method=method, target=target)
        result = await self.fetch(target, method, headers, body, only_headers)
        if isinstance(result, str):
            return protocol.parse_result(result, parse_result, verbose=self.verbose)
        return result

    async def login(self, credentials: Credentials, return_error_message: bool = False) -> Optional[str]:
        """
        Log in through ``/login``.

        Returns:
            None on success; the rendered error message when the login is
            rejected and ``return_error_message`` is set
        """
        with log_operation("login", self.log, username=credentials.username):
            result = await self.request(
                "/login",
                payload={"username": credentials.username, "password": credentials.password},
                only_headers=True,
            )
            if result.status != 302:
                raise ProtocolError(f"a redirection was expected, got status {result.status}")
            location = result.location
            if not self.support.is_success_location(location):
                if return_error_message:
                    return await self.request(location or "/login", method="get", parse_result=ResultAs.LOGIN_ERROR)
                raise LoginError(
                    f"login redirected to {self.support.location_path(location)!r}, "
                    f"expected {self.support.settings.success_redirect!r}",
                    expected=self.support.settings.success_redirect,
                    obtained=self.support.location_path(location),
                )
            self.config = await self.request("/client-setup", method="get", parse_result=ResultAs.JSON)
            return None

    async def call_procedure(self, target: ProcedureTarget, params: dict[str, Any]) -> Any:
        """Call a backend procedure; undeclared-in-call parameters are sent as null."""
        payload: dict[str, Any] = {name: None for name in target.parameters}
        payload.update({name: json4all.stringify(value) for name, value in params.items()})
        result = await self.request("/" + target.procedure, payload=payload)
        return guarantee(target.result, result)

    async def save_record(
        self,
        target: TableTarget,
        row: Row,
        status: Union[SaveStatus, str],
        primary_key_values: Optional[list] = None,
    ) -> Row:
        """Save ``row`` through ``/table_record_save`` and return the stored row."""
        status = SaveStatus(status)
        with log_operation("save_record", self.log, table=target.table, status=status.value):
            result = await self.request(
                "/table_record_save",
                payload={
                    "table": target.table,
                    "primaryKeyValues": self.support.json_pk_values(target.table, row, primary_key_values),
                    "newRow": json4all.stringify(row),
                    "oldRow": json4all.stringify({}),
                    "status": status.value,
                },
            )
            command = result.get("command") if isinstance(result, dict) else None
            if command not in SAVE_COMMANDS:
                raise ContractViolation(f"unexpected save command {command!r}, expected INSERT or UPDATE")
            return guarantee(target.description, result.get("row"))

    async def create_record(self, target: TableTarget, row: Row) -> Row:
        return await self.save_record(target, row, SaveStatus.NEW)

    async def update_record(self, target: TableTarget, row: Row, primary_key_values: Optional[list] = None) -> Row:
        return await self.save_record(target, row, SaveStatus.UPDATE, primary_key_values)

    async def table_data_test(
        self,
        target: Union[TableTarget, str],
        rows: list[Row],
        compare: str = "all",
        fixed_fields: EasyFixedFields = None,
        **options: Any,
    ) -> None:
        """Read the table through ``/table_data`` and compare it with ``rows``."""
        result = await self.request(
            "/table_data",
            payload={
                "table": table_name(target),
                "paramFun": "{}",
                **options,
                "fixedFields": fixed_fields_json(fixed_fields),
            },
        )
        response = guarantee(is_array(is_object({})), result)
        self.support.compare_rows(response, rows, compare, verbose=self.verbose)

    async def table_data_save_and_test(
        self,
        table: str,
        rows: list[Row],
        compare: str = "all",
        status: Union[SaveStatus, str] = SaveStatus.NEW,
    ) -> None:
        await table_data_save_and_test(self, table, rows, compare, status)

    async def close_session(self) -> None:
        """Forget cookies and configuration. Safe to call more than once."""
        self.cookies = []
        self.config = None
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "HttpSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close_session()

