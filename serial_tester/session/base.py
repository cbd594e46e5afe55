"""The session contract and the helpers both session modes compose."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol, Sequence, Union, runtime_checkable
from urllib.parse import urlsplit

from serial_tester import json4all
from serial_tester.backend import AppBackend, BackendSettings, primary_key_of
from serial_tester.comparison import compare_rows
from serial_tester.description import ProcedureTarget, TableTarget

Row = dict[str, Any]

_MISSING = object()


class SaveStatus(str, Enum):
    """Whether a saved row is inserted or updated."""
    NEW = "new"
    UPDATE = "update"


@dataclass
class Credentials:
    username: str
    password: str


@dataclass
class FixedField:
    """Constrains ``field_name`` to ``value`` (or to ``value``..``until``)."""
    field_name: str
    value: Any
    until: Any = _MISSING

    @property
    def is_range(self) -> bool:
        return self.until is not _MISSING

    def to_wire(self) -> dict:
        wire = {"fieldName": self.field_name, "value": self.value}
        if self.is_range:
            wire["until"] = self.until
        return wire


EasyFixedFields = Union[None, Sequence[Union[FixedField, dict]], dict[str, Any]]


def to_fixed_fields(param: EasyFixedFields) -> list[FixedField]:
    """Normalize fixed fields to a list.

    Accepts a list of ``FixedField`` (or ``{"fieldName", "value", "until"?}``
    dicts), or a mapping ``{field: value}`` where a two-item list/tuple value
    means a ``[from, to]`` range.
    """
    if param is None:
        return []
    if isinstance(param, dict):
        fixed = []
        for field_name, value in param.items():
            if isinstance(value, (list, tuple)):
                fixed.append(FixedField(field_name, value[0], value[1]))
            else:
                fixed.append(FixedField(field_name, value))
        return fixed
    fixed = []
    for item in param:
        if isinstance(item, FixedField):
            fixed.append(item)
        else:
            fixed.append(FixedField(item["fieldName"], item["value"], item.get("until", _MISSING)))
    return fixed


def fixed_fields_json(param: EasyFixedFields) -> str:
    return json4all.stringify([fixed.to_wire() for fixed in to_fixed_fields(param)])


def with_fixed_values(rows: list[Row], fixed_fields: list[FixedField]) -> list[Row]:
    """Copies of ``rows`` carrying the exact-value fixed fields.

    The grid hides columns fixed by its filter, so both sides of a
    comparison get them back before rows are compared.
    """
    exact = {fixed.field_name: fixed.value for fixed in fixed_fields if not fixed.is_range}
    return [{**row, **exact} for row in rows]


def form_value(value: Any) -> str:
    """Form-field text for a payload value; non-strings are JSON4all-encoded."""
    if value is None:
        return "null"
    if isinstance(value, str):
        return value
    return json4all.stringify(value)


def table_name(target: Union[TableTarget, str]) -> str:
    return target if isinstance(target, str) else target.table


class SessionSupport:
    """Backend-bound logic shared by HTTP and browser sessions."""

    def __init__(self, backend: AppBackend, port: Optional[int] = None):
        self.backend = backend
        self.settings = BackendSettings.from_app(backend)
        if port is not None:
            self.settings.port = port

    @property
    def root_url(self) -> str:
        return self.settings.root_url

    def json_pk_values(self, table: str, row: Row, primary_key_values: Optional[list] = None) -> str:
        """Primary-key signature of ``row``.

        Key columns are taken in the table's declared order, never in the
        row's iteration order.
        """
        primary_key = primary_key_of(self.backend, table)
        if primary_key_values is None:
            primary_key_values = [row.get(column) for column in primary_key]
        return json4all.stringify(list(primary_key_values))

    def has_primary_key(self, table: str, row: Row) -> bool:
        return all(column in row for column in primary_key_of(self.backend, table))

    def location_path(self, location: Optional[str]) -> Optional[str]:
        """Redirect target or page URL, as a path relative to the backend root."""
        if location is None:
            return None
        if location.startswith(self.root_url):
            location = "/" + location[len(self.root_url):]
        elif "://" in location:
            location = urlsplit(location).path
        location = re.sub(r"^\.", "", location)
        return re.split(r"[?#]", location, maxsplit=1)[0]

    def is_success_location(self, location: Optional[str]) -> bool:
        return self.location_path(location) == self.settings.success_redirect

    def compare_rows(self, obtained: list[Row], expected: list[Row], compare: str, verbose: bool = False) -> None:
        compare_rows(obtained, expected, compare, verbose=verbose)


@runtime_checkable
class Session(Protocol):
    """One authenticated, isolated interaction context against the backend.

    ``HttpSession`` talks to the API directly; ``BrowserSession`` drives the
    rendered UI. Tests written against this protocol run in either mode.
    """

    config: Optional[dict]
    verbose: bool

    async def login(self, credentials: Credentials, return_error_message: bool = False) -> Optional[str]: ...

    async def call_procedure(self, target: ProcedureTarget, params: dict[str, Any]) -> Any: ...

    async def save_record(
        self,
        target: TableTarget,
        row: Row,
        status: Union[SaveStatus, str],
        primary_key_values: Optional[list] = None,
    ) -> Row: ...

    async def create_record(self, target: TableTarget, row: Row) -> Row: ...

    async def update_record(self, target: TableTarget, row: Row, primary_key_values: Optional[list] = None) -> Row: ...

    async def table_data_test(
        self,
        target: Union[TableTarget, str],
        rows: list[Row],
        compare: str = "all",
        fixed_fields: EasyFixedFields = None,
    ) -> None: ...

    async def close_session(self) -> None: ...


async def table_data_save_and_test(
    session: Session,
    table: str,
    rows: list[Row],
    compare: str = "all",
    status: Union[SaveStatus, str] = SaveStatus.NEW,
) -> None:
    """Save every row, then check the table holds exactly them."""
    target = TableTarget(table)
    for row in rows:
        await session.save_record(target, row, status)
    await session.table_data_test(table, rows, compare)
