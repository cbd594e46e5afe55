"""
Dual-mode test sessions for admin-grid backends.

The same scenario (log in, save a record, check the table) runs either
against the HTTP API or by driving the rendered grid in a browser.

Usage:
    from serial_tester import Credentials, TableTarget, is_object, is_string
    from serial_tester import start_backend_api_context

    context = await start_backend_api_context(MyApp)
    session = context.create_session()
    await session.login(Credentials("admin", "secret"))
    users = TableTarget("users", is_object({"username": is_string()}))
    await session.create_record(users, {"username": "bob"})
    await session.table_data_test(users, [{"username": "bob"}], "all")
"""

from .assertions import expect_error, with_timeout
from .backend import AppBackend, BackendSettings, start_server
from .benchmarks import benchmarks_save, load_local_file, save_local_file
from .browser_manager import BrowserManager, start_browser
from .comparison import compare_rows, show_and_throw
from .config import BrowserConfig, SessionConfig, Settings, get_settings
from .context import Contexts, start_backend_api_context, start_context, start_navigator_context
from .description import (
    Description,
    ProcedureTarget,
    TableTarget,
    guarantee,
    is_any,
    is_array,
    is_boolean,
    is_date,
    is_number,
    is_object,
    is_string,
    nullable,
    optional,
)
from .errors import (
    BackendError,
    ContractViolation,
    DecodingError,
    DiscrepancyError,
    LoginError,
    OperationTimeoutError,
    ProtocolError,
    SchemaValidationError,
    SerialTesterError,
    UITimeoutError,
)
from .protocol import ResultAs, parse_result
from .session import BrowserSession, Credentials, FixedField, HttpSession, SaveStatus, Session

__all__ = [
    # Sessions
    "Session",
    "HttpSession",
    "BrowserSession",
    "Credentials",
    "FixedField",
    "SaveStatus",
    # Contexts
    "Contexts",
    "start_context",
    "start_backend_api_context",
    "start_navigator_context",
    "AppBackend",
    "BackendSettings",
    "start_server",
    "BrowserManager",
    "start_browser",
    # Configuration
    "Settings",
    "get_settings",
    "BrowserConfig",
    "SessionConfig",
    # Descriptions
    "Description",
    "TableTarget",
    "ProcedureTarget",
    "guarantee",
    "is_any",
    "is_array",
    "is_boolean",
    "is_date",
    "is_number",
    "is_object",
    "is_string",
    "nullable",
    "optional",
    # Protocol and comparison
    "ResultAs",
    "parse_result",
    "compare_rows",
    "show_and_throw",
    # Assertions and local files
    "expect_error",
    "with_timeout",
    "load_local_file",
    "save_local_file",
    "benchmarks_save",
    # Errors
    "SerialTesterError",
    "ProtocolError",
    "BackendError",
    "ContractViolation",
    "LoginError",
    "SchemaValidationError",
    "OperationTimeoutError",
    "UITimeoutError",
    "DiscrepancyError",
    "DecodingError",
]
