"""Interface of the backend application under test."""

import os
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, runtime_checkable

import structlog

from serial_tester.errors import UnknownTableError, UnsafeDatabaseError

logger = structlog.get_logger()

LOCAL_SQL_LOG = "local-log-all.sql"
MAX_TEST_DELAY = 10


@runtime_checkable
class AppBackend(Protocol):
    """What sessions need from a running backend.

    ``config`` is the backend's merged configuration tree, e.g.
    ``config["server"]["port"]`` or ``config["login"]["plus"]["successRedirect"]``.
    """

    config: dict[str, Any]

    async def start(self) -> None: ...

    def table_primary_key(self, table: str) -> Optional[list[str]]: ...

    def set_log(self, until: str) -> None: ...


def _lookup(tree: dict, *path: str, default: Any = None) -> Any:
    node: Any = tree
    for key in path:
        if not isinstance(node, dict) or key not in node:
            return default
        node = node[key]
    return node


@dataclass
class BackendSettings:
    """The part of the backend configuration sessions depend on."""
    port: int
    base_url: str = ""
    success_redirect: str = "/menu"

    @classmethod
    def from_app(cls, app: AppBackend) -> "BackendSettings":
        return cls(
            port=int(_lookup(app.config, "server", "port")),
            base_url=_lookup(app.config, "server", "base-url", default="") or "",
            success_redirect=_lookup(app.config, "login", "plus", "successRedirect", default="/menu"),
        )

    @property
    def root_url(self) -> str:
        return f"http://localhost:{self.port}{self.base_url}/"


def primary_key_of(app: AppBackend, table: str) -> list[str]:
    """Declared primary-key columns of ``table``, in declaration order."""
    primary_key = app.table_primary_key(table)
    if primary_key is None:
        raise UnknownTableError(f'table "{table}" not found in the backend table definitions')
    return list(primary_key)


def check_test_database(config: dict[str, Any]) -> None:
    """Refuse to run against a database not reserved for tests.

    A missing ``test.only-in-db`` entry only logs a warning.
    """
    delay = _lookup(config, "devel", "delay")
    if delay:
        if not isinstance(delay, (int, float)) or delay > MAX_TEST_DELAY:
            logger.warning(
                "devel.delay should be <= 10 for tests",
                delay=delay,
            )
    only_in_db = _lookup(config, "test", "only-in-db")
    database = _lookup(config, "db", "database")
    if only_in_db is None:
        logger.warning(
            "test.only-in-db is not configured; set it to the name of the "
            "only database where tests may create and modify data",
        )
    elif only_in_db != database:
        raise UnsafeDatabaseError(
            f'"{database}" is not the test database test.only-in-db = {only_in_db}'
        )


async def start_server(app_factory: Callable[[], AppBackend]) -> AppBackend:
    """Build, start and vet a backend for a test run."""
    server = app_factory()
    await server.start()
    check_test_database(server.config)
    try:
        os.unlink(LOCAL_SQL_LOG)
    except FileNotFoundError:
        pass
    server.set_log(until="5m")
    logger.info("Backend started", port=_lookup(server.config, "server", "port"))
    return server
