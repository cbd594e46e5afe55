"""Local data files kept between test runs (fixtures and benchmarks)."""

from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

import structlog

from serial_tester import json4all
from serial_tester.config import get_settings

logger = structlog.get_logger()

T = TypeVar("T")

BENCHMARKS_DIR = "benchmarks"
LINE_SEPARATOR = "\r\n"


def _default_file_name() -> Optional[str]:
    name = get_settings().benchmarks
    return f"local-{name}.json4all" if name else None


def load_local_file(empty: T, file_name: Optional[str] = None) -> T:
    """Content of ``file_name`` (default ``local-<benchmarks>.json4all``), or ``empty``."""
    file_name = file_name or _default_file_name()
    if not file_name:
        return empty
    try:
        raw = Path(file_name).read_text(encoding="utf-8")
    except FileNotFoundError:
        return empty
    return json4all.parse(raw)


def save_local_file(
    data: Any,
    file_name: Optional[str] = None,
    transform: Callable[[Any], str] = json4all.stringify,
) -> None:
    file_name = file_name or _default_file_name()
    if not file_name:
        return
    Path(file_name).write_text(transform(data), encoding="utf-8")


def _load_lines(path: Path) -> list[Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    return [json4all.parse(line) for line in raw.splitlines() if line.strip()]


def benchmarks_save(benchmark: dict[str, Any]) -> None:
    """Append ``benchmark`` to ``benchmarks/<benchmarks>.json4all``.

    A benchmark with the same ``date`` as the last stored one replaces it.
    """
    name = get_settings().benchmarks
    if not name:
        return
    path = Path(BENCHMARKS_DIR) / f"{name}.json4all"
    benchmarks = _load_lines(path)
    if benchmarks and benchmarks[-1].get("date") == benchmark.get("date"):
        benchmarks.pop()
    benchmarks.append(benchmark)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(LINE_SEPARATOR.join(json4all.stringify(item) for item in benchmarks), encoding="utf-8")
    logger.debug("Benchmark saved", path=str(path), count=len(benchmarks))
