"""Deep comparison of observed rows against expected rows."""

from typing import Any, Iterable

import structlog
from deepdiff import DeepDiff

from serial_tester.errors import DiscrepancyError, ProtocolError

logger = structlog.get_logger()

COMPARE_MODES = ("all",)


def show_and_throw(obtained: Any, expected: Any, verbose: bool = False) -> None:
    """Raise ``DiscrepancyError`` unless both values are structurally equal.

    Lists are compared positionally and types must match exactly.
    """
    diff = DeepDiff(expected, obtained, ignore_order=False)
    if diff:
        differences = dict(diff)
        if verbose:
            logger.warning(
                "Discrepancies found",
                obtained=obtained,
                expected=expected,
                differences=differences,
            )
        raise DiscrepancyError(obtained, expected, differences)


def project_rows(obtained: Iterable[dict], columns: Iterable[str]) -> list[dict]:
    """Keep only ``columns`` in every row."""
    wanted = set(columns)
    return [{key: value for key, value in row.items() if key in wanted} for row in obtained]


def compare_rows(
    obtained: list[dict],
    expected: list[dict],
    compare: str = "all",
    verbose: bool = False,
) -> None:
    """Compare row sets in order.

    Observed rows are projected onto the columns of the first expected row,
    so extra observed columns are ignored.
    """
    if compare not in COMPARE_MODES:
        raise ProtocolError(f"mode not recognized {compare}")
    if expected:
        obtained = project_rows(obtained, expected[0].keys())
    show_and_throw(obtained, expected, verbose=verbose)
