"""Keyboard-driven editing of the rendered table grid.

A save walks through::

    CLOSED -> OPEN -> ROW_LOCATED -> EDITING (one column at a time) -> SAVED

Cells are filled the way a user would: focus the first cell, type, press Tab
to move to the next cell when it is the adjacent one, re-focus otherwise.
Each cell is saved asynchronously by the page; the save is done when every
touched cell reports a terminal ``io-status``.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote, urljoin

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from serial_tester.description import OBJECT, Description, guarantee, is_any
from serial_tester.errors import UITimeoutError
from serial_tester.visual import keystroke_string, value_from_visual_representation

logger = structlog.get_logger()

AdjacencyCheck = Callable[[Any, Any], Awaitable[bool]]

SETTLED_STATUSES = ("ok", "temporary-ok", "temporal-ok")


def escape_css(value: str) -> str:
    """Quote ``value`` for use inside an attribute selector."""
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


async def are_consecutive(page, first, second) -> bool:
    """Whether ``second`` is the next element sibling of ``first``."""
    return await page.evaluate(
        "([first, second]) => first.nextElementSibling === second",
        [first, second],
    )


class GridState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    ROW_LOCATED = "row_located"
    EDITING = "editing"
    SAVED = "saved"


@dataclass(frozen=True)
class GridSelectors:
    """DOM conventions of the rendered grid."""
    grid: str = "table.my-grid"
    rows: str = "table.my-grid tbody tr"
    insert_button: str = "button[bp-action=INS]"
    show_all: str = "table.my-grid [bp-action=show-all]"
    column_attribute: str = "my-colname"
    status_attribute: str = "io-status"
    primary_key_attribute: str = "pk-values"
    rows_state_attribute: str = "rows-state"

    def row(self, signature: Optional[str]) -> str:
        if signature is None:
            return f"{self.rows}:not([{self.primary_key_attribute}])"
        return f"{self.rows}[{self.primary_key_attribute}={escape_css(signature)}]"

    def cell(self, column: str) -> str:
        return f"[{self.column_attribute}={escape_css(column)}]"

    def settled_cell(self, column: str, scope: str = "") -> str:
        cell = f"{scope} {self.cell(column)}" if scope else self.cell(column)
        alternatives = [f"{cell}[{self.status_attribute}={status}]" for status in SETTLED_STATUSES]
        alternatives.append(f"{cell}:not([{self.status_attribute}])")
        return ",".join(alternatives)


@dataclass
class TouchedElement:
    """A cell edited during the current save, in editing order."""
    column: str
    element: Any


class GridEditor:
    """
    Drives one grid on one page.

    Args:
        page: Playwright page
        root_url: Backend root URL (ending with ``/``)
        adjacency: ``async (a, b) -> bool`` telling whether ``b`` follows ``a``
            in the DOM; defaults to an in-page ``nextElementSibling`` check
        timeout_ms: Timeout for every selector wait
        cell_lookup_timeout_ms: Timeout for finding a cell directly under its
            row before falling back to a table-wide lookup
    """

    def __init__(
        self,
        page,
        root_url: str,
        adjacency: Optional[AdjacencyCheck] = None,
        timeout_ms: int = 30000,
        cell_lookup_timeout_ms: int = 2000,
        selectors: Optional[GridSelectors] = None,
    ):
        self.page = page
        self.root_url = root_url
        self.adjacency = adjacency or (lambda first, second: are_consecutive(page, first, second))
        self.timeout_ms = timeout_ms
        self.cell_lookup_timeout_ms = cell_lookup_timeout_ms
        self.selectors = selectors or GridSelectors()
        self.state = GridState.CLOSED
        self.table: Optional[str] = None
        self.row = None
        self.row_selector: Optional[str] = None
        self.log = logger.bind(component="grid")

    def _require(self, *states: GridState) -> None:
        if self.state not in states:
            raise RuntimeError(f"grid is {self.state.value}, expected {' or '.join(s.value for s in states)}")

    async def _wait(self, scope, selector: str, state: str = "visible", timeout_ms: Optional[int] = None):
        try:
            return await scope.wait_for_selector(selector, state=state, timeout=timeout_ms or self.timeout_ms)
        except PlaywrightTimeoutError as e:
            raise UITimeoutError(f"timeout waiting for {selector}", selector=selector) from e

    def grid_url(self, table: str, fixed_fields_json: Optional[str] = None) -> str:
        fragment = f"table={table}"
        if fixed_fields_json:
            fragment += f"&ff={quote(fixed_fields_json, safe='')}"
        return urljoin(self.root_url, f"menu#{fragment}")

    async def open(self, table: str, fixed_fields_json: Optional[str] = None) -> None:
        """Navigate to the grid of ``table`` and wait until it is attached."""
        url = self.grid_url(table, fixed_fields_json)
        self.log.debug("Opening grid", table=table, url=url)
        await self.page.goto(url)
        await self._wait(self.page, self.selectors.grid, state="attached")
        self.table = table
        self.row = None
        self.row_selector = None
        self.state = GridState.OPEN

    async def locate_row(self, new: bool, signature: Optional[str] = None):
        """Insert a fresh row, or find the persisted row carrying ``signature``."""
        self._require(GridState.OPEN, GridState.SAVED)
        if new:
            insert_button = await self._wait(self.page, self.selectors.insert_button)
            await insert_button.click()
            row = await self._wait(self.page, self.selectors.row(None))
        else:
            row = await self._wait(self.page, self.selectors.row(signature))
        self.row = row
        self.row_selector = self.selectors.row(signature)
        self.state = GridState.ROW_LOCATED
        return row

    async def find_cell(self, column: str):
        """Cell of ``column`` in the located row.

        The row element can be replaced right after an insert; when the
        direct lookup fails the cell is looked up from the table by the row
        selector instead.
        """
        cell_selector = self.selectors.cell(column)
        try:
            cell = await self.row.wait_for_selector(cell_selector, timeout=self.cell_lookup_timeout_ms)
        except PlaywrightError:
            self.log.debug("Cell not under row, searching the table", column=column)
            cell = await self._wait(self.page, f"{self.row_selector} {cell_selector}")
        try:
            await cell.wait_for_element_state("visible", timeout=self.timeout_ms)
        except PlaywrightTimeoutError as e:
            raise UITimeoutError(f"cell {column} never became visible", selector=cell_selector) from e
        return cell

    async def enter_value(self, column: str, value: Any, previous: Optional[TouchedElement]) -> TouchedElement:
        """Type ``value`` into the cell of ``column``."""
        self._require(GridState.ROW_LOCATED, GridState.EDITING)
        cell = await self.find_cell(column)
        if previous is not None and await self.adjacency(previous.element, cell):
            await self.page.keyboard.press("Tab")
        else:
            await cell.focus()
            await self.page.keyboard.press("Shift+End")
        await self.page.keyboard.insert_text(keystroke_string(value))
        self.state = GridState.EDITING
        return TouchedElement(column, cell)

    async def edit_row(self, row: dict[str, Any]) -> list[TouchedElement]:
        """Fill every column of ``row``, in the row's own order."""
        touched: list[TouchedElement] = []
        for column, value in row.items():
            previous = touched[-1] if touched else None
            touched.append(await self.enter_value(column, value, previous))
        return touched

    async def _wait_settled(self, column: str) -> None:
        settled = self.selectors.settled_cell(column)
        try:
            await self.row.wait_for_selector(settled, state="attached", timeout=self.timeout_ms)
        except PlaywrightTimeoutError as e:
            raise UITimeoutError(f"cell {column} never settled", selector=settled) from e
        except PlaywrightError:
            self.log.debug("Row replaced, waiting for the cell from the table", column=column)
            await self._wait(self.page, self.selectors.settled_cell(column, self.row_selector), state="attached")

    async def commit(self, touched: list[TouchedElement]) -> None:
        """Leave the last cell and wait until every touched cell is saved."""
        self._require(GridState.EDITING)
        await self.page.keyboard.press("Tab")
        await asyncio.gather(*[self._wait_settled(item.column) for item in touched])
        self.state = GridState.SAVED

    async def _cell_text(self, item: TouchedElement) -> Optional[str]:
        try:
            return await item.element.text_content()
        except PlaywrightError:
            cell = await self._wait(self.page, f"{self.row_selector} {self.selectors.cell(item.column)}", state="attached")
            return await cell.text_content()

    async def extract(self, touched: list[TouchedElement], description: Description) -> dict[str, Any]:
        """Read back the touched cells, decoded with ``description``."""
        if description.kind != OBJECT:
            raise TypeError("row description must be an object description")
        result = {}
        for item in touched:
            text = await self._cell_text(item)
            result[item.column] = value_from_visual_representation(
                text, description.fields.get(item.column, is_any())
            )
        return guarantee(description, result)

    async def save(
        self,
        table: str,
        row: dict[str, Any],
        new: bool,
        signature: Optional[str],
        description: Description,
    ) -> dict[str, Any]:
        """Open the grid, enter ``row`` and return it as the grid shows it."""
        await self.open(table)
        await self.locate_row(new, signature)
        touched = await self.edit_row(row)
        await self.commit(touched)
        return await self.extract(touched, description)

    async def show_all_rows(self) -> None:
        """Drive the "show all rows" control until every row is loaded."""
        self._require(GridState.OPEN, GridState.SAVED)
        toggle = await self.page.query_selector(self.selectors.show_all)
        if toggle is None:
            return
        if await toggle.get_attribute(self.selectors.rows_state_attribute) == "displayed":
            return
        await toggle.click()
        await self._wait(
            self.page,
            f"{self.selectors.show_all}[{self.selectors.rows_state_attribute}=displayed]",
            state="attached",
        )

    async def read_visible_rows(self, description: Optional[Description] = None) -> list[dict[str, Any]]:
        """Visible rows as ``{column: value}``.

        Without a description cell texts are returned as they are, empty
        cells as None.
        """
        self._require(GridState.OPEN, GridState.SAVED)
        rows = []
        for row in await self.page.query_selector_all(self.selectors.rows):
            if not await row.is_visible():
                continue
            values = {}
            for cell in await row.query_selector_all(f"[{self.selectors.column_attribute}]"):
                column = await cell.get_attribute(self.selectors.column_attribute)
                text = await cell.text_content()
                if description is not None and column in description.fields:
                    values[column] = value_from_visual_representation(text, description.fields[column])
                else:
                    values[column] = text or None
            rows.append(values)
        return rows
