"""Tests for the grid editor."""

from unittest.mock import AsyncMock, call

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from conftest import make_element
from serial_tester.description import is_boolean, is_number, is_object, is_string
from serial_tester.errors import UITimeoutError
from serial_tester.grid import GridEditor, GridSelectors, GridState, TouchedElement, escape_css

ROOT = "http://localhost:3033/"
SELECTORS = GridSelectors()


def build_grid(page, columns, order=None, texts=None):
    """Grid over ``page`` whose located row holds one cell per column.

    ``order`` is the DOM order of the cells; adjacency is decided from it.
    """
    texts = texts or {}
    cells = {column: make_element(text=texts.get(column)) for column in columns}
    order = order or list(columns)
    row = make_element()

    async def row_wait(selector, **kwargs):
        for column, cell in cells.items():
            if selector == SELECTORS.cell(column):
                return cell
        return make_element()

    row.wait_for_selector = AsyncMock(side_effect=row_wait)
    page.wait_for_selector = AsyncMock(return_value=row)

    dom_index = {id(cells[column]): position for position, column in enumerate(order) if column in cells}

    async def adjacency(first, second):
        return dom_index[id(second)] == dom_index[id(first)] + 1

    grid = GridEditor(page, ROOT, adjacency=adjacency)
    return grid, row, cells


class TestSelectors:
    """Tests for the grid DOM conventions."""

    def test_escape_css(self):
        """Test quotes and backslashes are escaped."""
        assert escape_css("[\"a'b\"]") == "'[\"a\\'b\"]'"

    def test_new_row_selector(self):
        """Test new rows are the ones without a signature."""
        assert SELECTORS.row(None) == "table.my-grid tbody tr:not([pk-values])"

    def test_row_by_signature(self):
        """Test persisted rows are found by their signature."""
        assert SELECTORS.row("[5]") == "table.my-grid tbody tr[pk-values='[5]']"

    def test_settled_cell(self):
        """Test every terminal status plus no status is accepted."""
        selector = SELECTORS.settled_cell("name")
        assert "[my-colname='name'][io-status=ok]" in selector
        assert "[my-colname='name'][io-status=temporal-ok]" in selector
        assert "[my-colname='name']:not([io-status])" in selector

    def test_scoped_settled_cell(self):
        """Test a scope prefixes every alternative, even with commas in the column name."""
        selector = SELECTORS.settled_cell("a,b", "tr.x")
        assert selector.count("tr.x [my-colname='a,b']") == 4


class TestOpen:
    """Tests for opening a grid."""

    def test_grid_url(self, mock_page):
        """Test the table and fixed fields go in the fragment."""
        grid = GridEditor(mock_page, ROOT)
        assert grid.grid_url("users") == "http://localhost:3033/menu#table=users"
        assert grid.grid_url("users", '[{"fieldName":"a"}]') == (
            "http://localhost:3033/menu#table=users&ff=%5B%7B%22fieldName%22%3A%22a%22%7D%5D"
        )

    @pytest.mark.asyncio
    async def test_open(self, mock_page):
        """Test navigation and the wait for the grid."""
        grid = GridEditor(mock_page, ROOT)
        await grid.open("users")

        mock_page.goto.assert_called_once_with("http://localhost:3033/menu#table=users")
        mock_page.wait_for_selector.assert_called_once_with("table.my-grid", state="attached", timeout=30000)
        assert grid.state == GridState.OPEN

    @pytest.mark.asyncio
    async def test_open_timeout(self, mock_page):
        """Test a grid that never renders."""
        mock_page.wait_for_selector = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout 30000ms exceeded"))
        grid = GridEditor(mock_page, ROOT)

        with pytest.raises(UITimeoutError) as exc_info:
            await grid.open("users")
        assert exc_info.value.selector == "table.my-grid"
        assert grid.state == GridState.CLOSED

    @pytest.mark.asyncio
    async def test_locate_requires_open(self, mock_page):
        """Test the state machine rejects out of order steps."""
        with pytest.raises(RuntimeError):
            await GridEditor(mock_page, ROOT).locate_row(True)


class TestLocateRow:
    """Tests for locating the edited row."""

    @pytest.mark.asyncio
    async def test_new_row_clicks_insert(self, mock_page):
        """Test a new row is inserted with the insert button."""
        button = make_element()
        row = make_element()
        mock_page.wait_for_selector = AsyncMock(side_effect=[make_element(), button, row])
        grid = GridEditor(mock_page, ROOT)
        await grid.open("users")

        assert await grid.locate_row(True) is row
        button.click.assert_called_once()
        assert grid.row_selector == "table.my-grid tbody tr:not([pk-values])"
        assert grid.state == GridState.ROW_LOCATED

    @pytest.mark.asyncio
    async def test_existing_row(self, mock_page):
        """Test an existing row is found by signature."""
        row = make_element()
        mock_page.wait_for_selector = AsyncMock(side_effect=[make_element(), row])
        grid = GridEditor(mock_page, ROOT)
        await grid.open("users")

        assert await grid.locate_row(False, "[5]") is row
        mock_page.wait_for_selector.assert_called_with(
            "table.my-grid tbody tr[pk-values='[5]']", state="visible", timeout=30000
        )


class TestEditing:
    """Tests for entering values."""

    @pytest.mark.asyncio
    async def test_tab_only_between_adjacent_cells(self, mock_page):
        """Test a, b adjacent and c elsewhere: focus, Tab, focus."""
        grid, _, cells = build_grid(mock_page, ["a", "b", "c"], order=["a", "b", "x", "c"])
        await grid.open("t")
        await grid.locate_row(False, "[1]")

        await grid.edit_row({"a": 1, "b": "two", "c": True})

        assert mock_page.keyboard.press.call_args_list == [
            call("Shift+End"),
            call("Tab"),
            call("Shift+End"),
        ]
        cells["a"].focus.assert_called_once()
        cells["b"].focus.assert_not_called()
        cells["c"].focus.assert_called_once()
        assert mock_page.keyboard.insert_text.call_args_list == [call("1"), call("two"), call("Y")]
        assert grid.state == GridState.EDITING

    @pytest.mark.asyncio
    async def test_non_adjacent_cells_are_refocused(self, mock_page):
        """Test reversed DOM order never uses Tab."""
        grid, _, cells = build_grid(mock_page, ["a", "b"], order=["b", "a"])
        await grid.open("t")
        await grid.locate_row(False, "[1]")

        await grid.edit_row({"a": 1, "b": 2})

        assert call("Tab") not in mock_page.keyboard.press.call_args_list
        cells["b"].focus.assert_called_once()

    @pytest.mark.asyncio
    async def test_cell_lookup_falls_back_to_table(self, mock_page):
        """Test a replaced row element is looked up again from the table."""
        grid, row, _ = build_grid(mock_page, ["a"])
        cell = make_element()
        await grid.open("t")
        await grid.locate_row(False, "[1]")
        row.wait_for_selector = AsyncMock(side_effect=PlaywrightError("Element is not attached to the DOM"))
        mock_page.wait_for_selector = AsyncMock(return_value=cell)

        assert await grid.find_cell("a") is cell
        mock_page.wait_for_selector.assert_called_once_with(
            "table.my-grid tbody tr[pk-values='[1]'] [my-colname='a']", state="visible", timeout=30000
        )
        cell.wait_for_element_state.assert_called_once_with("visible", timeout=30000)

    @pytest.mark.asyncio
    async def test_commit_falls_back_to_table_when_row_replaced(self, mock_page):
        """Test the settled wait is scoped from the table once the row element is detached."""
        grid, row, _ = build_grid(mock_page, ["a"])
        await grid.open("t")
        await grid.locate_row(False, "[1]")
        touched = await grid.edit_row({"a": 1})
        row.wait_for_selector = AsyncMock(side_effect=PlaywrightError("Element is not attached to the DOM"))
        mock_page.wait_for_selector = AsyncMock(return_value=make_element())

        await grid.commit(touched)

        assert grid.state == GridState.SAVED
        selector = mock_page.wait_for_selector.call_args.args[0]
        assert "table.my-grid tbody tr[pk-values='[1]'] [my-colname='a'][io-status=ok]" in selector
        assert "table.my-grid tbody tr[pk-values='[1]'] [my-colname='a']:not([io-status])" in selector
        assert mock_page.wait_for_selector.call_args.kwargs["state"] == "attached"

    @pytest.mark.asyncio
    async def test_commit_timeout_on_replaced_row(self, mock_page):
        """Test a cell that never settles after a row replacement times out."""
        grid, row, _ = build_grid(mock_page, ["a"])
        await grid.open("t")
        await grid.locate_row(False, "[1]")
        touched = await grid.edit_row({"a": 1})
        row.wait_for_selector = AsyncMock(side_effect=PlaywrightError("Element is not attached to the DOM"))
        mock_page.wait_for_selector = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout"))

        with pytest.raises(UITimeoutError):
            await grid.commit(touched)

    @pytest.mark.asyncio
    async def test_commit_timeout_under_row(self, mock_page):
        """Test a cell that never settles under its row times out."""
        grid, row, _ = build_grid(mock_page, ["a"])
        await grid.open("t")
        await grid.locate_row(False, "[1]")
        touched = await grid.edit_row({"a": 1})
        row.wait_for_selector = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout"))

        with pytest.raises(UITimeoutError) as exc_info:
            await grid.commit(touched)
        assert exc_info.value.selector == SELECTORS.settled_cell("a")

    @pytest.mark.asyncio
    async def test_extract_rereads_detached_cell(self, mock_page):
        """Test a detached cell handle is read again from the table."""
        grid, _, _ = build_grid(mock_page, ["name"])
        await grid.open("t")
        await grid.locate_row(False, "[1]")
        stale = make_element()
        stale.text_content = AsyncMock(side_effect=PlaywrightError("Element is not attached to the DOM"))
        mock_page.wait_for_selector = AsyncMock(return_value=make_element(text="bob"))

        row = await grid.extract([TouchedElement("name", stale)], is_object({"name": is_string()}))

        assert row == {"name": "bob"}
        mock_page.wait_for_selector.assert_called_once_with(
            "table.my-grid tbody tr[pk-values='[1]'] [my-colname='name']", state="attached", timeout=30000
        )

    @pytest.mark.asyncio
    async def test_invisible_cell_times_out(self, mock_page):
        """Test a cell that never becomes visible."""
        grid, _, cells = build_grid(mock_page, ["a"])
        await grid.open("t")
        await grid.locate_row(False, "[1]")
        cells["a"].wait_for_element_state = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout"))

        with pytest.raises(UITimeoutError):
            await grid.find_cell("a")


class TestCommitAndExtract:
    """Tests for committing a row and reading it back."""

    @pytest.mark.asyncio
    async def test_commit_waits_for_every_cell(self, mock_page):
        """Test the final Tab and one settled wait per touched cell."""
        grid, row, cells = build_grid(mock_page, ["a", "b"])
        await grid.open("t")
        await grid.locate_row(False, "[1]")
        touched = await grid.edit_row({"a": 1, "b": 2})

        await grid.commit(touched)

        assert mock_page.keyboard.press.call_args_list[-1] == call("Tab")
        waited = [c.args[0] for c in row.wait_for_selector.call_args_list if c.kwargs.get("state") == "attached"]
        assert waited == [SELECTORS.settled_cell("a"), SELECTORS.settled_cell("b")]
        assert grid.state == GridState.SAVED

    @pytest.mark.asyncio
    async def test_commit_requires_editing(self, mock_page):
        """Test nothing to commit before editing."""
        with pytest.raises(RuntimeError):
            await GridEditor(mock_page, ROOT).commit([])

    @pytest.mark.asyncio
    async def test_extract_decodes_cells(self, mock_page):
        """Test touched cells decode with their field descriptions."""
        grid = GridEditor(mock_page, ROOT)
        touched = [
            TouchedElement("name", make_element(text="bob")),
            TouchedElement("active", make_element(text="Sí")),
        ]
        description = is_object({"name": is_string(), "active": is_boolean()})

        assert await grid.extract(touched, description) == {"name": "bob", "active": True}

    @pytest.mark.asyncio
    async def test_extract_requires_object_description(self, mock_page):
        """Test rows need an object description."""
        with pytest.raises(TypeError):
            await GridEditor(mock_page, ROOT).extract([], is_number())

    @pytest.mark.asyncio
    async def test_save(self, mock_page):
        """Test a full save of a new row."""
        grid, _, _ = build_grid(mock_page, ["name", "active"], texts={"name": "bob", "active": "no"})
        description = is_object({"name": is_string(), "active": is_boolean()})

        saved = await grid.save("users", {"name": "bob", "active": False}, True, None, description)

        assert saved == {"name": "bob", "active": False}
        assert grid.state == GridState.SAVED


class TestReading:
    """Tests for reading the grid."""

    @pytest.mark.asyncio
    async def test_show_all_without_toggle(self, mock_page):
        """Test grids without the control are left alone."""
        grid = GridEditor(mock_page, ROOT)
        await grid.open("t")
        await grid.show_all_rows()
        mock_page.query_selector.assert_called_once_with("table.my-grid [bp-action=show-all]")

    @pytest.mark.asyncio
    async def test_show_all_already_displayed(self, mock_page):
        """Test a toggle showing every row is not clicked."""
        toggle = make_element(attributes={"rows-state": "displayed"})
        mock_page.query_selector = AsyncMock(return_value=toggle)
        grid = GridEditor(mock_page, ROOT)
        await grid.open("t")

        await grid.show_all_rows()

        toggle.click.assert_not_called()

    @pytest.mark.asyncio
    async def test_show_all_clicks_and_waits(self, mock_page):
        """Test the toggle is clicked and the full load awaited."""
        toggle = make_element(attributes={"rows-state": "partial"})
        mock_page.query_selector = AsyncMock(return_value=toggle)
        grid = GridEditor(mock_page, ROOT)
        await grid.open("t")

        await grid.show_all_rows()

        toggle.click.assert_called_once()
        mock_page.wait_for_selector.assert_called_with(
            "table.my-grid [bp-action=show-all][rows-state=displayed]", state="attached", timeout=30000
        )

    @pytest.mark.asyncio
    async def test_read_visible_rows(self, mock_page):
        """Test hidden rows are skipped and cells decoded."""
        def row_of(values, visible=True):
            row = make_element(visible=visible)
            row.query_selector_all = AsyncMock(return_value=[
                make_element(text=text, attributes={"my-colname": column}) for column, text in values.items()
            ])
            return row

        mock_page.query_selector_all = AsyncMock(return_value=[
            row_of({"name": "bob", "active": "Sí", "note": ""}),
            row_of({"name": "hidden", "active": "no", "note": "x"}, visible=False),
        ])
        grid = GridEditor(mock_page, ROOT)
        await grid.open("t")

        rows = await grid.read_visible_rows(is_object({"name": is_string(), "active": is_boolean()}))

        assert rows == [{"name": "bob", "active": True, "note": None}]
