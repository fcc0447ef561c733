from __future__ import annotations

from typing import Optional

import pytest
from textual.widgets import DataTable, Input

from fpick.backend.loader import ItemLoader
from fpick.domain.controller import PickerController
from fpick.domain.models import Item, item_from_line
from fpick.domain.usage import UsageStore
from fpick.tui.app import PickerApp


def _controller(lines: list[str], **kwargs: object) -> PickerController:
    items = [item_from_line(line, i) for i, line in enumerate(lines)]
    return PickerController(items, usage=UsageStore(None), **kwargs)  # type: ignore[arg-type]


class CapturingApp(PickerApp):
    def __init__(self, **kwargs: object) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self.results: list[Optional[Item]] = []

    def exit(
        self, result: object | None = None, return_code: int = 0, message: object | None = None
    ) -> None:
        self.results.append(result)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_search_input_is_visible_and_typing_filters() -> None:
    app = PickerApp(controller=_controller(["firefox", "files", "terminal"]))

    async with app.run_test() as pilot:
        await pilot.pause(0.2)
        search = app.query_one("#search", Input)
        assert search.size.width > 0
        table = app.query_one("#table", DataTable)
        assert table.row_count == 3

        for ch in "fire":
            await pilot.press(ch)
        await pilot.pause(0.05)

        assert search.value == "fire"
        assert table.row_count == 1
        assert app.controller.state.query == "fire"


@pytest.mark.asyncio
async def test_query_change_resets_selection_to_top() -> None:
    app = PickerApp(controller=_controller(["install", "other", "third"]))

    async with app.run_test() as pilot:
        await pilot.pause(0.2)
        await pilot.press("down")
        await pilot.pause(0)
        assert app.controller.state.selected == 1

        await pilot.press("ctrl+n")
        await pilot.pause(0)
        assert app.controller.state.selected == 2

        await pilot.press("i")
        await pilot.pause(0.05)
        assert app.controller.state.selected == 0


@pytest.mark.asyncio
async def test_enter_exits_with_selected_item() -> None:
    app = CapturingApp(controller=_controller(["install", "other"]))

    async with app.run_test() as pilot:
        await pilot.pause(0.2)
        for ch in "oth":
            await pilot.press(ch)
        await pilot.pause(0.05)

        await pilot.press("enter")
        await pilot.pause(0.1)

    assert [item.identity for item in app.results if item is not None] == ["other"]
    assert app.controller.usage.record.counts == {"other": 1}


@pytest.mark.asyncio
async def test_escape_clears_query_then_exits() -> None:
    app = CapturingApp(controller=_controller(["alpha", "beta"]))

    async with app.run_test() as pilot:
        await pilot.pause(0.2)
        await pilot.press("b")
        await pilot.pause(0.05)

        await pilot.press("escape")
        await pilot.pause(0.05)
        assert app.query_one("#search", Input).value == ""
        assert app.controller.state.query == ""
        assert app.results == []

        await pilot.press("escape")
        await pilot.pause(0.05)
        assert app.results == [None]


@pytest.mark.asyncio
async def test_pin_toggle_keeps_item_selected() -> None:
    app = PickerApp(controller=_controller(["alpha", "beta", "gamma"]))

    async with app.run_test() as pilot:
        await pilot.pause(0.2)
        await pilot.press("ctrl+end")
        await pilot.pause(0)
        assert app.controller.state.selected == 2

        await pilot.press("ctrl+space")
        await pilot.pause(0.05)
        selected = app.controller.selected_item()
        assert selected is not None and selected.identity == "gamma"
        assert selected.pinned is True
        assert app.controller.usage.is_pinned("gamma")


@pytest.mark.asyncio
async def test_loader_items_stream_into_table() -> None:
    loader = ItemLoader(lambda: (item_from_line(f"row {i}", i) for i in range(5))).start()
    app = PickerApp(controller=_controller([]), loader=loader)

    async with app.run_test() as pilot:
        await pilot.pause(0.3)
        assert app.query_one("#table", DataTable).row_count == 5
        assert app.controller.state.pool_size() == 5


@pytest.mark.asyncio
async def test_hide_before_typing() -> None:
    app = PickerApp(controller=_controller(["alpha", "beta"]), hide_before_typing=True)

    async with app.run_test() as pilot:
        await pilot.pause(0.2)
        table = app.query_one("#table", DataTable)
        assert table.row_count == 0

        await pilot.press("a")
        await pilot.pause(0.05)
        assert table.row_count == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("size", [(80, 30), (80, 14)])
async def test_enter_activates_highlighted_row_past_first_screen(size: tuple[int, int]) -> None:
    app = CapturingApp(controller=_controller([f"line {i}" for i in range(40)]))

    async with app.run_test(size=size) as pilot:
        await pilot.pause(0.2)
        for _ in range(12):
            await pilot.press("down")
        await pilot.pause(0.1)

        table = app.query_one("#table", DataTable)
        state = app.controller.state
        assert state.selected == 12
        assert state.scroll_offset + table.cursor_row == state.selected
        assert table.get_row_at(table.cursor_row)[1] == "line 12"

        await pilot.press("enter")
        await pilot.pause(0.1)

    assert [item.identity for item in app.results if item is not None] == ["line 12"]
