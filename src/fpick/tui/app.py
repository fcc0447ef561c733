from __future__ import annotations

import logging
from typing import Any, Optional

from textual import events
from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.coordinate import Coordinate
from textual.timer import Timer
from textual.widgets import DataTable, Footer, Header, Input, Static

from fpick.backend.loader import ItemLoader
from fpick.domain.controller import PickerController
from fpick.domain.models import Item, ItemKind

logger = logging.getLogger(__name__)

DRAIN_INTERVAL = 0.05
FALLBACK_MAX_VISIBLE = 10
PIN_KEYS = ("ctrl+space", "ctrl+@")


class PickerApp(App[Optional[Item]]):
    ENABLE_COMMAND_PALETTE = False

    CSS = """
    Screen { layout: vertical; }
    #body { height: 1fr; }
    #search_row { height: auto; }
    #search_label { color: $text-muted; height: 3; content-align: left middle; }
    #search { width: 1fr; height: 3; }
    #search_help { color: $text-muted; height: 3; content-align: right middle; }
    #table { height: 1fr; }
    #info { height: auto; color: $text-muted; }
    #status { height: auto; }
    Input { border: round $surface; }
    Input:focus { border: round $accent; }
    """

    def __init__(
        self,
        *,
        controller: PickerController,
        loader: Optional[ItemLoader] = None,
        hide_before_typing: bool = False,
        prompt: str = "Search:",
        title: str = "fpick",
    ) -> None:
        super().__init__()
        self.controller = controller
        self.loader = loader
        self.hide_before_typing = hide_before_typing
        self.prompt = prompt
        self.title = title
        self._drain_timer: Optional[Timer] = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=False)
        with Vertical(id="body"):
            with Horizontal(id="search_row"):
                yield Static(self.prompt, id="search_label")
                yield Input(
                    value=self.controller.state.query,
                    placeholder="Type to filter.",
                    id="search",
                )
                yield Static("Esc: clear/quit • ↑↓: select • Enter: open • Ctrl+Space: pin", id="search_help")
            yield DataTable(id="table")
            yield Static("", id="info")
            yield Static("", id="status")
        yield Footer()

    async def on_mount(self) -> None:
        table = self._table()
        table.cursor_type = "row"
        table.add_columns(" ", "Item")
        self.query_one("#search", Input).focus()
        if self.loader is not None:
            self._drain_timer = self.set_interval(DRAIN_INTERVAL, self._drain_loader)
        self._render()
        # The table has no size until the first layout pass.
        self.call_after_refresh(self._render)

    def on_resize(self, event: events.Resize) -> None:
        if self.query("#table"):
            self._render()

    async def on_unmount(self) -> None:
        if self.loader is not None:
            self.loader.close()

    def _table(self) -> DataTable[Any]:
        return self.query_one("#table", DataTable)

    def _max_visible(self) -> int:
        # One line of the table goes to the header row.
        height = self._table().size.height
        return height - 1 if height > 1 else FALLBACK_MAX_VISIBLE

    def _list_hidden(self) -> bool:
        return self.hide_before_typing and not self.controller.state.has_query()

    def _render(self) -> None:
        table = self._table()
        if not table.columns:
            return
        table.clear(columns=False)
        self.controller.set_max_visible(self._max_visible())

        if not self._list_hidden():
            for item in self.controller.visible_rows():
                table.add_row("★" if item.pinned else "", item.display_text)

            state = self.controller.state
            if state.selected is not None and table.row_count:
                table.cursor_coordinate = Coordinate(state.selected - state.scroll_offset, 0)
        self._render_info()
        self._render_status()

    def _render_info(self) -> None:
        item = None if self._list_hidden() else self.controller.selected_item()
        self.query_one("#info", Static).update(_describe(item) if item is not None else "")

    def _status(self, message: str) -> None:
        self.controller.state.status = message
        self._render_status()

    def _render_status(self) -> None:
        state = self.controller.state
        shown = 0 if self._list_hidden() else len(state.shown)
        count_part = f"{shown}/{state.pool_size()}"
        if self.loader is not None and not self.loader.done:
            count_part += " (loading)"
        status = state.status.strip()
        status_part = f" | {status}" if status else ""
        self.query_one("#status", Static).update(f"{count_part}{status_part}")

    async def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            search = self.query_one("#search", Input)
            if search.value:
                search.value = ""
                self.controller.set_query("")
                self._render()
            else:
                self.exit(None)
            event.stop()
            return

        moves = {
            "up": self.controller.move_up,
            "ctrl+p": self.controller.move_up,
            "down": self.controller.move_down,
            "ctrl+n": self.controller.move_down,
            "ctrl+home": self.controller.move_first,
            "ctrl+end": self.controller.move_last,
        }
        if event.key in moves:
            if not self._list_hidden():
                moves[event.key]()
                self._render()
            event.stop()
            return

        if event.key in PIN_KEYS:
            if not self._list_hidden():
                self.controller.toggle_pin_selected()
                self._render()
            event.stop()
            return

    async def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if not self._table().row_count:
            return
        state = self.controller.state
        index = state.scroll_offset + self._table().cursor_row
        if index != state.selected:
            self.controller.select_index(index)
            self._render_info()

    async def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        self.controller.select_index(self.controller.state.scroll_offset + event.cursor_row)
        self._activate_selected()

    async def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id != "search":
            return
        if event.value == self.controller.state.query:
            return
        self.controller.set_query(event.value)
        self._render()

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "search":
            return
        self._activate_selected()

    def _activate_selected(self) -> None:
        if self._list_hidden():
            return
        item = self.controller.activate_selected()
        if item is None:
            self._render_status()
            return
        self.exit(item)

    def _drain_loader(self) -> None:
        if self.loader is None:
            return
        batch = self.loader.drain()
        if batch:
            self.controller.add_items(batch)
            self._render()
        if self.loader.finished:
            if self._drain_timer is not None:
                self._drain_timer.stop()
            if self.loader.error is not None:
                self._status(f"Loading failed: {self.loader.error}")
            else:
                self._render_status()
            logger.info("Loaded %d items", self.controller.state.pool_size())


def _describe(item: Item) -> str:
    if item.kind == ItemKind.APP and item.app is not None:
        app = item.app
        parts = [app.description or app.generic_name or "", app.command]
        text = " · ".join(p for p in parts if p)
    elif item.kind == ItemKind.CLIPBOARD and item.clipboard is not None:
        record = item.clipboard
        tags = f" [{', '.join(record.tags)}]" if record.tags else ""
        text = f"#{record.rowid} {record.mime_type}{tags}"
    else:
        text = item.identity if item.identity != item.display_text else ""
    if item.breakdown is not None:
        b = item.breakdown
        text += f"  ({b.tier} {b.bucket_score}+{b.matcher_score}+{b.frecency_boost}={b.total})"
    return text
