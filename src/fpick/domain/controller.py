from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from fpick.domain.filtering import DEFAULT_MAX_VISIBLE, FilterState
from fpick.domain.models import Item
from fpick.domain.search import Scorer
from fpick.domain.usage import UsageStore

logger = logging.getLogger(__name__)


class PickerController:
    def __init__(
        self,
        items: Iterable[Item],
        *,
        scorer: Optional[Scorer] = None,
        usage: Optional[UsageStore] = None,
        hard_stop: bool = False,
        initial_query: str = "",
    ) -> None:
        self.scorer = scorer or Scorer()
        self.usage = usage or UsageStore(None)
        self.hard_stop = hard_stop
        self.max_visible = DEFAULT_MAX_VISIBLE

        pool = list(items)
        self.usage.apply(pool)
        self.state = FilterState.from_items(pool)
        self.state.set_query(initial_query, self.scorer)

    def set_query(self, query: str) -> None:
        logger.debug("query %r -> %r", self.state.query, query)
        self.state.set_query(query, self.scorer)
        self.state.clamp_selection(self.max_visible)

    def add_items(self, items: Iterable[Item]) -> int:
        batch = list(items)
        if not batch:
            return 0
        self.usage.apply(batch)
        self.state.extend(batch, self.scorer, self.max_visible)
        return len(batch)

    def set_max_visible(self, max_visible: int) -> None:
        self.max_visible = max(1, max_visible)
        self.state.clamp_selection(self.max_visible)

    def selected_item(self) -> Optional[Item]:
        return self.state.selected_item()

    def select_index(self, index: int) -> None:
        self.state.select_index(index, self.max_visible)

    def move_up(self) -> None:
        self.state.move_up(self.max_visible, self.hard_stop)

    def move_down(self) -> None:
        self.state.move_down(self.max_visible, self.hard_stop)

    def move_first(self) -> None:
        self.state.move_first(self.max_visible)

    def move_last(self) -> None:
        self.state.move_last(self.max_visible)

    def activate_selected(self) -> Optional[Item]:
        item = self.selected_item()
        if item is None:
            self.state.status = "Nothing selected"
            return None
        self.usage.record_use(item.identity)
        self.state.status = self.usage.last_error or ""
        logger.info("Activated %r", item.identity)
        return item

    def toggle_pin_selected(self) -> Optional[bool]:
        item = self.selected_item()
        if item is None:
            self.state.status = "Nothing selected"
            return None

        pinned = self.usage.toggle_pin(item.identity)
        self.usage.apply(self.state.shown)
        self.usage.apply(self.state.hidden)
        self.state.filter(self.scorer)
        for i, candidate in enumerate(self.state.shown):
            if candidate is item:
                self.state.select_index(i, self.max_visible)
                break
        self.state.clamp_selection(self.max_visible)

        error = self.usage.last_error
        self.state.status = error or ("Pinned" if pinned else "Unpinned")
        return pinned

    def list_rows(self) -> Sequence[Item]:
        return self.state.shown

    def visible_rows(self) -> Sequence[Item]:
        return self.state.visible(self.max_visible)
