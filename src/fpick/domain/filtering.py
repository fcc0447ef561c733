from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from fpick.domain.models import Item
from fpick.domain.search import Scorer, default_order_key, normalize_query, sort_key

logger = logging.getLogger(__name__)

DEFAULT_MAX_VISIBLE = 10


def _swap_remove(items: list[Item], index: int) -> Item:
    last = items.pop()
    if index == len(items):
        return last
    removed = items[index]
    items[index] = last
    return removed


@dataclass
class FilterState:
    """The shown/hidden partition of the item pool plus the cursor.

    ``shown`` and ``hidden`` always hold the whole pool between them. Every
    pass rescoring the pool with a new query goes through ``filter``.
    """

    shown: list[Item] = field(default_factory=list)
    hidden: list[Item] = field(default_factory=list)
    query: str = ""
    selected: Optional[int] = None
    scroll_offset: int = 0
    status: str = ""

    @classmethod
    def from_items(cls, items: Iterable[Item]) -> "FilterState":
        return cls(hidden=list(items))

    def pool_size(self) -> int:
        return len(self.shown) + len(self.hidden)

    def has_query(self) -> bool:
        return bool(normalize_query(self.query))

    def set_query(self, query: str, scorer: Scorer) -> None:
        self.query = query
        self.filter(scorer)

    def filter(self, scorer: Scorer) -> None:
        started = time.perf_counter()
        query = self.query

        if not self.has_query():
            for item in self.hidden:
                self.shown.append(item)
            self.hidden.clear()
            for item in self.shown:
                item.score = 0
                item.breakdown = None
            self.shown.sort(key=default_order_key)
        else:
            demoted: list[Item] = []
            i = 0
            while i < len(self.shown):
                item = self.shown[i]
                if self._rescore(item, query, scorer):
                    i += 1
                else:
                    demoted.append(_swap_remove(self.shown, i))

            i = 0
            while i < len(self.hidden):
                item = self.hidden[i]
                if self._rescore(item, query, scorer):
                    self.shown.append(_swap_remove(self.hidden, i))
                else:
                    i += 1
            self.hidden.extend(demoted)
            self.shown.sort(key=sort_key)

        self.selected = 0 if self.shown else None
        self.scroll_offset = 0

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(
            "filter %r: %d shown, %d hidden in %.2fms", query, len(self.shown), len(self.hidden), elapsed_ms
        )
        if scorer.config.explain and self.has_query():
            self._log_breakdowns()

    def extend(self, items: Iterable[Item], scorer: Scorer, max_visible: int = DEFAULT_MAX_VISIBLE) -> None:
        added = 0
        for item in items:
            added += 1
            if not self.has_query():
                item.score = 0
                item.breakdown = None
                self.shown.append(item)
            elif self._rescore(item, self.query, scorer):
                self.shown.append(item)
            else:
                self.hidden.append(item)
        if not added:
            return

        self.shown.sort(key=sort_key if self.has_query() else default_order_key)
        self.clamp_selection(max_visible)
        logger.debug("merged %d items: %d shown, %d hidden", added, len(self.shown), len(self.hidden))

    def clamp_selection(self, max_visible: int = DEFAULT_MAX_VISIBLE) -> None:
        if not self.shown:
            self.selected = None
            self.scroll_offset = 0
            return
        if self.selected is None:
            self.selected = 0
        self.selected = max(0, min(self.selected, len(self.shown) - 1))
        self._keep_in_window(max_visible)

    def selected_item(self) -> Optional[Item]:
        if self.selected is None or not 0 <= self.selected < len(self.shown):
            return None
        return self.shown[self.selected]

    def move_up(self, max_visible: int = DEFAULT_MAX_VISIBLE, hard_stop: bool = False) -> None:
        if self.selected is None:
            return
        if self.selected > 0:
            self.selected -= 1
        elif not hard_stop:
            self.selected = len(self.shown) - 1
        self._keep_in_window(max_visible)

    def move_down(self, max_visible: int = DEFAULT_MAX_VISIBLE, hard_stop: bool = False) -> None:
        if self.selected is None:
            return
        if self.selected < len(self.shown) - 1:
            self.selected += 1
        elif not hard_stop:
            self.selected = 0
        self._keep_in_window(max_visible)

    def move_first(self, max_visible: int = DEFAULT_MAX_VISIBLE) -> None:
        if self.selected is None:
            return
        self.selected = 0
        self._keep_in_window(max_visible)

    def move_last(self, max_visible: int = DEFAULT_MAX_VISIBLE) -> None:
        if self.selected is None:
            return
        self.selected = len(self.shown) - 1
        self._keep_in_window(max_visible)

    def select_index(self, index: int, max_visible: int = DEFAULT_MAX_VISIBLE) -> None:
        if not 0 <= index < len(self.shown):
            return
        self.selected = index
        self._keep_in_window(max_visible)

    def visible(self, max_visible: int = DEFAULT_MAX_VISIBLE) -> Sequence[Item]:
        return self.shown[self.scroll_offset : self.scroll_offset + max(1, max_visible)]

    def _keep_in_window(self, max_visible: int) -> None:
        if self.selected is None:
            self.scroll_offset = 0
            return
        max_visible = max(1, max_visible)
        if self.selected < self.scroll_offset:
            self.scroll_offset = self.selected
        elif self.selected >= self.scroll_offset + max_visible:
            self.scroll_offset = self.selected - max_visible + 1
        self.scroll_offset = max(0, min(self.scroll_offset, self.selected))

    @staticmethod
    def _rescore(item: Item, query: str, scorer: Scorer) -> bool:
        breakdown = scorer.evaluate(item, query)
        if breakdown is None:
            item.score = 0
            item.breakdown = None
            return False
        item.score = breakdown.total
        item.breakdown = breakdown if scorer.config.explain else None
        return True

    def _log_breakdowns(self) -> None:
        for rank, item in enumerate(self.shown):
            b = item.breakdown
            if b is None:
                continue
            logger.debug(
                "#%d %r tier=%s bucket=%d matcher=%d frecency=%d total=%d",
                rank,
                item.primary_text,
                b.tier,
                b.bucket_score,
                b.matcher_score,
                b.frecency_boost,
                b.total,
            )
