from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from fpick.backend.protocol import BackendError, UsageBackend
from fpick.domain.models import Item

logger = logging.getLogger(__name__)

HOUR = 60 * 60
DAY = 24 * HOUR
WEEK = 7 * DAY

FRECENCY_CEILING = 1000.0
FRECENCY_HALF_POINT = 10.0
DEFAULT_MAX_HISTORY_TOTAL = 10_000
AGING_TARGET = 0.9


def recency_multiplier(last_used: Optional[float], now: float) -> float:
    if last_used is None:
        return 1.0
    age = max(0.0, now - last_used)
    if age < HOUR:
        return 4.0
    if age < DAY:
        return 2.0
    if age < WEEK:
        return 0.5
    return 0.25


def frecency_value(count: int, last_used: Optional[float], now: float) -> float:
    """Saturating frequency x recency signal in ``[0, 1000)``."""
    if count <= 0:
        return 0.0
    raw = count * recency_multiplier(last_used, now)
    return FRECENCY_CEILING * raw / (raw + FRECENCY_HALF_POINT)


@dataclass
class UsageRecord:
    counts: dict[str, int] = field(default_factory=dict)
    last_used: dict[str, float] = field(default_factory=dict)
    pinned: set[str] = field(default_factory=set)

    def total(self) -> int:
        return sum(self.counts.values())

    def apply(self, item: Item, now: float) -> None:
        count = self.counts.get(item.identity, 0)
        last = self.last_used.get(item.identity)
        item.pinned = item.identity in self.pinned
        item.usage_count = count
        item.last_used = last
        item.frecency = frecency_value(count, last, now)

    def apply_all(self, items: Iterable[Item], now: float) -> None:
        for item in items:
            self.apply(item, now)


class UsageStore:
    """In-memory usage snapshot that writes through to a ``UsageBackend``.

    Storage failures never lose the in-memory state: reads fall back to an
    empty record and writes are logged and skipped.
    """

    def __init__(
        self,
        backend: Optional[UsageBackend],
        *,
        max_history_total: int = DEFAULT_MAX_HISTORY_TOTAL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend = backend
        self.max_history_total = max_history_total
        self.clock = clock
        self.record = UsageRecord()
        self.last_error: Optional[str] = None

    def load(self) -> UsageRecord:
        record = UsageRecord()
        if self.backend is None:
            self.record = record
            return record

        try:
            for row in self.backend.items():
                record.counts[row.identity] = row.count
                if row.last_used is not None:
                    record.last_used[row.identity] = row.last_used
        except BackendError as e:
            logger.warning("Usage history unavailable, starting empty: %s", e)
            record.counts.clear()
            record.last_used.clear()

        try:
            record.pinned = set(self.backend.get_pinned_set())
        except BackendError as e:
            logger.warning("Pinned items unavailable: %s", e)

        logger.info("Loaded usage for %d items (%d pinned)", len(record.counts), len(record.pinned))
        self.record = record
        return record

    def now(self) -> float:
        return self.clock()

    def apply(self, items: Iterable[Item]) -> None:
        self.record.apply_all(items, self.now())

    def record_use(self, identity: str) -> int:
        now = self.now()
        count = self.record.counts.get(identity, 0) + 1
        self.record.counts[identity] = count
        self.record.last_used[identity] = now
        self.last_error = None

        if self.backend is not None:
            try:
                self.backend.set(identity, count)
                self.backend.touch(identity, now)
            except BackendError as e:
                logger.warning("Could not save usage for %r: %s", identity, e)
                self.last_error = f"Usage not saved: {e}"

        if self.record.total() > self.max_history_total:
            self._age()
        return self.record.counts.get(identity, 0)

    def toggle_pin(self, identity: str) -> bool:
        if identity in self.record.pinned:
            self.record.pinned.discard(identity)
            pinned = False
        else:
            self.record.pinned.add(identity)
            pinned = True
        self.last_error = None

        if self.backend is not None:
            try:
                self.backend.set_pinned_set(set(self.record.pinned))
            except BackendError as e:
                logger.warning("Could not save pinned items: %s", e)
                self.last_error = f"Pins not saved: {e}"
        logger.info("%s %r", "Pinned" if pinned else "Unpinned", identity)
        return pinned

    def is_pinned(self, identity: str) -> bool:
        return identity in self.record.pinned

    def _age(self) -> None:
        total = self.record.total()
        factor = total / (self.max_history_total * AGING_TARGET)
        logger.info("Aging usage history: total %d exceeds %d", total, self.max_history_total)

        for identity, count in list(self.record.counts.items()):
            aged = int(count / factor)
            if aged > 0:
                self.record.counts[identity] = aged
            else:
                del self.record.counts[identity]
                self.record.last_used.pop(identity, None)

            if self.backend is None:
                continue
            try:
                if aged > 0:
                    self.backend.set(identity, aged)
                else:
                    self.backend.delete(identity)
            except BackendError as e:
                logger.warning("Could not age usage for %r: %s", identity, e)
                self.last_error = f"Usage not saved: {e}"
