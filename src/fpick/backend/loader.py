from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Iterable, Optional

from fpick.domain.models import Item

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 64


class ItemLoader:
    """Runs an item source on a background thread and hands batches to the UI.

    The consumer calls ``drain()`` from its own loop; it never blocks. Closing
    the loader stops the producer before its next put.
    """

    def __init__(
        self,
        source: Callable[[], Iterable[Item]],
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        name: str = "fpick-loader",
    ) -> None:
        self._source = source
        self._batch_size = max(1, batch_size)
        self._queue: queue.Queue[list[Item]] = queue.Queue()
        self._stop_event = threading.Event()
        self._done_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self.error: Optional[BaseException] = None
        self.produced = 0

    def start(self) -> "ItemLoader":
        self._thread.start()
        return self

    def close(self, timeout: Optional[float] = 1.0) -> None:
        self._stop_event.set()
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)

    @property
    def done(self) -> bool:
        return self._done_event.is_set()

    @property
    def finished(self) -> bool:
        """Producer is done and every batch has been drained."""
        return self.done and self._queue.empty()

    def drain(self) -> list[Item]:
        items: list[Item] = []
        while True:
            try:
                items.extend(self._queue.get_nowait())
            except queue.Empty:
                return items

    def _put(self, batch: list[Item]) -> bool:
        if self._stop_event.is_set():
            return False
        self._queue.put(batch)
        self.produced += len(batch)
        return True

    def _run(self) -> None:
        batch: list[Item] = []
        try:
            for item in self._source():
                batch.append(item)
                if len(batch) >= self._batch_size:
                    if not self._put(batch):
                        logger.debug("loader stopped after %d items", self.produced)
                        return
                    batch = []
            if batch:
                self._put(batch)
        except Exception as e:
            logger.warning("Item source failed after %d items: %s", self.produced, e)
            self.error = e
        finally:
            self._done_event.set()
        logger.debug("loader finished with %d items", self.produced)
