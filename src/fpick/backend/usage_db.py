from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Iterator, Optional, Union

from fpick.backend.protocol import BackendError, UsageRow

logger = logging.getLogger(__name__)


class SqliteUsageBackend:
    """Usage counters and pinned identities in one SQLite file.

    Each launcher mode gets its own ``namespace`` so an app called "foo" and a
    piped line "foo" keep separate histories. One connection is held for the
    life of the backend; every write commits immediately.
    """

    def __init__(self, db_path: Union[str, Path], namespace: str = "apps") -> None:
        self.db_path = str(db_path)
        self.namespace = namespace
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(self.db_path, timeout=10)
            self._init_db()
        except sqlite3.Error as e:
            raise BackendError(f"Failed to open usage database at {self.db_path}: {e}") from e

    def _init_db(self) -> None:
        cursor = self._conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        # No type affinity on count/last_used: values are validated on read.
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS usage (
                namespace TEXT NOT NULL,
                identity TEXT NOT NULL,
                count,
                last_used,
                PRIMARY KEY (namespace, identity)
            )
            """
        )
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS pinned (
                namespace TEXT NOT NULL,
                identity TEXT NOT NULL,
                PRIMARY KEY (namespace, identity)
            )
            """
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    def get(self, identity: str) -> Optional[int]:
        try:
            row = self._conn.execute(
                "SELECT count FROM usage WHERE namespace = ? AND identity = ?",
                (self.namespace, identity),
            ).fetchone()
        except sqlite3.Error as e:
            raise BackendError(f"Failed to read usage for {identity!r}: {e}") from e
        if row is None:
            return None
        count = _parse_count(row[0])
        if count is None:
            logger.warning("Ignoring corrupt usage count for %r: %r", identity, row[0])
        return count

    def set(self, identity: str, count: int) -> None:
        self._write(
            """
            INSERT INTO usage (namespace, identity, count) VALUES (?, ?, ?)
            ON CONFLICT(namespace, identity) DO UPDATE SET count = excluded.count
            """,
            (self.namespace, identity, int(count)),
        )

    def touch(self, identity: str, timestamp: float) -> None:
        self._write(
            "UPDATE usage SET last_used = ? WHERE namespace = ? AND identity = ?",
            (float(timestamp), self.namespace, identity),
        )

    def delete(self, identity: str) -> None:
        self._write(
            "DELETE FROM usage WHERE namespace = ? AND identity = ?",
            (self.namespace, identity),
        )

    def items(self) -> Iterator[UsageRow]:
        try:
            rows = self._conn.execute(
                "SELECT identity, count, last_used FROM usage WHERE namespace = ?",
                (self.namespace,),
            ).fetchall()
        except sqlite3.Error as e:
            raise BackendError(f"Failed to read usage table: {e}") from e

        for identity, raw_count, raw_last_used in rows:
            count = _parse_count(raw_count)
            if count is None or not isinstance(identity, str):
                logger.warning("Skipping corrupt usage record %r: %r", identity, raw_count)
                continue
            yield UsageRow(identity=identity, count=count, last_used=_parse_timestamp(raw_last_used))

    def get_pinned_set(self) -> set[str]:
        try:
            rows = self._conn.execute(
                "SELECT identity FROM pinned WHERE namespace = ?", (self.namespace,)
            ).fetchall()
        except sqlite3.Error as e:
            raise BackendError(f"Failed to read pinned items: {e}") from e
        return {identity for (identity,) in rows if isinstance(identity, str)}

    def set_pinned_set(self, pinned: set[str]) -> None:
        try:
            with self._conn:
                self._conn.execute("DELETE FROM pinned WHERE namespace = ?", (self.namespace,))
                self._conn.executemany(
                    "INSERT INTO pinned (namespace, identity) VALUES (?, ?)",
                    [(self.namespace, identity) for identity in sorted(pinned)],
                )
        except sqlite3.Error as e:
            raise BackendError(f"Failed to save pinned items: {e}") from e

    def _write(self, sql: str, params: tuple[object, ...]) -> None:
        try:
            with self._conn:
                self._conn.execute(sql, params)
        except sqlite3.Error as e:
            raise BackendError(f"Failed to write usage database: {e}") from e


def _parse_count(value: object) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _parse_timestamp(value: object) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None
