from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Protocol


@dataclass(frozen=True)
class BackendError(Exception):
    message: str

    def __str__(self) -> str:  # pragma: no cover
        return self.message


@dataclass(frozen=True)
class UsageRow:
    identity: str
    count: int
    last_used: Optional[float] = None


class UsageBackend(Protocol):
    def get(self, identity: str) -> Optional[int]: ...

    def set(self, identity: str, count: int) -> None: ...

    def touch(self, identity: str, timestamp: float) -> None: ...

    def delete(self, identity: str) -> None: ...

    def items(self) -> Iterable[UsageRow]: ...

    def get_pinned_set(self) -> set[str]: ...

    def set_pinned_set(self, pinned: set[str]) -> None: ...
