from __future__ import annotations

import logging
from typing import IO, Iterable, Sequence

from fpick.domain.models import Item, item_from_line

logger = logging.getLogger(__name__)


def read_lines(stream: IO[str], null_separated: bool = False) -> list[str]:
    """Read candidate lines; blank entries are dropped."""
    data = stream.read()
    if null_separated:
        parts = data.split("\0")
    else:
        parts = data.splitlines()
    lines = [part for part in parts if part.strip()]
    logger.info("Read %d lines from input", len(lines))
    return lines


def items_from_lines(
    lines: Iterable[str],
    *,
    delimiter: str = " ",
    with_nth: Sequence[int] = (),
) -> list[Item]:
    return [
        item_from_line(line, ordinal, delimiter=delimiter, with_nth=with_nth)
        for ordinal, line in enumerate(lines)
    ]


def parse_column_spec(spec: str) -> tuple[int, ...]:
    """Parse ``"1,3"`` into ``(1, 3)``. Columns are 1-based."""
    columns: list[int] = []
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit() or int(part) < 1:
            raise ValueError(f"invalid column {part!r} in {spec!r}")
        columns.append(int(part))
    if not columns:
        raise ValueError(f"empty column list {spec!r}")
    return tuple(columns)
