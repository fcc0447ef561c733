from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import TYPE_CHECKING, Optional, Sequence, Union

if TYPE_CHECKING:
    from fpick.domain.search import ScoreBreakdown


class ItemKind(str, Enum):
    APP = "app"
    LINE = "line"
    CLIPBOARD = "clipboard"


# Field weights, highest first. The primary text always searches at PRIMARY_WEIGHT.
PRIMARY_WEIGHT = 3
EXEC_WEIGHT = 4
GENERIC_NAME_WEIGHT = 2
KEYWORD_WEIGHT = 2
DESCRIPTION_WEIGHT = 1
CATEGORY_WEIGHT = 1
TAG_WEIGHT = 5
RAW_LINE_WEIGHT = 1


@dataclass(frozen=True)
class DesktopApp:
    name: str
    command: str
    description: str = ""
    generic_name: Optional[str] = None
    keywords: Sequence[str] = ()
    categories: Sequence[str] = ()
    mime_types: Sequence[str] = ()
    icon: Optional[str] = None
    terminal: bool = False
    path: Optional[str] = None
    only_show_in: Sequence[str] = ()
    not_show_in: Sequence[str] = ()
    desktop_id: Optional[str] = None

    @property
    def exec_name(self) -> str:
        return extract_exec_name(self.command)


@dataclass(frozen=True)
class ClipboardRecord:
    rowid: str
    mime_type: str
    preview: str
    original_line: str
    tags: Sequence[str] = ()

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    @property
    def display_name(self) -> str:
        if self.mime_type.startswith("text/"):
            base = self.preview[:80]
        else:
            base = f"{self.preview[:50]} ({self.mime_type})"
        if self.tags:
            return f"[{', '.join(self.tags)}] {base}"
        return base


Payload = Union[DesktopApp, ClipboardRecord, None]


@dataclass(eq=False)
class Item:
    """A rankable entry: a desktop app, a stdin line or a clipboard record.

    ``identity`` keys usage and pin data, so it must come out the same every
    time the underlying entry is parsed. ``score`` and ``breakdown`` are scratch
    fields rewritten by each filter pass.
    """

    identity: str
    primary_text: str
    kind: ItemKind = ItemKind.LINE
    secondary_texts: tuple[str, ...] = ()
    secondary_weights: tuple[int, ...] = ()
    raw_columns: tuple[str, ...] = ()
    ordinal: int = 0
    payload: Payload = None
    pinned: bool = False
    usage_count: int = 0
    last_used: Optional[float] = None
    frecency: float = 0.0
    score: int = 0
    breakdown: Optional["ScoreBreakdown"] = field(default=None, repr=False)

    @property
    def display_text(self) -> str:
        return self.primary_text

    @property
    def app(self) -> Optional[DesktopApp]:
        return self.payload if isinstance(self.payload, DesktopApp) else None

    @property
    def clipboard(self) -> Optional[ClipboardRecord]:
        return self.payload if isinstance(self.payload, ClipboardRecord) else None

    @cached_property
    def primary_lower(self) -> str:
        return self.primary_text.lower()

    @cached_property
    def secondary_lower(self) -> tuple[str, ...]:
        return tuple(text.lower() for text in self.secondary_texts)

    @cached_property
    def columns_lower(self) -> tuple[str, ...]:
        return tuple(col.lower() for col in self.raw_columns)

    def weight_of(self, index: int) -> int:
        if index < len(self.secondary_weights):
            return self.secondary_weights[index]
        return 1


def extract_exec_name(command: str) -> str:
    """First word of ``command`` with any directory part stripped."""
    parts = command.split()
    if not parts:
        return ""
    return parts[0].rsplit("/", 1)[-1]


def split_columns(line: str, delimiter: str) -> tuple[str, ...]:
    # A single space means "runs of whitespace", like awk.
    if delimiter == " ":
        return tuple(line.split())
    return tuple(line.split(delimiter))


def select_columns(columns: Sequence[str], nth: Sequence[int]) -> list[str]:
    return [columns[n - 1] for n in nth if 0 < n <= len(columns)]


def format_display(line: str, columns: Sequence[str], delimiter: str, with_nth: Sequence[int]) -> str:
    if with_nth:
        shown = [col or "<empty>" for col in select_columns(columns, with_nth)]
        if not shown:
            return f"<no column {','.join(str(n) for n in with_nth)} found>"
        return " ".join(shown)
    if delimiter == "\t" and len(columns) > 1:
        if columns[0].isdigit():
            return f"{columns[0]:<6} {' '.join(columns[1:])}"
        return "  ".join(columns)
    return line.replace("\t", "  ")


def accept_output(item: Item, accept_nth: Sequence[int]) -> str:
    """Text written to stdout for a chosen line."""
    raw = item.identity
    if not accept_nth:
        return raw
    picked = select_columns(item.raw_columns, accept_nth)
    if not picked:
        return raw
    return "\t".join(picked)


def item_from_app(app: DesktopApp, ordinal: int) -> Item:
    texts: list[str] = []
    weights: list[int] = []

    def add(text: Optional[str], weight: int) -> None:
        if text:
            texts.append(text)
            weights.append(weight)

    add(app.exec_name, EXEC_WEIGHT)
    add(app.generic_name, GENERIC_NAME_WEIGHT)
    for keyword in app.keywords:
        add(keyword, KEYWORD_WEIGHT)
    add(app.description, DESCRIPTION_WEIGHT)
    for category in app.categories:
        add(category, CATEGORY_WEIGHT)

    return Item(
        identity=app.name,
        primary_text=app.name,
        kind=ItemKind.APP,
        secondary_texts=tuple(texts),
        secondary_weights=tuple(weights),
        raw_columns=(app.name,),
        ordinal=ordinal,
        payload=app,
    )


def item_from_line(
    line: str,
    ordinal: int,
    *,
    delimiter: str = " ",
    with_nth: Sequence[int] = (),
) -> Item:
    columns = split_columns(line, delimiter)
    display = format_display(line, columns, delimiter, with_nth)
    secondary: tuple[str, ...] = ()
    weights: tuple[int, ...] = ()
    if display != line:
        secondary = (line,)
        weights = (RAW_LINE_WEIGHT,)
    return Item(
        identity=line,
        primary_text=display,
        kind=ItemKind.LINE,
        secondary_texts=secondary,
        secondary_weights=weights,
        raw_columns=columns,
        ordinal=ordinal,
    )


def item_from_clipboard(record: ClipboardRecord, ordinal: int) -> Item:
    tags = tuple(record.tags)
    return Item(
        identity=record.rowid,
        primary_text=record.display_name,
        kind=ItemKind.CLIPBOARD,
        secondary_texts=tags + (record.preview,),
        secondary_weights=(TAG_WEIGHT,) * len(tags) + (RAW_LINE_WEIGHT,),
        raw_columns=tuple(record.original_line.split("\t")),
        ordinal=ordinal,
        payload=record,
    )
