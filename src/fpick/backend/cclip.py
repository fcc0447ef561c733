from __future__ import annotations

import logging
import os
import subprocess
from typing import Any, Callable, Iterable, Mapping, Optional

from fpick.backend.protocol import BackendError
from fpick.domain.models import ClipboardRecord, Item, item_from_clipboard

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
LIST_FIELDS_WITH_TAGS = "rowid,mime_type,preview,tag"
LIST_FIELDS = "rowid,mime_type,preview"

Runner = Callable[..., "subprocess.CompletedProcess[Any]"]


def parse_cclip_line(line: str, has_tags: bool = True) -> ClipboardRecord:
    """Parse ``rowid<TAB>mime<TAB>preview[<TAB>tags]`` from ``cclip list``.

    Without ``has_tags`` the line has no tag column and every field after the
    mime type is preview text.
    """
    parts = line.split("\t")
    if len(parts) < 3:
        raise ValueError(f"expected at least 3 tab-separated fields, got {len(parts)}")
    rowid, mime_type = parts[0].strip(), parts[1].strip()
    if not rowid:
        raise ValueError("missing rowid")

    tags: tuple[str, ...] = ()
    preview = parts[2]
    if not has_tags:
        preview = "\t".join(parts[2:])
    elif len(parts) >= 4:
        # The tag column is last; any extra tabs belong to the preview.
        preview = "\t".join(parts[2:-1])
        tags = tuple(tag.strip() for tag in parts[-1].split(",") if tag.strip())
    return ClipboardRecord(
        rowid=rowid,
        mime_type=mime_type,
        preview=preview,
        original_line=line,
        tags=tags,
    )


def _list(fields: str, run: Runner, timeout: float) -> "subprocess.CompletedProcess[Any]":
    try:
        return run(
            ["cclip", "list", fields],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise BackendError(f"cclip list timed out after {timeout:g}s") from e
    except OSError as e:
        raise BackendError(f"cclip is not available: {e}") from e


def fetch_history(run: Runner = subprocess.run, timeout: float = DEFAULT_TIMEOUT) -> list[ClipboardRecord]:
    result = _list(LIST_FIELDS_WITH_TAGS, run, timeout)
    has_tags = True
    if result.returncode != 0:
        # Older cclip releases do not know the tag column.
        logger.info("cclip list with tags failed, retrying without: %s", (result.stderr or "").strip())
        result = _list(LIST_FIELDS, run, timeout)
        has_tags = False
    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        if "unable to open database file" in stderr:
            raise BackendError("cclip database not found. Make sure cclipd is running.")
        raise BackendError(f"cclip list failed: {stderr or f'exit code {result.returncode}'}")

    records: list[ClipboardRecord] = []
    for line in (result.stdout or "").splitlines():
        if not line.strip():
            continue
        try:
            records.append(parse_cclip_line(line, has_tags))
        except ValueError as e:
            logger.warning("Skipping clipboard entry %r: %s", line[:40], e)
    logger.info("Loaded %d clipboard entries", len(records))
    return records


def items_from_records(records: Iterable[ClipboardRecord]) -> list[Item]:
    return [item_from_clipboard(record, ordinal) for ordinal, record in enumerate(records)]


def copy_command(mime_type: str, environ: Mapping[str, str]) -> list[str]:
    if environ.get("WAYLAND_DISPLAY"):
        return ["wl-copy", "-t", mime_type]
    return ["xclip", "-selection", "clipboard", "-t", mime_type]


def copy_record(
    record: ClipboardRecord,
    run: Runner = subprocess.run,
    timeout: float = DEFAULT_TIMEOUT,
    environ: Optional[Mapping[str, str]] = None,
) -> None:
    """Put the full stored content of ``record`` back on the clipboard."""
    try:
        content = run(
            ["cclip", "get", record.rowid],
            capture_output=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise BackendError(f"cclip get failed: {e}") from e
    if content.returncode != 0:
        raise BackendError(f"cclip get {record.rowid} failed")

    command = copy_command(record.mime_type, environ if environ is not None else os.environ)
    try:
        copied = run(command, input=content.stdout, timeout=timeout, check=False)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise BackendError(f"{command[0]} failed: {e}") from e
    if copied.returncode != 0:
        raise BackendError(f"{command[0]} exited with code {copied.returncode}")
    logger.info("Copied clipboard entry %s (%s)", record.rowid, record.mime_type)


def filter_by_tag(records: Iterable[ClipboardRecord], tag: str) -> list[ClipboardRecord]:
    return [record for record in records if tag in record.tags]


def tag_counts(records: Iterable[ClipboardRecord]) -> list[tuple[str, int]]:
    """Tags in first-seen order with the number of entries carrying each."""
    counts: dict[str, int] = {}
    for record in records:
        for tag in record.tags:
            counts[tag] = counts.get(tag, 0) + 1
    return list(counts.items())
