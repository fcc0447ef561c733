from __future__ import annotations

import subprocess
from dataclasses import dataclass, field
from typing import Any, Optional

import pytest

from fpick.backend.cclip import (
    copy_record,
    fetch_history,
    filter_by_tag,
    items_from_records,
    parse_cclip_line,
    tag_counts,
)
from fpick.backend.protocol import BackendError
from fpick.domain.models import ClipboardRecord


@dataclass
class FakeRun:
    responses: list[Any]
    calls: list[list[str]] = field(default_factory=list)
    inputs: list[Optional[bytes]] = field(default_factory=list)

    def __call__(self, argv: list[str], **kwargs: Any) -> subprocess.CompletedProcess[Any]:
        self.calls.append(argv)
        self.inputs.append(kwargs.get("input"))
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


def _done(returncode: int = 0, stdout: Any = "", stderr: str = "") -> subprocess.CompletedProcess[Any]:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def test_parse_cclip_line_with_tags() -> None:
    record = parse_cclip_line("42\ttext/plain\thello world\twork, urgent")
    assert record.rowid == "42"
    assert record.mime_type == "text/plain"
    assert record.preview == "hello world"
    assert record.tags == ("work", "urgent")
    assert record.original_line == "42\ttext/plain\thello world\twork, urgent"


def test_parse_cclip_line_without_tags() -> None:
    record = parse_cclip_line("7\timage/png\tscreenshot.png")
    assert record.tags == ()
    assert record.preview == "screenshot.png"


def test_parse_cclip_line_rejects_short_lines() -> None:
    with pytest.raises(ValueError):
        parse_cclip_line("7\ttext/plain")


def test_fetch_history_skips_bad_lines() -> None:
    run = FakeRun([_done(stdout="1\ttext/plain\tone\t\nbroken\n2\ttext/plain\ttwo\tpin\n")])
    records = fetch_history(run=run)
    assert [r.rowid for r in records] == ["1", "2"]
    assert records[1].tags == ("pin",)
    assert run.calls == [["cclip", "list", "rowid,mime_type,preview,tag"]]


def test_fetch_history_retries_without_tags() -> None:
    run = FakeRun([_done(returncode=1, stderr="unknown field tag"), _done(stdout="3\ttext/plain\tthree\n")])
    records = fetch_history(run=run)
    assert [r.preview for r in records] == ["three"]
    assert run.calls[1] == ["cclip", "list", "rowid,mime_type,preview"]


def test_fetch_history_without_tag_column_keeps_tabs_in_preview() -> None:
    run = FakeRun([_done(returncode=1, stderr="unknown field tag"), _done(stdout="4\ttext/plain\tcol a\tcol b\n")])
    records = fetch_history(run=run)
    assert records[0].preview == "col a\tcol b"
    assert records[0].tags == ()


def test_fetch_history_reports_missing_database() -> None:
    run = FakeRun([_done(1, stderr="x"), _done(1, stderr="Error: unable to open database file")])
    with pytest.raises(BackendError, match="cclipd"):
        fetch_history(run=run)


def test_fetch_history_timeout() -> None:
    run = FakeRun([subprocess.TimeoutExpired(cmd="cclip", timeout=1.0)])
    with pytest.raises(BackendError, match="timed out"):
        fetch_history(run=run, timeout=1.0)


def test_fetch_history_missing_binary() -> None:
    run = FakeRun([FileNotFoundError("cclip")])
    with pytest.raises(BackendError, match="not available"):
        fetch_history(run=run)


def test_items_from_records() -> None:
    records = [parse_cclip_line("1\ttext/plain\tone"), parse_cclip_line("2\ttext/plain\ttwo")]
    items = items_from_records(records)
    assert [i.identity for i in items] == ["1", "2"]
    assert [i.ordinal for i in items] == [0, 1]


def _record() -> ClipboardRecord:
    return ClipboardRecord(rowid="9", mime_type="text/plain", preview="hi", original_line="9\ttext/plain\thi")


def test_copy_record_wayland() -> None:
    run = FakeRun([_done(stdout=b"hi there"), _done()])
    copy_record(_record(), run=run, environ={"WAYLAND_DISPLAY": "wayland-0"})
    assert run.calls == [["cclip", "get", "9"], ["wl-copy", "-t", "text/plain"]]
    assert run.inputs[1] == b"hi there"


def test_copy_record_x11() -> None:
    run = FakeRun([_done(stdout=b"hi"), _done()])
    copy_record(_record(), run=run, environ={})
    assert run.calls[1][:3] == ["xclip", "-selection", "clipboard"]


def test_copy_record_failure() -> None:
    run = FakeRun([_done(stdout=b"hi"), _done(returncode=1)])
    with pytest.raises(BackendError, match="wl-copy"):
        copy_record(_record(), run=run, environ={"WAYLAND_DISPLAY": "wayland-0"})


def test_parse_without_tag_column() -> None:
    record = parse_cclip_line("5\ttext/plain\tname\tvalue", has_tags=False)
    assert record.preview == "name\tvalue"
    assert record.tags == ()


def test_filter_by_tag_and_counts() -> None:
    records = [
        parse_cclip_line("1\ttext/plain\tone\twork"),
        parse_cclip_line("2\ttext/plain\ttwo\t"),
        parse_cclip_line("3\ttext/plain\tthree\twork,home"),
    ]
    assert [r.rowid for r in filter_by_tag(records, "work")] == ["1", "3"]
    assert filter_by_tag(records, "music") == []
    assert tag_counts(records) == [("work", 2), ("home", 1)]
