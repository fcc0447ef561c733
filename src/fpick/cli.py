from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import Iterator, Mapping, Optional, Sequence

from fpick.backend.cclip import (
    copy_record,
    fetch_history,
    filter_by_tag,
    items_from_records,
    tag_counts,
)
from fpick.backend.desktop import (
    application_dirs,
    current_desktops_from_env,
    locales_from_env,
    scan_applications,
)
from fpick.backend.dmenu import items_from_lines, parse_column_spec, read_lines
from fpick.backend.launch import launch_app
from fpick.backend.loader import ItemLoader
from fpick.backend.protocol import BackendError
from fpick.backend.usage_db import SqliteUsageBackend
from fpick.config import ConfigError, LauncherConfig, data_dir, load_config, usage_db_path, with_overrides
from fpick.domain.controller import PickerController
from fpick.domain.models import ClipboardRecord, Item, accept_output
from fpick.domain.search import MatchMode, Scorer, filter_and_rank
from fpick.domain.usage import UsageStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
TAG_LIST = "list"


def _print_error(message: str) -> None:
    print(f"fpick: {message}", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fpick", description="Fuzzy application launcher and picker.")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dmenu", action="store_true", help="pick from lines on stdin and print the choice")
    mode.add_argument("--cclip", action="store_true", help="pick from clipboard history and copy the choice")
    mode.add_argument("-p", "--program", metavar="NAME", help="launch the best match for NAME without a UI")

    parser.add_argument("-s", "--search", metavar="QUERY", default="", help="initial query")
    parser.add_argument("--exact", action="store_true", help="exact matching instead of fuzzy")
    parser.add_argument("--prefix-depth", type=int, metavar="N", help="max query length for word-start matches")
    parser.add_argument("--hard-stop", action="store_true", default=None, help="do not wrap around the list")
    parser.add_argument("--no-exec", action="store_true", help="print the command instead of running it")
    parser.add_argument("--detach", action="store_true", default=None, help="detach launched programs")
    parser.add_argument(
        "--no-filter-desktop",
        action="store_false",
        dest="filter_desktop",
        default=None,
        help="ignore OnlyShowIn/NotShowIn and NoDisplay",
    )
    parser.add_argument(
        "--list-executables-in-path",
        action="store_true",
        default=None,
        help="also list executables found in $PATH",
    )

    dmenu = parser.add_argument_group("dmenu")
    dmenu.add_argument("-d", "--delimiter", help="column delimiter (default: whitespace)")
    dmenu.add_argument("--with-nth", type=parse_column_spec, default=(), metavar="COLS", help="columns to display")
    dmenu.add_argument("--match-nth", type=parse_column_spec, default=(), metavar="COLS", help="columns to match")
    dmenu.add_argument("--accept-nth", type=parse_column_spec, default=(), metavar="COLS", help="columns to print")
    dmenu.add_argument("--read0", action="store_true", help="read NUL-separated input")

    cclip = parser.add_argument_group("cclip")
    cclip.add_argument(
        "--tag",
        metavar="NAME",
        help="only show clipboard entries tagged NAME; \"list\" prints the known tags",
    )

    parser.add_argument("--config", type=Path, metavar="PATH", help="config file")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="more log output (repeatable)")
    parser.add_argument("--debug", action="store_true", help="write a debug log with score breakdowns")
    return parser


def setup_logging(verbose: int, debug: bool, environ: Mapping[str, str]) -> Optional[Path]:
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if debug:
        log_dir = data_dir(environ) / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        stamp = time.strftime("%Y%m%d-%H%M%S")
        log_path = log_dir / f"fpick-debug-{stamp}-pid{os.getpid()}.log"
        handler: logging.Handler = logging.FileHandler(log_path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        root.setLevel(logging.DEBUG)
        return log_path

    from textual.logging import TextualHandler

    root.addHandler(TextualHandler())
    root.setLevel({0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG))
    return None


def _reattach_tty() -> None:
    # stdin was the item list; the UI reads keys from the terminal.
    try:
        fd = os.open("/dev/tty", os.O_RDONLY)
    except OSError as e:
        raise BackendError(f"cannot open /dev/tty: {e}") from e
    os.dup2(fd, 0)
    os.close(fd)


def _open_usage(config: LauncherConfig, namespace: str, environ: Mapping[str, str]) -> UsageStore:
    try:
        backend: Optional[SqliteUsageBackend] = SqliteUsageBackend(usage_db_path(environ), namespace)
    except BackendError as e:
        logger.warning("Usage history disabled: %s", e)
        backend = None
    usage = UsageStore(backend, max_history_total=config.max_history_total)
    usage.load()
    return usage


def _run_picker(
    controller: PickerController, config: LauncherConfig, loader: Optional[ItemLoader] = None
) -> Optional[Item]:
    from fpick.tui.app import PickerApp

    app = PickerApp(controller=controller, loader=loader, hide_before_typing=config.hide_before_typing)
    return app.run()


def _scan(config: LauncherConfig, environ: Mapping[str, str]) -> Iterator[Item]:
    return scan_applications(
        application_dirs(environ),
        locales=locales_from_env(environ),
        current_desktops=current_desktops_from_env(environ),
        filter_desktop=config.filter_desktop,
        list_executables=config.list_executables_in_path,
        environ=environ,
    )


def _finish_app(item: Item, config: LauncherConfig, no_exec: bool) -> None:
    app = item.app
    if app is None:  # pragma: no cover
        raise BackendError(f"{item.primary_text!r} is not an application")
    if no_exec:
        print(app.command)
        return
    launch_app(app, config)


def run_apps(args: argparse.Namespace, config: LauncherConfig, environ: Mapping[str, str]) -> None:
    usage = _open_usage(config, "apps", environ)
    scorer = Scorer(config.scoring(explain=args.debug))
    loader = ItemLoader(lambda: _scan(config, environ)).start()
    controller = PickerController(
        [],
        scorer=scorer,
        usage=usage,
        hard_stop=config.hard_stop_for("apps"),
        initial_query=args.search,
    )
    item = _run_picker(controller, config, loader)
    loader.close()
    if item is None:
        return
    _finish_app(item, config, args.no_exec)


def run_direct(args: argparse.Namespace, config: LauncherConfig, environ: Mapping[str, str]) -> None:
    usage = _open_usage(config, "apps", environ)
    items = list(_scan(config, environ))
    usage.apply(items)
    logger.info("Direct launch of %r among %d apps", args.program, len(items))

    ranked = filter_and_rank(items, args.program, Scorer(config.scoring(explain=args.debug)))
    if not ranked:
        raise BackendError(f"no application matches {args.program!r}")
    top = ranked[0]
    usage.record_use(top.identity)
    _finish_app(top, config, args.no_exec)


def run_dmenu(args: argparse.Namespace, config: LauncherConfig, environ: Mapping[str, str]) -> bool:
    lines = read_lines(sys.stdin, null_separated=args.read0)
    if not lines:
        raise BackendError("no input lines")
    delimiter = args.delimiter or config.dmenu_delimiter
    items = items_from_lines(lines, delimiter=delimiter, with_nth=args.with_nth)
    if not sys.stdin.isatty():
        _reattach_tty()

    usage = _open_usage(config, "dmenu", environ)
    controller = PickerController(
        items,
        scorer=Scorer(config.scoring(match_nth=args.match_nth, explain=args.debug)),
        usage=usage,
        hard_stop=config.hard_stop_for("dmenu"),
        initial_query=args.search,
    )
    item = _run_picker(controller, config)
    if item is None:
        return False
    print(accept_output(item, args.accept_nth))
    return True


def print_tags(records: Sequence[ClipboardRecord]) -> None:
    counts = tag_counts(records)
    if not counts:
        print("No tags found")
        return
    print("Available tags:")
    for tag, count in counts:
        print(f"  {tag} ({count} items)")


def run_cclip(args: argparse.Namespace, config: LauncherConfig, environ: Mapping[str, str]) -> bool:
    records = fetch_history(timeout=config.cclip_timeout)
    if args.tag == TAG_LIST:
        print_tags(records)
        return True
    if args.tag:
        records = filter_by_tag(records, args.tag)
        if not records:
            raise BackendError(f"no clipboard entries tagged {args.tag!r}")
    if not records:
        raise BackendError("clipboard history is empty")
    usage = _open_usage(config, "cclip", environ)
    controller = PickerController(
        items_from_records(records),
        scorer=Scorer(config.scoring(explain=args.debug)),
        usage=usage,
        hard_stop=config.hard_stop_for("cclip"),
        initial_query=args.search,
    )
    item = _run_picker(controller, config)
    if item is None or item.clipboard is None:
        return False
    copy_record(item.clipboard, timeout=config.cclip_timeout, environ=environ)
    return True


def main(argv: Optional[Sequence[str]] = None, environ: Optional[Mapping[str, str]] = None) -> None:
    environ = os.environ if environ is None else environ
    args = build_parser().parse_args(argv)

    log_path = setup_logging(args.verbose, args.debug, environ)
    if log_path is not None:
        logger.info("Debug log at %s", log_path)

    try:
        config = load_config(args.config, environ)
    except ConfigError as e:
        _print_error(str(e))
        raise SystemExit(2)

    if args.prefix_depth is not None and args.prefix_depth < 0:
        _print_error("--prefix-depth must be >= 0")
        raise SystemExit(2)
    if args.delimiter == "":
        _print_error("--delimiter must not be empty")
        raise SystemExit(2)
    if args.tag is not None and not args.cclip:
        _print_error("--tag requires --cclip")
        raise SystemExit(2)

    config = with_overrides(
        config,
        match_mode=MatchMode.EXACT if args.exact else None,
        prefix_depth=args.prefix_depth,
        hard_stop=args.hard_stop,
        dmenu_hard_stop=args.hard_stop,
        cclip_hard_stop=args.hard_stop,
        detach=args.detach,
        filter_desktop=args.filter_desktop,
        list_executables_in_path=args.list_executables_in_path,
    )
    logger.info("Starting with %s", config)

    try:
        if args.dmenu:
            if not run_dmenu(args, config, environ):
                raise SystemExit(1)
        elif args.cclip:
            if not run_cclip(args, config, environ):
                raise SystemExit(1)
        elif args.program:
            run_direct(args, config, environ)
        else:
            run_apps(args, config, environ)
    except BackendError as e:
        _print_error(str(e))
        raise SystemExit(1)
    except KeyboardInterrupt:
        raise SystemExit(130)
