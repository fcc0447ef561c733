from __future__ import annotations

import logging
import os
import shlex
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Optional, Sequence

from fpick.domain.models import DesktopApp, Item, item_from_app

logger = logging.getLogger(__name__)

DESKTOP_ENTRY_GROUP = "[Desktop Entry]"
MAX_SCAN_DEPTH = 5


def application_dirs(environ: Mapping[str, str]) -> list[Path]:
    """XDG application directories in precedence order, existing ones only."""
    home = environ.get("HOME") or os.path.expanduser("~")
    data_home = environ.get("XDG_DATA_HOME") or os.path.join(home, ".local", "share")
    data_dirs = environ.get("XDG_DATA_DIRS") or "/usr/local/share:/usr/share"

    candidates = [Path(data_home) / "applications"]
    candidates += [Path(d) / "applications" for d in data_dirs.split(":") if d]

    dirs: list[Path] = []
    for path in candidates:
        if path.is_dir() and path not in dirs:
            dirs.append(path)
    return dirs


def locales_from_env(environ: Mapping[str, str]) -> tuple[str, ...]:
    """Locale keys to try for ``Name[xx]`` style fields, most specific first."""
    raw = environ.get("LC_MESSAGES") or environ.get("LANG") or environ.get("LC_ALL") or "C"
    if raw in ("C", "POSIX"):
        return ()
    base = raw.split(".", 1)[0].split("@", 1)[0]
    lang = base.split("_", 1)[0]
    if lang and lang != base:
        return (base, lang)
    return (base,) if base else ()


def current_desktops_from_env(environ: Mapping[str, str]) -> tuple[str, ...]:
    raw = environ.get("XDG_CURRENT_DESKTOP", "")
    return tuple(d for d in raw.split(":") if d)


def _split_list(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(";") if part.strip())


def _strip_field_codes(value: str) -> str:
    return " ".join(part for part in value.split() if not part.startswith("%"))


def _is_true(value: str) -> bool:
    return value.strip().lower() == "true"


def _read_group(text: str, group: str) -> dict[str, str]:
    entries: dict[str, str] = {}
    in_group = False
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("["):
            if in_group:
                break
            in_group = line == group
            continue
        if in_group and "=" in line:
            key, value = line.split("=", 1)
            entries.setdefault(key.strip(), value.strip())
    return entries


def _localized(entries: Mapping[str, str], key: str, locales: Sequence[str]) -> Optional[str]:
    for locale in locales:
        value = entries.get(f"{key}[{locale}]")
        if value:
            return value
    return entries.get(key)


def parse_desktop_entry(
    text: str,
    locales: Sequence[str] = (),
    action: Optional[tuple[str, str]] = None,
    filter_no_display: bool = True,
) -> Optional[DesktopApp]:
    """Parse one ``.desktop`` file body.

    ``action`` is ``(action_id, app_name)`` to read a ``[Desktop Action X]``
    group instead of the main entry. Returns ``None`` for entries that are not
    launchable applications.
    """
    group = f"[Desktop Action {action[0]}]" if action else DESKTOP_ENTRY_GROUP
    entries = _read_group(text, group)
    if not entries:
        return None

    if not action:
        if entries.get("Type", "Application") != "Application":
            return None
        if _is_true(entries.get("Hidden", "")):
            return None
        if filter_no_display and _is_true(entries.get("NoDisplay", "")):
            return None

    command = _strip_field_codes(entries.get("Exec", ""))
    if not command:
        return None

    name = _localized(entries, "Name", locales) or "Unknown"
    if action:
        name = f"{action[1]} ({name})"

    return DesktopApp(
        name=name,
        command=command,
        description=_localized(entries, "Comment", locales) or "",
        generic_name=_localized(entries, "GenericName", locales),
        keywords=_split_list(_localized(entries, "Keywords", locales) or ""),
        categories=_split_list(entries.get("Categories", "")),
        mime_types=_split_list(entries.get("MimeType", "")),
        icon=entries.get("Icon") or None,
        terminal=_is_true(entries.get("Terminal", "")),
        path=entries.get("Path") or None,
        only_show_in=_split_list(entries.get("OnlyShowIn", "")),
        not_show_in=_split_list(entries.get("NotShowIn", "")),
    )


def entry_actions(text: str) -> tuple[str, ...]:
    return _split_list(_read_group(text, DESKTOP_ENTRY_GROUP).get("Actions", ""))


def visible_on_desktop(app: DesktopApp, current_desktops: Sequence[str]) -> bool:
    current = {d.lower() for d in current_desktops}
    if app.not_show_in and current & {d.lower() for d in app.not_show_in}:
        return False
    if app.only_show_in and not current & {d.lower() for d in app.only_show_in}:
        return False
    return True


def _desktop_id(root: Path, path: Path) -> str:
    # Desktop-file ID: path below the applications dir with "/" replaced by "-".
    return str(path.relative_to(root)).replace(os.sep, "-")


def find_desktop_files(dirs: Iterable[Path], max_depth: int = MAX_SCAN_DEPTH) -> Iterator[tuple[str, Path]]:
    """Yield ``(desktop_id, path)``; the first directory providing an ID wins."""
    seen: set[str] = set()
    for base in dirs:
        base_str = str(base)
        for root, subdirs, files in os.walk(base_str, followlinks=True):
            depth = root[len(base_str) :].count(os.sep)
            if depth >= max_depth - 1:
                subdirs[:] = []
            subdirs.sort()
            for fname in sorted(files):
                if not fname.endswith(".desktop"):
                    continue
                path = Path(root) / fname
                desktop_id = _desktop_id(base, path)
                if desktop_id in seen:
                    continue
                seen.add(desktop_id)
                yield desktop_id, path


def path_executables(environ: Mapping[str, str]) -> Iterator[DesktopApp]:
    seen: set[str] = set()
    for directory in environ.get("PATH", "").split(os.pathsep):
        if not directory:
            continue
        try:
            names = sorted(os.listdir(directory))
        except OSError:
            continue
        for name in names:
            full = os.path.join(directory, name)
            if name in seen or not os.path.isfile(full) or not os.access(full, os.X_OK):
                continue
            seen.add(name)
            yield DesktopApp(
                name=name,
                command=shlex.quote(full),
                description=f"Executable: {name}",
                categories=("Executable",),
            )


def scan_applications(
    dirs: Iterable[Path],
    *,
    locales: Sequence[str] = (),
    current_desktops: Sequence[str] = (),
    filter_desktop: bool = True,
    list_executables: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> Iterator[Item]:
    """Yield application items from desktop files, then optionally from $PATH."""
    ordinal = 0
    for desktop_id, path in find_desktop_files(dirs):
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug("Skipping unreadable desktop file %s: %s", path, e)
            continue
        if DESKTOP_ENTRY_GROUP not in text:
            continue

        app = parse_desktop_entry(text, locales, filter_no_display=filter_desktop)
        if app is None:
            logger.debug("Skipping non-launchable desktop file %s", path)
            continue
        if filter_desktop and current_desktops and not visible_on_desktop(app, current_desktops):
            continue

        app = _with_id(app, desktop_id)
        yield item_from_app(app, ordinal)
        ordinal += 1

        for action_id in entry_actions(text):
            action_app = parse_desktop_entry(text, locales, action=(action_id, app.name))
            if action_app is None:
                continue
            yield item_from_app(_with_id(action_app, f"{desktop_id}#{action_id}"), ordinal)
            ordinal += 1

    if list_executables:
        for app in path_executables(environ if environ is not None else os.environ):
            yield item_from_app(app, ordinal)
            ordinal += 1


def _with_id(app: DesktopApp, desktop_id: str) -> DesktopApp:
    return replace(app, desktop_id=desktop_id)
