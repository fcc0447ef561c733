from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping, Optional

from fpick.domain.search import MatchMode, ScoringConfig

logger = logging.getLogger(__name__)

APP_NAME = "fpick"
CONFIG_FILENAME = "config.toml"
USAGE_DB_FILENAME = "usage.sqlite3"


@dataclass(frozen=True)
class ConfigError(Exception):
    message: str

    def __str__(self) -> str:  # pragma: no cover
        return self.message


@dataclass(frozen=True)
class LauncherConfig:
    match_mode: MatchMode = MatchMode.FUZZY
    prefix_depth: int = 3
    terminal_launcher: str = "alacritty -e"
    launch_prefix: str = ""
    detach: bool = False
    filter_desktop: bool = True
    list_executables_in_path: bool = False
    max_history_total: int = 10_000
    hard_stop: bool = False
    hide_before_typing: bool = False
    dmenu_delimiter: str = " "
    dmenu_hard_stop: Optional[bool] = None
    cclip_hard_stop: Optional[bool] = None
    cclip_timeout: float = 5.0

    def hard_stop_for(self, mode: str) -> bool:
        if mode == "dmenu" and self.dmenu_hard_stop is not None:
            return self.dmenu_hard_stop
        if mode == "cclip" and self.cclip_hard_stop is not None:
            return self.cclip_hard_stop
        return self.hard_stop

    def scoring(self, *, match_nth: tuple[int, ...] = (), explain: bool = False) -> ScoringConfig:
        return ScoringConfig(
            mode=self.match_mode,
            prefix_depth=self.prefix_depth,
            match_nth=match_nth,
            explain=explain,
        )


# section -> key -> (field name, expected type)
_SCHEMA: dict[str, dict[str, tuple[str, type]]] = {
    "general": {
        "match_mode": ("match_mode", str),
        "prefix_depth": ("prefix_depth", int),
        "terminal_launcher": ("terminal_launcher", str),
        "launch_prefix": ("launch_prefix", str),
        "detach": ("detach", bool),
        "filter_desktop": ("filter_desktop", bool),
        "list_executables_in_path": ("list_executables_in_path", bool),
        "max_history_total": ("max_history_total", int),
    },
    "ui": {
        "hard_stop": ("hard_stop", bool),
        "hide_before_typing": ("hide_before_typing", bool),
    },
    "dmenu": {
        "delimiter": ("dmenu_delimiter", str),
        "hard_stop": ("dmenu_hard_stop", bool),
    },
    "cclip": {
        "hard_stop": ("cclip_hard_stop", bool),
        "timeout": ("cclip_timeout", float),
    },
}


def config_path(environ: Mapping[str, str]) -> Path:
    base = environ.get("XDG_CONFIG_HOME") or os.path.join(_home(environ), ".config")
    return Path(base) / APP_NAME / CONFIG_FILENAME


def data_dir(environ: Mapping[str, str]) -> Path:
    base = environ.get("XDG_DATA_HOME") or os.path.join(_home(environ), ".local", "share")
    return Path(base) / APP_NAME


def usage_db_path(environ: Mapping[str, str]) -> Path:
    return data_dir(environ) / USAGE_DB_FILENAME


def _home(environ: Mapping[str, str]) -> str:
    return environ.get("HOME") or os.path.expanduser("~")


def _check_type(section: str, key: str, value: Any, expected: type) -> Any:
    where = f"[{section}] {key}"
    if expected is bool:
        if not isinstance(value, bool):
            raise ConfigError(f"{where} must be true or false, got {value!r}")
        return value
    if expected is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{where} must be an integer, got {value!r}")
        return value
    if expected is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{where} must be a number, got {value!r}")
        return float(value)
    if not isinstance(value, str):
        raise ConfigError(f"{where} must be a string, got {value!r}")
    return value


def config_from_mapping(data: Mapping[str, Any]) -> LauncherConfig:
    values: dict[str, Any] = {}
    for section, body in data.items():
        schema = _SCHEMA.get(section)
        if schema is None:
            logger.warning("Ignoring unknown config section [%s]", section)
            continue
        if not isinstance(body, Mapping):
            raise ConfigError(f"[{section}] must be a table")
        for key, value in body.items():
            if key not in schema:
                logger.warning("Ignoring unknown config key [%s] %s", section, key)
                continue
            field_name, expected = schema[key]
            values[field_name] = _check_type(section, key, value, expected)

    if "match_mode" in values:
        try:
            values["match_mode"] = MatchMode(values["match_mode"])
        except ValueError:
            raise ConfigError(f"[general] match_mode must be 'fuzzy' or 'exact', got {values['match_mode']!r}")
    if values.get("prefix_depth", 0) < 0:
        raise ConfigError("[general] prefix_depth must be >= 0")
    if values.get("max_history_total", 1) < 1:
        raise ConfigError("[general] max_history_total must be >= 1")
    if values.get("cclip_timeout", 1.0) <= 0:
        raise ConfigError("[cclip] timeout must be > 0")
    if values.get("dmenu_delimiter") == "":
        raise ConfigError("[dmenu] delimiter must not be empty")
    return LauncherConfig(**values)


def load_config(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> LauncherConfig:
    environ = os.environ if environ is None else environ
    explicit = path is not None
    path = path if path is not None else config_path(environ)

    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        logger.info("No config file at %s, using defaults", path)
        return LauncherConfig()
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    try:
        data = tomllib.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e

    config = config_from_mapping(data)
    logger.info("Loaded config from %s", path)
    return config


def with_overrides(config: LauncherConfig, **overrides: Any) -> LauncherConfig:
    """Apply CLI overrides; ``None`` means "not given"."""
    given = {key: value for key, value in overrides.items() if value is not None}
    return replace(config, **given) if given else config
