from __future__ import annotations

import logging
from pathlib import Path

import pytest

from fpick.config import (
    ConfigError,
    LauncherConfig,
    config_path,
    data_dir,
    load_config,
    usage_db_path,
    with_overrides,
)
from fpick.domain.search import MatchMode


def _write(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(body)
    return path


def test_missing_default_file_gives_defaults(tmp_path: Path) -> None:
    config = load_config(environ={"XDG_CONFIG_HOME": str(tmp_path)})
    assert config == LauncherConfig()


def test_missing_explicit_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.toml", environ={})


def test_sections_are_read(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
[general]
match_mode = "exact"
prefix_depth = 2
terminal_launcher = "foot -e"
detach = true

[ui]
hard_stop = true
hide_before_typing = true

[dmenu]
delimiter = ":"
hard_stop = false

[cclip]
timeout = 2
""",
    )
    config = load_config(path, environ={})
    assert config.match_mode == MatchMode.EXACT
    assert config.prefix_depth == 2
    assert config.terminal_launcher == "foot -e"
    assert config.detach is True
    assert config.hide_before_typing is True
    assert config.dmenu_delimiter == ":"
    assert config.cclip_timeout == 2.0
    assert config.hard_stop_for("apps") is True
    assert config.hard_stop_for("dmenu") is False
    assert config.hard_stop_for("cclip") is True


def test_unknown_keys_warn(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = _write(tmp_path, '[general]\ncolour = "red"\n[extras]\nx = 1\n')
    with caplog.at_level(logging.WARNING):
        config = load_config(path, environ={})
    assert config == LauncherConfig()
    messages = [r.getMessage() for r in caplog.records]
    assert any("colour" in m for m in messages)
    assert any("extras" in m for m in messages)


@pytest.mark.parametrize(
    "body",
    [
        "[general]\nprefix_depth = \"3\"\n",
        "[general]\ndetach = 1\n",
        "[general]\nmatch_mode = \"regex\"\n",
        "[general]\nprefix_depth = -1\n",
        "[cclip]\ntimeout = 0\n",
        "general = 5\n",
        "[general\n",
    ],
)
def test_invalid_config_raises(tmp_path: Path, body: str) -> None:
    with pytest.raises(ConfigError):
        load_config(_write(tmp_path, body), environ={})


def test_paths_follow_xdg(tmp_path: Path) -> None:
    env = {"XDG_CONFIG_HOME": str(tmp_path / "cfg"), "XDG_DATA_HOME": str(tmp_path / "data")}
    assert config_path(env) == tmp_path / "cfg" / "fpick" / "config.toml"
    assert data_dir(env) == tmp_path / "data" / "fpick"
    assert usage_db_path(env) == tmp_path / "data" / "fpick" / "usage.sqlite3"
    assert data_dir({"HOME": "/home/u"}) == Path("/home/u/.local/share/fpick")


def test_overrides_skip_unset_values() -> None:
    config = with_overrides(LauncherConfig(), prefix_depth=None, detach=True)
    assert config.detach is True
    assert config.prefix_depth == 3


def test_scoring_config_carries_mode() -> None:
    scoring = LauncherConfig(match_mode=MatchMode.EXACT, prefix_depth=1).scoring(match_nth=(2,), explain=True)
    assert scoring.mode == MatchMode.EXACT
    assert scoring.prefix_depth == 1
    assert scoring.match_nth == (2,)
    assert scoring.explain is True
