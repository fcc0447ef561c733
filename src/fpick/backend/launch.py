from __future__ import annotations

import logging
import shlex
import subprocess
from typing import Any, Callable

from fpick.backend.protocol import BackendError
from fpick.config import LauncherConfig
from fpick.domain.models import DesktopApp

logger = logging.getLogger(__name__)


def build_command(app: DesktopApp, config: LauncherConfig) -> list[str]:
    try:
        argv = shlex.split(app.command)
    except ValueError as e:
        raise BackendError(f"Cannot parse command for {app.name!r}: {e}") from e
    if not argv:
        raise BackendError(f"Empty command for {app.name!r}")

    runner: list[str] = shlex.split(config.launch_prefix) if config.launch_prefix else []
    if app.terminal:
        runner += shlex.split(config.terminal_launcher)
    return runner + argv


def launch_app(
    app: DesktopApp,
    config: LauncherConfig,
    popen: Callable[..., Any] = subprocess.Popen,
) -> list[str]:
    argv = build_command(app, config)
    kwargs: dict[str, Any] = {}
    if app.path:
        kwargs["cwd"] = app.path
    if config.detach:
        kwargs.update(
            start_new_session=True,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )

    logger.info("Launching %r: %s", app.name, shlex.join(argv))
    try:
        popen(argv, **kwargs)
    except (OSError, ValueError) as e:
        raise BackendError(f"Failed to launch {app.name!r}: {e}") from e
    return argv
