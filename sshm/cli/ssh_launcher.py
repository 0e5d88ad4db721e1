"""Helpers for launching SSH sessions from CLI interactions."""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable, Sequence
from pathlib import Path

import typer

from sshm.core.manual import DEFAULT_PORT, DEFAULT_USER, ManualConnection, is_manual

__all__ = [
    "build_host_command",
    "build_manual_command",
    "command_for_identifier",
    "run_ssh",
]

logger = logging.getLogger(__name__)


def build_host_command(
    name: str,
    config_file: Path | None = None,
    *,
    options: Sequence[str] = (),
    remote_command: Sequence[str] = (),
) -> list[str]:
    """Construct the argv for connecting to a configured host by name."""

    command: list[str] = ["ssh"]
    if config_file is not None:
        command.extend(["-F", str(config_file)])
    command.extend(options)
    command.append(name)
    command.extend(remote_command)
    return command


def build_manual_command(conn: ManualConnection) -> list[str]:
    """Construct the argv for a connection that has no config entry."""

    command: list[str] = ["ssh"]
    if conn.port and conn.port != DEFAULT_PORT:
        command.extend(["-p", conn.port])
    if conn.identity:
        command.extend(["-i", conn.identity])

    target = conn.hostname
    if conn.user and conn.user != DEFAULT_USER:
        target = f"{conn.user}@{target}"
    command.append(target)
    return command


def command_for_identifier(identifier: str, config_file: Path | None = None) -> list[str]:
    """Build the ssh argv for a history identifier of either kind."""

    if is_manual(identifier):
        return build_manual_command(ManualConnection.from_identifier(identifier))
    return build_host_command(identifier, config_file)


def _normalize_exit_status(status: int) -> int:
    """Convert platform-specific wait status values to standard exit codes."""

    waitstatus_to_exitcode: Callable[[int], int] | None = getattr(
        os, "waitstatus_to_exitcode", None
    )
    if waitstatus_to_exitcode is not None:
        return waitstatus_to_exitcode(status)

    wifexited: Callable[[int], bool] | None = getattr(os, "WIFEXITED", None)
    if wifexited is not None and wifexited(status):
        exit_status: Callable[[int], int] = getattr(os, "WEXITSTATUS", lambda value: value)
        return exit_status(status)

    wifsignaled: Callable[[int], bool] | None = getattr(os, "WIFSIGNALED", None)
    if wifsignaled is not None and wifsignaled(status):
        wtermsig: Callable[[int], int] | None = getattr(os, "WTERMSIG", None)
        if wtermsig is not None:
            return 128 + wtermsig(status)

    return status


def _spawn_ssh(argv: list[str]) -> int:
    """Invoke the system ssh binary using a pseudo-terminal when available."""

    try:
        import pty
    except ImportError as exc:  # pragma: no cover - platform specific
        msg = "PTY support is required to launch interactive ssh sessions"
        raise RuntimeError(msg) from exc

    return pty.spawn(argv)


def run_ssh(command: Sequence[str]) -> int:
    """Execute an ssh argv as built by the helpers above."""

    ssh_path = shutil.which(command[0])
    if ssh_path is None:
        typer.echo("ssh command not found", err=True)
        return 1

    argv = [ssh_path, *command[1:]]
    logger.debug("Running %s", " ".join(argv))
    try:
        status = _spawn_ssh(argv)
    except RuntimeError as exc:  # pragma: no cover - platform specific
        typer.echo(str(exc), err=True)
        return 1
    except OSError as exc:  # pragma: no cover - unexpected OS errors
        typer.echo(str(exc), err=True)
        return 1
    return _normalize_exit_status(status)
