"""Utilities for resolving filesystem locations used by sshm."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import user_config_path

__all__ = [
    "HISTORY_FILENAME",
    "config_dir",
    "default_ssh_config_path",
    "history_path",
    "legacy_history_path",
    "ssh_dir",
]

HISTORY_FILENAME = "sshm_history.json"


def config_dir(*, create: bool = True) -> Path:
    """Return the base directory for sshm's own configuration and history.

    The path defaults to the platform-specific user config directory exposed
    by :mod:`platformdirs`. When the ``SSHM_CONFIG_DIR`` environment variable
    is set the value is treated as an override, allowing tests or alternative
    deployments to isolate their state.
    """

    override = os.getenv("SSHM_CONFIG_DIR")
    path = Path(override).expanduser() if override else user_config_path("sshm")

    if create:
        path.mkdir(mode=0o755, parents=True, exist_ok=True)
    return path


def ssh_dir() -> Path:
    """Return the user's OpenSSH directory."""

    return Path.home() / ".ssh"


def default_ssh_config_path() -> Path:
    """Return the SSH client configuration file used when none is configured."""

    return ssh_dir() / "config"


def history_path() -> Path:
    """Return the location of the connection history document."""

    return config_dir() / HISTORY_FILENAME


def legacy_history_path() -> Path:
    """Return where older releases stored the history document."""

    return ssh_dir() / HISTORY_FILENAME
