"""Application settings and their persistence helpers for sshm."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sshm import paths

__all__ = ["AppConfig", "AppConfigStore", "SORT_MODES", "default_config_path"]

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG_FILENAME = "config.json"

SORT_MODES = ("recent", "frequent")


@dataclass(slots=True)
class AppConfig:
    """Top-level application settings.

    The resolved SSH config path is handed to every store explicitly rather
    than kept as process-wide state.
    """

    ssh_config_file: str | None = None
    sort_by: str = "recent"

    @property
    def ssh_config_path(self) -> Path:
        """Return the SSH config file to operate on."""

        if self.ssh_config_file:
            return Path(self.ssh_config_file).expanduser()
        return paths.default_ssh_config_path()

    def to_payload(self) -> dict[str, Any]:
        """Serialize the configuration into a JSON-compatible structure."""

        payload: dict[str, Any] = {"sort_by": self.sort_by}
        if self.ssh_config_file:
            payload["ssh_config_file"] = self.ssh_config_file
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AppConfig:
        """Create a configuration instance from serialized data."""

        raw_path = payload.get("ssh_config_file")
        ssh_config_file = raw_path.strip() if isinstance(raw_path, str) and raw_path.strip() else None

        sort_by = payload.get("sort_by", "recent")
        if sort_by not in SORT_MODES:
            sort_by = "recent"
        return cls(ssh_config_file=ssh_config_file, sort_by=sort_by)

    def set_sort_by(self, mode: str) -> None:
        """Change the default host ordering."""

        normalized = mode.strip().lower()
        if normalized not in SORT_MODES:
            msg = f"Sort mode must be one of: {', '.join(SORT_MODES)}."
            raise ValueError(msg)
        self.sort_by = normalized

    def set_ssh_config_file(self, path: str | None) -> None:
        """Point sshm at another SSH config file, or back to the default."""

        normalized = path.strip() if path else ""
        self.ssh_config_file = normalized or None


def default_config_path() -> Path:
    """Return the default location for the application's configuration file."""

    return paths.config_dir() / _DEFAULT_CONFIG_FILENAME


class AppConfigStore:
    """Manage persistence of the application configuration file."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path if path is not None else default_config_path()

    @property
    def path(self) -> Path:
        """Expose the backing configuration file path."""

        return self._path

    def load(self) -> AppConfig:
        """Load configuration from disk, returning defaults when absent."""

        if not self._path.exists():
            return AppConfig()
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("Cannot read %s, using defaults: %s", self._path, exc)
            return AppConfig()
        if not raw.strip():
            return AppConfig()
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring invalid JSON in %s", self._path)
            return AppConfig()
        if not isinstance(payload, dict):
            return AppConfig()
        return AppConfig.from_payload(payload)

    def save(self, config: AppConfig) -> None:
        """Persist the provided configuration to disk atomically."""

        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = json.dumps(config.to_payload(), indent=2, sort_keys=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(data, encoding="utf-8")
        tmp_path.replace(self._path)
