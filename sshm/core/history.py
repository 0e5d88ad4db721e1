"""Persistence helpers for tracking SSH connection history."""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from sshm import paths
from sshm.core.hosts import HostRecord
from sshm.core.interfaces import Clock
from sshm.core.manual import ManualConnection, is_manual
from sshm.core.migration import migrate_legacy_history
from sshm.errors import StorageError, ValidationError

__all__ = [
    "ConnectionInfo",
    "ForwardType",
    "HistoryStore",
    "PortForwardConfig",
]

logger = logging.getLogger(__name__)

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def _utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(UTC)


def _parse_timestamp(raw: str) -> datetime:
    """Parse an RFC 3339 timestamp, including nanosecond fractions."""

    normalized = _FRACTION_RE.sub(r"\1", raw.strip())
    if normalized.endswith(("Z", "z")):
        normalized = normalized[:-1] + "+00:00"
    timestamp = datetime.fromisoformat(normalized)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return timestamp


class ForwardType(str, Enum):
    """Kinds of SSH port forwarding."""

    LOCAL = "local"
    REMOTE = "remote"
    DYNAMIC = "dynamic"

    @classmethod
    def parse(cls, value: str | ForwardType) -> ForwardType:
        try:
            return cls(value)
        except ValueError as exc:
            allowed = ", ".join(member.value for member in cls)
            msg = f"unknown port forwarding type '{value}' (expected one of: {allowed})"
            raise ValidationError(msg) from exc


@dataclass(slots=True)
class PortForwardConfig:
    """Last port forwarding set up for a host."""

    type: ForwardType
    local_port: str
    remote_host: str = ""
    remote_port: str = ""
    bind_address: str = ""

    def to_ssh_args(self) -> list[str]:
        """Render the forwarding as ``ssh`` command-line arguments."""

        prefix = f"{self.bind_address}:" if self.bind_address else ""
        if self.type is ForwardType.DYNAMIC:
            return ["-D", f"{prefix}{self.local_port}"]
        if self.type is ForwardType.REMOTE:
            # for -R the listening side is the remote port
            spec = f"{prefix}{self.remote_port}:{self.remote_host}:{self.local_port}"
            return ["-R", spec]
        return ["-L", f"{prefix}{self.local_port}:{self.remote_host}:{self.remote_port}"]

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "local_port": self.local_port,
            "remote_host": self.remote_host,
            "remote_port": self.remote_port,
            "bind_address": self.bind_address,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> PortForwardConfig:
        return cls(
            type=ForwardType.parse(payload.get("type", "")),
            local_port=str(payload.get("local_port", "")),
            remote_host=str(payload.get("remote_host", "")),
            remote_port=str(payload.get("remote_port", "")),
            bind_address=str(payload.get("bind_address", "")),
        )


@dataclass(slots=True)
class ConnectionInfo:
    """Usage metadata for one host name or manual-connection identifier."""

    identifier: str
    last_connect: datetime
    connect_count: int = 1
    port_forwarding: PortForwardConfig | None = None

    @property
    def is_manual(self) -> bool:
        return is_manual(self.identifier)

    def to_payload(self) -> dict[str, Any]:
        """Serialize the entry into a JSON-compatible dictionary."""

        payload: dict[str, Any] = {
            "host_name": self.identifier,
            "last_connect": self.last_connect.isoformat(),
            "connect_count": self.connect_count,
        }
        if self.port_forwarding is not None:
            payload["port_forwarding"] = self.port_forwarding.to_payload()
        return payload

    @classmethod
    def from_payload(cls, identifier: str, payload: dict[str, Any]) -> ConnectionInfo:
        """Reconstruct an entry from serialized data keyed by ``identifier``."""

        raw_timestamp = payload.get("last_connect")
        if not isinstance(raw_timestamp, str) or not raw_timestamp:
            msg = "History entry is missing 'last_connect'"
            raise ValueError(msg)
        timestamp = _parse_timestamp(raw_timestamp)

        # counts below one are raised to one
        count = max(int(payload.get("connect_count", 1)), 1)

        forwarding = payload.get("port_forwarding")
        port_forwarding = (
            PortForwardConfig.from_payload(forwarding) if isinstance(forwarding, dict) else None
        )
        return cls(
            identifier=identifier,
            last_connect=timestamp,
            connect_count=count,
            port_forwarding=port_forwarding,
        )


class HistoryStore:
    """Own the on-disk connection history and the map mirroring it.

    Every mutating call writes the whole document back immediately. There is
    no locking: when two processes write concurrently the last one wins.
    """

    def __init__(
        self,
        path: Path | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._path = path if path is not None else paths.history_path()
        self._clock = clock if clock is not None else _utcnow
        self._connections: dict[str, ConnectionInfo] = {}

    @classmethod
    def open(
        cls,
        path: Path | None = None,
        *,
        legacy_path: Path | None = None,
        clock: Clock | None = None,
    ) -> HistoryStore:
        """Create a store, migrate a legacy document if needed and load it."""

        store = cls(path, clock=clock)
        try:
            store.path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"cannot create {store.path.parent}: {exc}") from exc

        legacy = legacy_path if legacy_path is not None else paths.legacy_history_path()
        try:
            migrate_legacy_history(store.path, legacy)
        except OSError as exc:
            logger.warning("Could not migrate history from %s: %s", legacy, exc)

        store.load()
        return store

    @property
    def path(self) -> Path:
        """Return the backing file path for history data."""

        return self._path

    def load(self) -> None:
        """Replace the in-memory map with the document on disk."""

        self._connections = dict(self._read_connections())

    def get(self, identifier: str) -> ConnectionInfo | None:
        return self._connections.get(identifier)

    def last_connect(self, identifier: str) -> datetime | None:
        """Return when ``identifier`` was last connected to, if ever."""

        info = self._connections.get(identifier)
        return info.last_connect if info is not None else None

    def connect_count(self, identifier: str) -> int:
        info = self._connections.get(identifier)
        return info.connect_count if info is not None else 0

    def port_forwarding_for(self, identifier: str) -> PortForwardConfig | None:
        """Return the last port forwarding used with ``identifier``."""

        info = self._connections.get(identifier)
        return info.port_forwarding if info is not None else None

    def record_connection(self, identifier: str) -> ConnectionInfo:
        """Count a new connection to ``identifier`` and persist the history."""

        info = self._touch(identifier)
        self._save()
        return info

    def record_manual_connection(self, conn: ManualConnection) -> str:
        """Record a connection made without a config entry and return its key."""

        identifier = conn.identifier
        self.record_connection(identifier)
        return identifier

    def record_port_forwarding(
        self,
        identifier: str,
        forward_type: str | ForwardType,
        local_port: str,
        remote_host: str = "",
        remote_port: str = "",
        bind_address: str = "",
    ) -> ConnectionInfo:
        """Count a forwarding connection and remember its configuration."""

        forwarding = PortForwardConfig(
            type=ForwardType.parse(forward_type),
            local_port=local_port,
            remote_host=remote_host,
            remote_port=remote_port,
            bind_address=bind_address,
        )
        info = self._touch(identifier)
        info.port_forwarding = forwarding
        self._save()
        return info

    def remove(self, identifier: str) -> bool:
        """Forget a single history entry."""

        if self._connections.pop(identifier, None) is None:
            return False
        self._save()
        return True

    def prune(self, current_hosts: Iterable[HostRecord]) -> list[str]:
        """Drop entries for hosts that are no longer configured.

        Manual identifiers never correspond to a config entry and are kept.
        Returns the removed identifiers.
        """

        names = {host.name for host in current_hosts}
        stale = sorted(
            info.identifier
            for info in self._connections.values()
            if info.identifier not in names and not info.is_manual
        )
        for identifier in stale:
            del self._connections[identifier]
        self._save()
        if stale:
            logger.info("Pruned %d stale history entries", len(stale))
        return stale

    def all_connections(self) -> list[ConnectionInfo]:
        """Return every entry, most recently used first."""

        by_identifier = sorted(self._connections.values(), key=lambda info: info.identifier)
        return sorted(by_identifier, key=lambda info: info.last_connect, reverse=True)

    def sort_by_recency(self, hosts: Iterable[HostRecord]) -> list[HostRecord]:
        """Order hosts by last use; never-used hosts follow, by name."""

        return sorted(hosts, key=self._recency_key)

    def sort_by_frequency(self, hosts: Iterable[HostRecord]) -> list[HostRecord]:
        """Order hosts by connection count, then by recency, then by name."""

        return sorted(
            hosts,
            key=lambda host: (-self.connect_count(host.name), *self._recency_key(host)),
        )

    def _recency_key(self, host: HostRecord) -> tuple[int, float, str]:
        last = self.last_connect(host.name)
        if last is None:
            return (1, 0.0, host.name)
        return (0, -last.timestamp(), host.name)

    def _touch(self, identifier: str) -> ConnectionInfo:
        now = self._clock()
        info = self._connections.get(identifier)
        if info is None:
            info = ConnectionInfo(identifier=identifier, last_connect=now)
            self._connections[identifier] = info
        else:
            info.last_connect = now
            info.connect_count += 1
        return info

    def _read_connections(self) -> Iterator[tuple[str, ConnectionInfo]]:
        """Read serialized history data from disk."""

        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f"cannot read history {self._path}: {exc}") from exc
        if not raw.strip():
            return

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageError(f"history {self._path} is not valid JSON: {exc}") from exc

        connections = payload.get("connections") if isinstance(payload, dict) else None
        if not isinstance(connections, dict):
            logger.warning("Ignoring history %s without a 'connections' map", self._path)
            return

        for identifier, item in connections.items():
            if not isinstance(item, dict):
                logger.warning("Skipping history entry %r: not an object", identifier)
                continue
            try:
                yield identifier, ConnectionInfo.from_payload(identifier, item)
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping history entry %r: %s", identifier, exc)

    def _save(self) -> None:
        """Write the serialized history data to disk atomically."""

        document = {
            "connections": {
                identifier: self._connections[identifier].to_payload()
                for identifier in sorted(self._connections)
            }
        }
        data = json.dumps(document, indent=2)
        tmp_path = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(data)
            os.chmod(tmp_path, 0o600)
            tmp_path.replace(self._path)
        except OSError as exc:
            raise StorageError(f"cannot write history {self._path}: {exc}") from exc
