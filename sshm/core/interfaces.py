"""Protocol definitions for collaborators of the sshm core."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from sshm.core.hosts import HostRecord


class Clock(Protocol):
    """Source of the current time, returning timezone-aware datetimes."""

    def __call__(self) -> datetime: ...


class HostSource(Protocol):
    """Anything that can list the currently configured hosts."""

    def parse_all(self) -> list[HostRecord]:
        """Return one record per configured host name."""
