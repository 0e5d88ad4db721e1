"""Runtime exercises for protocol definitions in sshm.core.interfaces."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from sshm.core import interfaces
from sshm.core.history import HistoryStore
from sshm.core.hosts import HostRecord
from sshm.core.ssh_config import SSHConfigStore


def test_clock_protocol_drives_history_timestamps(tmp_path: Path) -> None:
    """Any zero-argument callable returning a datetime can act as the clock."""

    fixed = datetime(2024, 1, 2, 3, 4, tzinfo=UTC)

    class FixedClock:
        def __call__(self) -> datetime:
            return fixed

    clock: interfaces.Clock = FixedClock()
    store = HistoryStore(tmp_path / "history.json", clock=clock)

    assert store.record_connection("web").last_connect == fixed


def test_host_source_feeds_prune(tmp_path: Path) -> None:
    """Both the config store and ad-hoc sources satisfy HostSource."""

    class StaticSource:
        def parse_all(self) -> list[HostRecord]:
            return [HostRecord(name="kept", hostname="k")]

    def current_names(source: interfaces.HostSource) -> list[str]:
        return [host.name for host in source.parse_all()]

    config = tmp_path / "config"
    config.write_text("Host from-file\n    HostName f\n", encoding="utf-8")

    assert current_names(StaticSource()) == ["kept"]
    assert current_names(SSHConfigStore(config)) == ["from-file"]

    store = HistoryStore(tmp_path / "history.json")
    store.record_connection("kept")
    store.record_connection("gone")

    assert store.prune(StaticSource().parse_all()) == ["gone"]
