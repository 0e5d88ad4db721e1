"""Tests for relocating the legacy history document."""

from __future__ import annotations

from pathlib import Path

import pytest

from sshm.core.migration import migrate_legacy_history


@pytest.fixture()
def legacy_path(tmp_path: Path) -> Path:
    path = tmp_path / "ssh" / "sshm_history.json"
    path.parent.mkdir()
    path.write_text('{"connections": {}}', encoding="utf-8")
    return path


def test_migration_moves_legacy_file(tmp_path: Path, legacy_path: Path) -> None:
    new_path = tmp_path / "config" / "sshm_history.json"

    assert migrate_legacy_history(new_path, legacy_path) is True

    assert new_path.read_text(encoding="utf-8") == '{"connections": {}}'
    assert new_path.stat().st_mode & 0o777 == 0o600
    assert not legacy_path.exists()


def test_migration_skips_when_new_file_exists(tmp_path: Path, legacy_path: Path) -> None:
    new_path = tmp_path / "sshm_history.json"
    new_path.write_text("{}", encoding="utf-8")

    assert migrate_legacy_history(new_path, legacy_path) is False

    assert new_path.read_text(encoding="utf-8") == "{}"
    assert legacy_path.exists()


def test_migration_skips_without_legacy_file(tmp_path: Path) -> None:
    new_path = tmp_path / "sshm_history.json"

    assert migrate_legacy_history(new_path, tmp_path / "missing.json") is False
    assert not new_path.exists()


def test_migration_counts_when_legacy_removal_fails(
    tmp_path: Path,
    legacy_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Failing to delete the old file does not undo a successful copy."""

    original_unlink = Path.unlink

    def failing_unlink(self: Path, *args: object, **kwargs: object) -> None:
        if self == legacy_path:
            raise PermissionError("read-only")
        original_unlink(self, *args, **kwargs)

    monkeypatch.setattr(Path, "unlink", failing_unlink)
    new_path = tmp_path / "sshm_history.json"

    assert migrate_legacy_history(new_path, legacy_path) is True
    assert new_path.exists()
    assert legacy_path.exists()
