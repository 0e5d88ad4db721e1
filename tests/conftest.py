"""Shared pytest configuration for the test suite."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Tag every test that is not marked as system as a unit test."""

    for item in items:
        if "system" not in item.keywords:
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep every test away from the real ~/.ssh and sshm config directory."""

    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("SSHM_CONFIG_DIR", str(home / ".config" / "sshm"))
    monkeypatch.delenv("SSHM_LOG_LEVEL", raising=False)
    return home


@pytest.fixture(autouse=True)
def reset_sshm_logger() -> Iterator[logging.Logger]:
    """Start and end every test with a pristine ``sshm`` logger.

    ``configure_logging`` attaches a stderr handler and turns propagation off;
    left in place, that state would leak into whichever test runs next.
    """

    logger = logging.getLogger("sshm")

    def _reset() -> None:
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
        logger.propagate = True

    _reset()
    yield logger
    _reset()
