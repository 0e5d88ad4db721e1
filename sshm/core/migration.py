"""One-time relocation of the history document from its legacy location."""

from __future__ import annotations

import logging
import os
from pathlib import Path

__all__ = ["migrate_legacy_history"]

logger = logging.getLogger(__name__)


def migrate_legacy_history(new_path: Path, legacy_path: Path) -> bool:
    """Copy ``legacy_path`` to ``new_path`` and delete the legacy file.

    Nothing happens when ``new_path`` already exists or there is no legacy
    file. The legacy file is removed only after the copy succeeded; failing
    to remove it is logged and the migration still counts as done. Returns
    whether a copy was made. Filesystem errors are raised as :class:`OSError`.
    """

    if new_path.exists() or not legacy_path.exists():
        return False

    data = legacy_path.read_bytes()
    new_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    fd = os.open(new_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as handle:
        handle.write(data)

    try:
        legacy_path.unlink()
    except OSError as exc:
        logger.warning("Migrated history but could not remove %s: %s", legacy_path, exc)

    logger.info("Migrated connection history from %s to %s", legacy_path, new_path)
    return True
