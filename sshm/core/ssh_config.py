"""Reading and rewriting ``Host`` blocks in an OpenSSH client config file.

A block starts at a ``Host`` line and runs until the next blank line, the
next ``Host``/``Match`` line or the end of the file. One ``Host`` line may
declare several names; all of them share the block's properties, so any
edit regenerates the whole block for every name it declares.

Every mutating call re-reads the file, rewrites it in full and swaps it in
through :func:`_atomic_rewrite`, which keeps a backup until the new content
is in place.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TextIO

from sshm.core.hosts import HostRecord, parse_tags, validate_host
from sshm.errors import (
    ConfigParseError,
    EmptyResultError,
    HostNotFoundError,
    StorageError,
    ValidationError,
)
from sshm.paths import default_ssh_config_path

__all__ = ["HostBlock", "SSHConfigStore", "render_block", "scan_blocks"]

logger = logging.getLogger(__name__)

_INDENT = "    "
_TAGS_MARKER = "tags:"

# config keyword (lower case) -> HostRecord attribute
_RECOGNIZED_KEYS = {
    "hostname": "hostname",
    "user": "user",
    "port": "port",
    "identityfile": "identity",
    "proxyjump": "proxy_jump",
    "remotecommand": "remote_command",
    "requesttty": "request_tty",
}

_RENDER_ORDER = (
    ("HostName", "hostname"),
    ("User", "user"),
    ("Port", "port"),
    ("IdentityFile", "identity"),
    ("ProxyJump", "proxy_jump"),
    ("RemoteCommand", "remote_command"),
    ("RequestTTY", "request_tty"),
)


class _State(Enum):
    OUTSIDE = "outside"
    IN_BLOCK = "in_block"


@dataclass(slots=True, frozen=True)
class _Span:
    """Half-open line range ``[start, end)`` occupied by one block."""

    start: int
    end: int


@dataclass(slots=True)
class HostBlock:
    """A parsed ``Host`` block and its position in the file."""

    names: list[str]
    start: int
    end: int
    template: HostRecord

    @property
    def is_multi_host(self) -> bool:
        return len(self.names) > 1

    def records(self) -> list[HostRecord]:
        """Expand the block into one record per concrete (non-pattern) name."""

        return [self.template.renamed(name) for name in self.names if not _is_pattern(name)]


def _split_directive(line: str) -> tuple[str, str]:
    """Split a stripped config line into its keyword and value."""

    for index, char in enumerate(line):
        if char.isspace() or char == "=":
            key = line[:index]
            value = line[index:].lstrip()
            if value.startswith("="):
                value = value[1:]
            return key, value.strip()
    return line, ""


def _keyword(stripped: str) -> str:
    if not stripped:
        return ""
    return _split_directive(stripped)[0].lower()


def _is_pattern(name: str) -> bool:
    return name.startswith("!") or "*" in name or "?" in name


def _dedupe(names: Iterable[str]) -> list[str]:
    seen: list[str] = []
    for name in names:
        if name not in seen:
            seen.append(name)
    return seen


def scan_blocks(lines: Sequence[str]) -> list[tuple[int, int]]:
    """Return the ``(start, end)`` line ranges of every ``Host`` block."""

    spans: list[_Span] = []
    state = _State.OUTSIDE
    start = 0

    for index, line in enumerate(lines):
        keyword = _keyword(line.strip())

        if state is _State.IN_BLOCK:
            if not line.strip():
                spans.append(_Span(start, index))
                state = _State.OUTSIDE
                continue
            if keyword not in ("host", "match"):
                continue
            spans.append(_Span(start, index))
            state = _State.OUTSIDE

        if keyword == "host":
            start = index
            state = _State.IN_BLOCK

    if state is _State.IN_BLOCK:
        spans.append(_Span(start, len(lines)))
    return [(span.start, span.end) for span in spans]


def _parse_block(lines: Sequence[str], start: int, end: int, source_file: str) -> HostBlock:
    """Build a :class:`HostBlock` from its lines, raising on malformed content."""

    _, declaration = _split_directive(lines[start].strip())
    names: list[str] = []
    for token in declaration.split():
        if token.startswith("#"):
            break
        names.append(token)
    names = _dedupe(names)
    if not names:
        raise ConfigParseError("Host declaration without any name", line_number=start + 1)

    template = HostRecord(name=names[0], source_file=source_file)
    for index in range(start + 1, end):
        stripped = lines[index].strip()
        if stripped.startswith("#"):
            body = stripped[1:].strip()
            if body.lower().startswith(_TAGS_MARKER):
                template.tags = parse_tags(body[len(_TAGS_MARKER) :])
            else:
                template.comments.append(stripped)
            continue

        key, value = _split_directive(stripped)
        if not value:
            raise ConfigParseError(f"'{key}' has no value", line_number=index + 1)

        attribute = _RECOGNIZED_KEYS.get(key.lower())
        if attribute is None or getattr(template, attribute):
            # repeated keys such as a second IdentityFile are kept as-is
            template.options.append(stripped)
            continue
        setattr(template, attribute, value)

    return HostBlock(names=names, start=start, end=end, template=template)


def render_block(names: Sequence[str], record: HostRecord) -> list[str]:
    """Generate the lines of a ``Host`` block declaring ``names``."""

    lines = [f"Host {' '.join(names)}"]
    if record.tags:
        lines.append(f"{_INDENT}# Tags: {', '.join(record.tags)}")
    lines.extend(f"{_INDENT}{comment}" for comment in record.comments)
    for keyword, attribute in _RENDER_ORDER:
        value = getattr(record, attribute)
        if value:
            lines.append(f"{_INDENT}{keyword} {value}")
    lines.extend(f"{_INDENT}{option.strip()}" for option in record.options if option.strip())
    return lines


def _restore_backup(backup: Path, path: Path) -> bool:
    try:
        shutil.copyfile(backup, path)
    except OSError:
        logger.exception("Could not restore %s; the previous content is kept in %s", path, backup)
        return False
    return True


@contextmanager
def _atomic_rewrite(path: Path) -> Iterator[TextIO]:
    """Yield a handle for the new content of ``path`` and swap it in on exit.

    A symlinked config is followed, so the link itself stays in place. The
    original file is copied to a uniquely named ``.bak`` file next to it
    first. The new content is written to a temporary file in the same
    directory and must not be blank; it then replaces the original in a
    single ``os.replace``. On any failure the temporary file is removed and
    the original restored from the backup.
    """

    target = path.resolve()
    had_original = target.exists()
    backup: Path | None = None
    try:
        if had_original:
            backup_fd, backup_name = tempfile.mkstemp(
                prefix=f".{target.name}.", suffix=".bak", dir=target.parent
            )
            os.close(backup_fd)
            backup = Path(backup_name)
            shutil.copy2(target, backup)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    except OSError as exc:
        if backup is not None:
            with suppress(FileNotFoundError):
                backup.unlink()
        raise StorageError(f"cannot prepare rewrite of {path}: {exc}") from exc

    tmp_path = Path(tmp_name)
    keep_backup = False
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            yield handle
        if not tmp_path.read_text(encoding="utf-8").strip():
            msg = f"refusing to leave {path} empty; the operation was cancelled"
            raise EmptyResultError(msg)
        if had_original:
            shutil.copymode(target, tmp_path)
        else:
            os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, target)
    except Exception as exc:
        with suppress(FileNotFoundError):
            tmp_path.unlink()
        if backup is not None:
            keep_backup = not _restore_backup(backup, target)
        if isinstance(exc, OSError):
            raise StorageError(f"failed to rewrite {path}: {exc}") from exc
        raise
    finally:
        if backup is not None and not keep_backup:
            with suppress(FileNotFoundError):
                backup.unlink()


class SSHConfigStore:
    """Read and edit the ``Host`` blocks of one SSH config file.

    Nothing is cached between calls: every operation re-reads the file, so
    callers always observe the latest on-disk state and must re-fetch records
    after any mutating call.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path).expanduser() if path is not None else default_ssh_config_path()

    @property
    def path(self) -> Path:
        """Expose the backing config file path."""

        return self._path

    def parse_all(self) -> list[HostRecord]:
        """Return one record per host name declared in the file.

        Malformed blocks are logged and skipped rather than failing the whole
        parse. A missing file has no hosts.
        """

        try:
            lines = self._read_lines()
        except StorageError as exc:
            raise ConfigParseError(str(exc)) from exc

        records: list[HostRecord] = []
        for block in self._load_blocks(lines):
            records.extend(block.records())
        logger.debug("Parsed %d hosts from %s", len(records), self._path)
        return records

    def get_host(self, name: str) -> HostRecord:
        """Return the record for ``name``."""

        for record in self.parse_all():
            if record.name == name:
                return record
        raise HostNotFoundError(name)

    def is_part_of_multi_host_declaration(self, name: str) -> tuple[bool, list[str]]:
        """Report whether ``name`` shares its ``Host`` line with other names.

        Returns the flag together with every name declared on that line.
        """

        block = self._require_block(self._load_blocks(self._read_lines()), name)
        return block.is_multi_host, list(block.names)

    def add_host(self, record: HostRecord) -> None:
        """Append a new single-name block for ``record``."""

        validate_host(record)
        lines = self._read_lines()
        blocks = self._load_blocks(lines)
        self._ensure_available([record.name], blocks)

        new_lines = list(lines)
        while new_lines and not new_lines[-1].strip():
            new_lines.pop()
        if new_lines:
            new_lines.append("")
        new_lines.extend(render_block([record.name], record))

        try:
            self._path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"cannot create {self._path.parent}: {exc}") from exc
        self._write_lines(new_lines)
        logger.info("Added host %s to %s", record.name, self._path)

    def update_host(self, old_name: str, record: HostRecord) -> None:
        """Regenerate the block declaring ``old_name`` from ``record``.

        When the block declares other names too, ``old_name`` is replaced by
        ``record.name`` in place and the siblings take the new fields.
        """

        validate_host(record)
        lines = self._read_lines()
        blocks = self._load_blocks(lines)
        block = self._require_block(blocks, old_name)
        if record.name != old_name:
            self._ensure_available([record.name], blocks, exclude=block)

        names = _dedupe(record.name if name == old_name else name for name in block.names)
        self._replace_block(lines, block, names, record)
        logger.info("Updated host %s in %s", old_name, self._path)

    def update_multi_host_block(
        self,
        old_names: Sequence[str],
        new_names: Sequence[str],
        record: HostRecord,
    ) -> None:
        """Replace the block declaring ``old_names`` with one declaring ``new_names``.

        This converts single-host blocks into multi-host ones and back, and
        renames or regroups hosts in a single rewrite.
        """

        names = _dedupe(name.strip() for name in new_names if name.strip())
        if not names:
            msg = "at least one host name is required"
            raise ValidationError(msg)
        if not old_names:
            msg = "the names of the block to replace are required"
            raise ValidationError(msg)
        for name in names:
            validate_host(record.renamed(name))

        lines = self._read_lines()
        blocks = self._load_blocks(lines)
        block = self._require_block(blocks, old_names[0])
        missing = [name for name in old_names if name not in block.names]
        if missing:
            raise HostNotFoundError(missing[0])
        self._ensure_available(names, blocks, exclude=block)

        self._replace_block(lines, block, names, record)
        logger.info(
            "Replaced block %s with %s in %s",
            " ".join(block.names),
            " ".join(names),
            self._path,
        )

    def delete_host(self, name: str) -> None:
        """Remove the whole block declaring ``name``, co-declared names included."""

        lines = self._read_lines()
        block = self._require_block(self._load_blocks(lines), name)

        new_lines = lines[: block.start] + lines[block.end :]
        if block.end < len(lines) and not lines[block.end].strip():
            del new_lines[block.start]
        elif block.start > 0 and not lines[block.start - 1].strip():
            del new_lines[block.start - 1]

        self._write_lines(new_lines)
        logger.info("Deleted block %s from %s", " ".join(block.names), self._path)

    def _read_lines(self) -> list[str]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f"cannot read {self._path}: {exc}") from exc
        return text.splitlines()

    def _write_lines(self, lines: Sequence[str]) -> None:
        text = "\n".join(lines) + "\n" if lines else ""
        with _atomic_rewrite(self._path) as handle:
            handle.write(text)

    def _load_blocks(self, lines: Sequence[str]) -> list[HostBlock]:
        blocks: list[HostBlock] = []
        source = str(self._path)
        for start, end in scan_blocks(lines):
            try:
                blocks.append(_parse_block(lines, start, end, source))
            except ConfigParseError as exc:
                logger.warning("Skipping malformed Host block in %s: %s", self._path, exc)
        return blocks

    @staticmethod
    def _find_block(blocks: Iterable[HostBlock], name: str) -> HostBlock | None:
        for block in blocks:
            if name in block.names:
                return block
        return None

    def _require_block(self, blocks: Iterable[HostBlock], name: str) -> HostBlock:
        block = self._find_block(blocks, name)
        if block is None:
            raise HostNotFoundError(name)
        return block

    @staticmethod
    def _ensure_available(
        names: Iterable[str],
        blocks: Iterable[HostBlock],
        *,
        exclude: HostBlock | None = None,
    ) -> None:
        others = [block for block in blocks if block is not exclude]
        for name in names:
            if any(name in block.names for block in others):
                msg = f"host '{name}' already exists in the configuration"
                raise ValidationError(msg)

    def _replace_block(
        self,
        lines: Sequence[str],
        block: HostBlock,
        names: Sequence[str],
        record: HostRecord,
    ) -> None:
        replacement = render_block(names, record)
        self._write_lines([*lines[: block.start], *replacement, *lines[block.end :]])
