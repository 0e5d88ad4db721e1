"""In-memory model of SSH Host entries and helpers for editing them."""

from __future__ import annotations

import re
import shlex
from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from sshm.errors import ValidationError

__all__ = [
    "HostRecord",
    "format_options_for_command",
    "parse_options_from_command",
    "parse_tags",
    "validate_host",
]

_OPTION_SPLIT_RE = re.compile(r"\s*=\s*|\s+")


@dataclass(slots=True)
class HostRecord:
    """Represents one named SSH host as declared in a config file.

    Scalar fields are kept as the text found in the file, with an empty
    string meaning "not set". ``options`` holds the raw ``Key Value`` lines
    sshm does not model itself, and ``comments`` the comment lines found
    inside the block, so both survive a rewrite untouched.
    """

    name: str
    hostname: str = ""
    user: str = ""
    port: str = ""
    identity: str = ""
    proxy_jump: str = ""
    options: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)
    remote_command: str = ""
    request_tty: str = ""
    source_file: str = ""

    def renamed(self, name: str) -> HostRecord:
        """Return a copy of the record that carries a different name."""

        return replace(
            self,
            name=name,
            options=list(self.options),
            tags=list(self.tags),
            comments=list(self.comments),
        )

    def shares_fields_with(self, other: HostRecord) -> bool:
        """Compare every field except the name."""

        return self.renamed("") == other.renamed("")


def validate_host(record: HostRecord) -> None:
    """Check that a record can be written to an SSH config file."""

    name = record.name.strip()
    if not name:
        msg = "host name must not be empty"
        raise ValidationError(msg)
    if any(char.isspace() for char in record.name):
        msg = f"host name '{record.name}' must not contain whitespace"
        raise ValidationError(msg)
    if name.startswith("#"):
        msg = f"host name '{record.name}' must not start with '#'"
        raise ValidationError(msg)
    if not record.hostname.strip():
        msg = f"hostname is required for host '{record.name}'"
        raise ValidationError(msg)
    if record.port:
        if not record.port.isdigit() or not 1 <= int(record.port) <= 65535:
            msg = f"port '{record.port}' must be a number between 1 and 65535"
            raise ValidationError(msg)


def parse_tags(text: str) -> list[str]:
    """Split a comma-separated tag list into trimmed, non-empty tags."""

    return [tag.strip() for tag in text.split(",") if tag.strip()]


def format_options_for_command(options: Iterable[str]) -> str:
    """Render stored option lines as ``-o Key=Value`` command-line tokens."""

    rendered: list[str] = []
    for line in options:
        parts = _OPTION_SPLIT_RE.split(line.strip(), maxsplit=1)
        if not parts or not parts[0]:
            continue
        if len(parts) == 1:
            rendered.append(f"-o {parts[0]}")
        else:
            rendered.append(f"-o {parts[0]}={parts[1]}")
    return " ".join(rendered)


def parse_options_from_command(text: str) -> list[str]:
    """Convert user-entered options into ``Key Value`` config lines.

    Accepts ``-o Key=Value`` tokens as produced by
    :func:`format_options_for_command`, or plain ``Key Value`` /
    ``Key=Value`` entries separated by commas or newlines.
    """

    stripped = text.strip()
    if not stripped:
        return []

    if stripped.startswith("-o"):
        tokens = shlex.split(stripped)
        entries: list[str] = []
        index = 0
        while index < len(tokens):
            token = tokens[index]
            if token == "-o" and index + 1 < len(tokens):
                entries.append(tokens[index + 1])
                index += 2
                continue
            if token.startswith("-o"):
                entries.append(token[2:])
            index += 1
    else:
        entries = re.split(r"[,\n]", stripped)

    lines: list[str] = []
    for entry in entries:
        parts = _OPTION_SPLIT_RE.split(entry.strip(), maxsplit=1)
        if not parts or not parts[0]:
            continue
        if len(parts) == 1:
            msg = f"option '{entry.strip()}' is missing a value"
            raise ValidationError(msg)
        lines.append(f"{parts[0]} {parts[1]}")
    return lines
