"""Identity encoding for SSH connections made without a named Host entry.

A manual connection is keyed in the history document as
``manual:<user>@<hostname>:<port>``. Decoding is the inverse of encoding
except for one documented loss: an empty user is stored as ``default`` and
an empty port as ``22``, so a decoded ``default``/``22`` cannot tell whether
the value was explicit or filled in.
"""

from __future__ import annotations

import getpass
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from sshm.errors import ValidationError

__all__ = [
    "DEFAULT_PORT",
    "DEFAULT_USER",
    "MANUAL_PREFIX",
    "ManualConnection",
    "decode_manual_id",
    "encode_manual_id",
    "is_manual",
    "is_manual_ssh_command",
    "parse_ssh_args",
]

logger = logging.getLogger(__name__)

MANUAL_PREFIX = "manual:"
DEFAULT_USER = "default"
DEFAULT_PORT = "22"

_CONFIG_FLAGS = frozenset({"-F", "-c", "--config"})


@dataclass(slots=True)
class ManualConnection:
    """Connection details typed on the command line rather than read from config."""

    hostname: str
    user: str = ""
    port: str = ""
    identity: str = ""

    @property
    def identifier(self) -> str:
        """Return the history key for this connection."""

        return encode_manual_id(self)

    @classmethod
    def from_identifier(cls, identifier: str) -> ManualConnection:
        """Rebuild connection details from a history key.

        The identity file is not part of the key and comes back empty.
        """

        decoded = decode_manual_id(identifier)
        if decoded is None:
            msg = f"'{identifier}' is not a valid manual connection identifier"
            raise ValidationError(msg)
        user, hostname, port = decoded
        return cls(hostname=hostname, user=user, port=port)


def encode_manual_id(conn: ManualConnection) -> str:
    """Encode ``conn`` as ``manual:<user>@<hostname>:<port>``."""

    user = conn.user or DEFAULT_USER
    port = conn.port or DEFAULT_PORT
    return f"{MANUAL_PREFIX}{user}@{conn.hostname}:{port}"


def is_manual(identifier: str) -> bool:
    """Return whether ``identifier`` is a manual-connection key."""

    return len(identifier) > len(MANUAL_PREFIX) and identifier.startswith(MANUAL_PREFIX)


def decode_manual_id(identifier: str) -> tuple[str, str, str] | None:
    """Split a manual-connection key into ``(user, hostname, port)``.

    Returns ``None`` when the prefix is missing, when no ``:`` is found
    scanning from the end, or when no ``@`` precedes it. Defaulted values are
    returned as stored (``default`` and ``22``).
    """

    if not is_manual(identifier):
        return None

    body = identifier[len(MANUAL_PREFIX) :]
    user_host, colon, port = body.rpartition(":")
    if not colon:
        return None

    user, at_sign, hostname = user_host.partition("@")
    if not at_sign:
        return None
    return user, hostname, port


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (OSError, KeyError):
        logger.debug("Could not determine the invoking user", exc_info=True)
        return ""


def parse_ssh_args(
    args: Sequence[str],
    default_user: str | None = None,
) -> ManualConnection | None:
    """Extract manual connection details from ssh-style arguments.

    Understands ``user@host``, ``-p <port>``/``-p<port>`` and ``-i <path>``.
    Other flags are skipped together with a following non-flag value. An
    invocation naming a config file (``-F``, ``-c``, ``--config``) is not a
    manual connection and yields ``None``, as does one without a hostname.
    """

    if not args:
        return None

    user: str | None = None
    hostname = ""
    port = DEFAULT_PORT
    identity = ""

    index = 0
    while index < len(args):
        arg = args[index]
        has_next = index + 1 < len(args)

        if arg == "-p":
            if has_next:
                port = args[index + 1]
                index += 1
        elif arg.startswith("-p"):
            port = arg[2:]
        elif arg == "-i":
            if has_next:
                identity = args[index + 1]
                index += 1
        elif arg in _CONFIG_FLAGS:
            return None
        elif arg.startswith("-"):
            if has_next and not args[index + 1].startswith("-"):
                index += 1
        elif "@" in arg:
            user, _, hostname = arg.partition("@")
        elif not hostname:
            hostname = arg
        index += 1

    if not hostname:
        return None

    if user is None:
        user = default_user if default_user is not None else _current_user()
    return ManualConnection(hostname=hostname, user=user, port=port, identity=identity)


def is_manual_ssh_command(args: Sequence[str]) -> bool:
    """Return whether ``args`` look like a manual ``ssh`` invocation."""

    return any(arg.startswith("-p") or "@" in arg for arg in args)
