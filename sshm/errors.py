"""Exception types raised by the sshm core."""

from __future__ import annotations

__all__ = [
    "ConfigParseError",
    "EmptyResultError",
    "HostNotFoundError",
    "SshmError",
    "StorageError",
    "ValidationError",
]


class SshmError(Exception):
    """Base exception type for sshm failures."""


class StorageError(SshmError):
    """Raised when reading or writing a file fails for reasons other than absence."""


class HostNotFoundError(SshmError, LookupError):
    """Raised when no Host block declares the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"host '{name}' not found in SSH configuration")
        self.name = name


class ConfigParseError(SshmError):
    """Raised for a structurally malformed Host block."""

    def __init__(self, message: str, *, line_number: int | None = None) -> None:
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number


class EmptyResultError(SshmError):
    """Raised when a rewrite would leave the SSH config file empty."""


class ValidationError(SshmError, ValueError):
    """Raised when a caller-supplied value fails a format constraint."""
