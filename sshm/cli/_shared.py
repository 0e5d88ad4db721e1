"""Shared helpers for Typer-based CLI components."""

from __future__ import annotations

import logging
import os
import sys
from datetime import UTC, datetime

import typer

from sshm.config import AppConfig, AppConfigStore
from sshm.errors import SshmError, ValidationError

_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def show_help_if_no_subcommand(ctx: typer.Context) -> None:
    """Emit contextual help when a subcommand is not provided."""

    if ctx.invoked_subcommand or ctx.resilient_parsing:
        return
    typer.echo(ctx.get_help())
    raise typer.Exit()


def configure_logging(verbose: bool = False) -> None:
    """Send sshm log records to stderr.

    ``--verbose`` forces DEBUG; otherwise ``SSHM_LOG_LEVEL`` applies, with
    WARNING as the default. A handler is only attached once.
    """

    level_name = "DEBUG" if verbose else os.getenv("SSHM_LOG_LEVEL", "WARNING").upper()
    sshm_logger = logging.getLogger("sshm")
    sshm_logger.setLevel(getattr(logging, level_name, logging.WARNING))

    if not sshm_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        sshm_logger.addHandler(handler)
        sshm_logger.propagate = False


def load_app_config() -> AppConfig:
    """Read the persisted application settings."""

    return AppConfigStore().load()


def fail(exc: SshmError) -> typer.Exit:
    """Report a core error on stderr and build the matching exit."""

    typer.echo(f"Error: {exc}", err=True)
    return typer.Exit(2 if isinstance(exc, ValidationError) else 1)


def _plural(count: int, unit: str) -> str:
    return f"1 {unit} ago" if count == 1 else f"{count} {unit}s ago"


def format_time_since(timestamp: datetime, now: datetime | None = None) -> str:
    """Describe how long ago ``timestamp`` was, e.g. ``3 hours ago``."""

    current = now if now is not None else datetime.now(UTC)
    seconds = (current - timestamp).total_seconds()

    minute = 60
    hour = 60 * minute
    day = 24 * hour
    if seconds < minute:
        return "just now"
    if seconds < hour:
        return _plural(int(seconds // minute), "minute")
    if seconds < day:
        return _plural(int(seconds // hour), "hour")
    if seconds < 7 * day:
        return _plural(int(seconds // day), "day")
    if seconds < 30 * day:
        return _plural(int(seconds // (7 * day)), "week")

    months = int(seconds // (30 * day))
    if months < 12:
        return _plural(months, "month")
    return _plural(months // 12, "year")
