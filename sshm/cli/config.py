"""Configuration-related CLI commands."""

from __future__ import annotations

import json

import typer

from sshm.cli._shared import show_help_if_no_subcommand
from sshm.config import AppConfigStore

config_app = typer.Typer(help="Manage application configuration")


@config_app.callback(invoke_without_command=True)
def config_root(ctx: typer.Context) -> None:
    """Display contextual help when no subcommand is provided."""

    show_help_if_no_subcommand(ctx)


@config_app.command("show")
def show_config() -> None:
    """Display the current application configuration."""

    store = AppConfigStore()
    config = store.load()
    payload = config.to_payload()
    payload["ssh_config_path"] = str(config.ssh_config_path)
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))


@config_app.command("set-ssh-config")
def set_ssh_config(
    path: str = typer.Argument(
        "",
        metavar="PATH",
        help="SSH config file to manage. Omit to go back to ~/.ssh/config.",
    ),
) -> None:
    """Choose which SSH config file sshm reads and edits."""

    store = AppConfigStore()
    config = store.load()
    config.set_ssh_config_file(path)
    store.save(config)
    typer.echo(f"Using SSH config: {config.ssh_config_path}")


@config_app.command("set-sort")
def set_sort(
    mode: str = typer.Argument(..., metavar="MODE", help="Either 'recent' or 'frequent'."),
) -> None:
    """Set the default ordering used by `sshm list`."""

    store = AppConfigStore()
    config = store.load()
    try:
        config.set_sort_by(mode)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(2) from exc
    store.save(config)
    typer.echo(f"Default sort order: {config.sort_by}")
