"""History-related CLI commands."""

from __future__ import annotations

import typer

from sshm.cli._shared import fail, format_time_since, load_app_config, show_help_if_no_subcommand
from sshm.cli.history_menu import describe_identifier
from sshm.core.history import HistoryStore
from sshm.core.interfaces import HostSource
from sshm.core.ssh_config import SSHConfigStore
from sshm.errors import SshmError

history_app = typer.Typer(help="Inspect and clean connection history")


def _open_store() -> HistoryStore:
    try:
        return HistoryStore.open()
    except SshmError as exc:
        raise fail(exc) from exc


@history_app.callback(invoke_without_command=True)
def history_root(ctx: typer.Context) -> None:
    """Display contextual help when no subcommand is provided."""

    show_help_if_no_subcommand(ctx)


@history_app.command("list")
def list_history() -> None:
    """Show every recorded connection, most recent first."""

    store = _open_store()
    connections = store.all_connections()
    if not connections:
        typer.echo("No SSH history yet.")
        return
    for info in connections:
        line = (
            f"{describe_identifier(info.identifier):<40} "
            f"{info.connect_count:>4}x  {format_time_since(info.last_connect)}"
        )
        if info.port_forwarding is not None:
            line += f"  [{' '.join(info.port_forwarding.to_ssh_args())}]"
        typer.echo(line)


@history_app.command("prune")
def prune_history() -> None:
    """Forget hosts that are no longer in the SSH config."""

    store = _open_store()
    try:
        source: HostSource = SSHConfigStore(load_app_config().ssh_config_path)
        hosts = source.parse_all()
        removed = store.prune(hosts)
    except SshmError as exc:
        raise fail(exc) from exc

    if not removed:
        typer.echo("History is already clean.")
        return
    for identifier in removed:
        typer.echo(f"Removed {identifier}")


@history_app.command("remove")
def remove_entry(
    identifier: str = typer.Argument(..., metavar="IDENTIFIER"),
) -> None:
    """Forget a single host or manual connection."""

    store = _open_store()
    try:
        removed = store.remove(identifier)
    except SshmError as exc:
        raise fail(exc) from exc
    if not removed:
        typer.echo(f"{identifier} is not in the history.", err=True)
        raise typer.Exit(1)
    typer.echo(f"Removed {identifier} from history.")
