"""Command-line interface for the sshm application."""

from __future__ import annotations

import sys
from collections.abc import Sequence
from pathlib import Path

import typer

from sshm import __version__
from sshm.cli._shared import configure_logging, fail, format_time_since, load_app_config
from sshm.cli.config import config_app
from sshm.cli.history import history_app
from sshm.cli.history_menu import launch_history_menu
from sshm.cli.ssh_launcher import build_host_command, build_manual_command, run_ssh
from sshm.config import SORT_MODES
from sshm.core.history import ForwardType, HistoryStore, PortForwardConfig
from sshm.core.hosts import (
    HostRecord,
    format_options_for_command,
    parse_options_from_command,
    parse_tags,
)
from sshm.core.manual import (
    DEFAULT_PORT,
    DEFAULT_USER,
    ManualConnection,
    is_manual,
    is_manual_ssh_command,
    parse_ssh_args,
)
from sshm.core.ssh_config import SSHConfigStore
from sshm.errors import SshmError

app = typer.Typer(help="Manage SSH config hosts and connection history")
app.add_typer(config_app, name="config", help="Inspect and adjust configuration")
app.add_typer(history_app, name="history", help="Inspect and clean connection history")

_GLOBAL_OPTIONS = frozenset({"--version", "-V", "--help", "--verbose"})


def _config_store() -> SSHConfigStore:
    return SSHConfigStore(load_app_config().ssh_config_path)


def _open_history() -> HistoryStore:
    try:
        return HistoryStore.open()
    except SshmError as exc:
        raise fail(exc) from exc


@app.callback(invoke_without_command=True)
def cli(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the application's version and exit.",
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log debug details to stderr."),
) -> None:
    """Handle top-level options for the CLI."""
    if version:
        typer.echo(__version__)
        raise typer.Exit()

    configure_logging(verbose)

    if ctx.invoked_subcommand is not None or ctx.resilient_parsing:
        return

    if ctx.args:
        return

    store = _open_history()
    exit_code = launch_history_menu(store, load_app_config().ssh_config_path)
    raise typer.Exit(exit_code)


@app.command("list")
def list_hosts(
    sort: str | None = typer.Option(
        None,
        "--sort",
        "-s",
        help="Order by 'recent' or 'frequent' use (defaults to the configured mode).",
    ),
) -> None:
    """List configured hosts together with their usage."""

    mode = sort if sort is not None else load_app_config().sort_by
    if mode not in SORT_MODES:
        typer.echo(f"Sort mode must be one of: {', '.join(SORT_MODES)}.", err=True)
        raise typer.Exit(2)

    try:
        hosts = _config_store().parse_all()
    except SshmError as exc:
        raise fail(exc) from exc
    if not hosts:
        typer.echo("No hosts configured.")
        return

    store = _open_history()
    ordered = store.sort_by_frequency(hosts) if mode == "frequent" else store.sort_by_recency(hosts)
    for host in ordered:
        target = host.hostname
        if host.user:
            target = f"{host.user}@{target}"
        if host.port:
            target = f"{target}:{host.port}"

        last = store.last_connect(host.name)
        usage = (
            f"{store.connect_count(host.name)}x, {format_time_since(last)}"
            if last is not None
            else "never"
        )
        tags = f"  [{', '.join(host.tags)}]" if host.tags else ""
        typer.echo(f"{host.name:<20} {target:<35} {usage}{tags}")


@app.command("show")
def show_host(name: str = typer.Argument(..., metavar="NAME")) -> None:
    """Display the configuration of one host."""

    store = _config_store()
    try:
        host = store.get_host(name)
        is_multi, names = store.is_part_of_multi_host_declaration(name)
    except SshmError as exc:
        raise fail(exc) from exc

    typer.echo(f"Host {host.name}")
    fields = (
        ("HostName", host.hostname),
        ("User", host.user),
        ("Port", host.port),
        ("IdentityFile", host.identity),
        ("ProxyJump", host.proxy_jump),
        ("RemoteCommand", host.remote_command),
        ("RequestTTY", host.request_tty),
        ("Tags", ", ".join(host.tags)),
    )
    for label, value in fields:
        if value:
            typer.echo(f"  {label}: {value}")
    if host.options:
        typer.echo(f"  Options: {format_options_for_command(host.options)}")
    for comment in host.comments:
        typer.echo(f"  {comment}")
    if is_multi:
        others = [other for other in names if other != name]
        typer.echo(f"  Shares its block with: {', '.join(others)}")
    typer.echo(f"  Source: {host.source_file}")


@app.command("add")
def add_host(
    name: str = typer.Argument(..., metavar="NAME"),
    hostname: str = typer.Option(..., "--hostname", "-H", help="IP address or domain."),
    user: str = typer.Option("", "--user", "-u"),
    port: str = typer.Option("", "--port", "-p"),
    identity: str = typer.Option("", "--identity", "-i", help="Path to a private key."),
    proxy_jump: str = typer.Option("", "--proxy-jump", "-J"),
    options: str = typer.Option("", "--options", "-o", help="Extra options, e.g. '-o Compression=yes'."),
    tags: str = typer.Option("", "--tags", "-t", help="Comma-separated tags."),
    remote_command: str = typer.Option("", "--remote-command"),
    request_tty: str = typer.Option("", "--request-tty", help="yes, no, force or auto."),
) -> None:
    """Add a new host block to the SSH config."""

    store = _config_store()
    try:
        record = HostRecord(
            name=name,
            hostname=hostname,
            user=user,
            port=port,
            identity=identity,
            proxy_jump=proxy_jump,
            options=parse_options_from_command(options),
            tags=parse_tags(tags),
            remote_command=remote_command,
            request_tty=request_tty,
        )
        store.add_host(record)
    except SshmError as exc:
        raise fail(exc) from exc
    typer.echo(f"Configuration for host {name} added successfully.")


@app.command("edit")
def edit_host(
    name: str = typer.Argument(..., metavar="NAME"),
    new_name: str | None = typer.Option(None, "--rename", help="New name for this host."),
    names: list[str] | None = typer.Option(
        None,
        "--names",
        help="Full list of names the block should declare (repeat the option).",
    ),
    hostname: str | None = typer.Option(None, "--hostname", "-H"),
    user: str | None = typer.Option(None, "--user", "-u"),
    port: str | None = typer.Option(None, "--port", "-p"),
    identity: str | None = typer.Option(None, "--identity", "-i"),
    proxy_jump: str | None = typer.Option(None, "--proxy-jump", "-J"),
    options: str | None = typer.Option(None, "--options", "-o"),
    tags: str | None = typer.Option(None, "--tags", "-t"),
    remote_command: str | None = typer.Option(None, "--remote-command"),
    request_tty: str | None = typer.Option(None, "--request-tty"),
) -> None:
    """Change a host; fields left out keep their current value."""

    store = _config_store()
    try:
        current = store.get_host(name)
        _, block_names = store.is_part_of_multi_host_declaration(name)

        record = current.renamed(new_name or name)
        overrides = {
            "hostname": hostname,
            "user": user,
            "port": port,
            "identity": identity,
            "proxy_jump": proxy_jump,
            "remote_command": remote_command,
            "request_tty": request_tty,
        }
        for attribute, value in overrides.items():
            if value is not None:
                setattr(record, attribute, value.strip())
        if options is not None:
            record.options = parse_options_from_command(options)
        if tags is not None:
            record.tags = parse_tags(tags)

        if names:
            store.update_multi_host_block(block_names, names, record)
        else:
            store.update_host(name, record)
    except SshmError as exc:
        raise fail(exc) from exc
    typer.echo(f"Configuration for host {name} updated successfully.")


@app.command("delete")
def delete_host(
    name: str = typer.Argument(..., metavar="NAME"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Remove a host block from the SSH config."""

    store = _config_store()
    try:
        is_multi, names = store.is_part_of_multi_host_declaration(name)
        if is_multi and not yes:
            others = ", ".join(other for other in names if other != name)
            typer.confirm(
                f"{name} shares its block with {others}; delete all of them?",
                abort=True,
            )
        store.delete_host(name)
    except SshmError as exc:
        raise fail(exc) from exc
    typer.echo(f"Host {name} removed from SSH configuration.")


@app.command("forward")
def forward(
    target: str = typer.Argument(..., metavar="HOST", help="Configured host or manual identifier."),
    forward_type: str = typer.Option("local", "--type", help="local, remote or dynamic."),
    local_port: str = typer.Option("", "--local-port", "-l"),
    remote_host: str = typer.Option("localhost", "--remote-host"),
    remote_port: str = typer.Option("", "--remote-port", "-r"),
    bind_address: str = typer.Option("", "--bind"),
    last: bool = typer.Option(False, "--last", help="Reuse the last forwarding for this host."),
) -> None:
    """Open a port-forwarding session and remember its settings."""

    store = _open_history()
    try:
        if last:
            previous = store.port_forwarding_for(target)
            if previous is None:
                typer.echo(f"No previous port forwarding recorded for {target}.", err=True)
                raise typer.Exit(1)
            forwarding = previous
        else:
            forwarding = PortForwardConfig(
                type=ForwardType.parse(forward_type),
                local_port=local_port,
                remote_host="" if forward_type == ForwardType.DYNAMIC else remote_host,
                remote_port=remote_port,
                bind_address=bind_address,
            )
        if not forwarding.local_port:
            typer.echo("A local port is required.", err=True)
            raise typer.Exit(2)

        if is_manual(target):
            command = build_manual_command(ManualConnection.from_identifier(target))
            command[1:1] = [*forwarding.to_ssh_args(), "-N"]
        else:
            config_store = _config_store()
            config_store.get_host(target)
            command = build_host_command(
                target,
                config_store.path,
                options=[*forwarding.to_ssh_args(), "-N"],
            )

        store.record_port_forwarding(
            target,
            forwarding.type,
            forwarding.local_port,
            forwarding.remote_host,
            forwarding.remote_port,
            forwarding.bind_address,
        )
    except SshmError as exc:
        raise fail(exc) from exc
    raise typer.Exit(run_ssh(command))


@app.command("promote")
def promote(
    identifier: str = typer.Argument(..., metavar="IDENTIFIER"),
    name: str = typer.Argument(..., metavar="NAME", help="Name of the new Host entry."),
) -> None:
    """Save a manual connection from history as a named host."""

    if not is_manual(identifier):
        typer.echo("Only manual connections can be added to the SSH config.", err=True)
        raise typer.Exit(2)

    try:
        conn = ManualConnection.from_identifier(identifier)
        record = HostRecord(
            name=name,
            hostname=conn.hostname,
            user="" if conn.user == DEFAULT_USER else conn.user,
            port="" if conn.port == DEFAULT_PORT else conn.port,
        )
        _config_store().add_host(record)
    except SshmError as exc:
        raise fail(exc) from exc
    typer.echo(f"Configuration for host {name} added successfully.")


def _connect(args: Sequence[str]) -> int:
    """Connect to a configured host or to an ad-hoc ssh target."""

    config_path: Path = load_app_config().ssh_config_path
    try:
        configured = {host.name for host in SSHConfigStore(config_path).parse_all()}
        store = HistoryStore.open()

        first = args[0]
        if first in configured:
            store.record_connection(first)
            return run_ssh(build_host_command(first, config_path, remote_command=args[1:]))

        conn = parse_ssh_args(args)
        if conn is None:
            typer.echo(f"'{' '.join(args)}' is neither a configured host nor an ssh target.", err=True)
            return 2
        store.record_manual_connection(conn)
    except SshmError as exc:
        typer.echo(f"Error: {exc}", err=True)
        return 1
    return run_ssh(["ssh", *args])


def _is_connect_request(args: Sequence[str]) -> bool:
    first = args[0]
    if first in _GLOBAL_OPTIONS:
        return False
    if first.startswith("-"):
        return is_manual_ssh_command(args)
    return first not in _known_subcommand_names()


def _known_subcommand_names() -> set[str]:
    """Collect all registered top-level command names."""

    names: set[str] = {info.name for info in app.registered_commands if info.name is not None}
    names.update(name for info in app.registered_groups if (name := info.name) is not None)
    return names


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the sshm CLI."""

    args = list(argv) if argv is not None else list(sys.argv[1:])
    if args and _is_connect_request(args):
        configure_logging()
        return _connect(args)

    try:
        result = app(args=args, standalone_mode=False)
    except typer.Exit as exc:  # exit path already handled by Typer
        return exc.exit_code
    except typer.Abort:
        typer.echo("Aborted.", err=True)
        return 1
    except Exception as exc:  # pragma: no cover - unexpected errors bubble to the shell
        typer.echo(str(exc), err=True)
        return 1
    # Typer hands back the code of an explicit ``typer.Exit`` in non-standalone mode.
    return result if isinstance(result, int) else 0


if __name__ == "__main__":  # pragma: no cover - manual execution only
    raise SystemExit(main())
