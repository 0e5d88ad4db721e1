"""Smoke and behaviour tests for the sshm command-line interface."""

from __future__ import annotations

import importlib
from pathlib import Path
from typing import Any

import pytest
import typer
from typer import Typer
from typer.main import TyperCommand
from typer.testing import CliRunner

from sshm import __version__, paths
from sshm.cli.app import app, main
from sshm.core.history import HistoryStore
from sshm.core.ssh_config import SSHConfigStore

cli_module = importlib.import_module("sshm.cli.app")

runner = CliRunner()

CONFIG = """\
Host web
    HostName 10.0.0.1
    User deploy

Host db1 db2
    HostName 10.0.0.2
"""


@pytest.fixture()
def ssh_config(isolated_home: Path) -> Path:
    """Write a small SSH config to the default location."""

    path = isolated_home / ".ssh" / "config"
    path.parent.mkdir(mode=0o700)
    path.write_text(CONFIG, encoding="utf-8")
    return path


@pytest.fixture()
def launched(monkeypatch: pytest.MonkeyPatch) -> list[list[str]]:
    """Capture ssh invocations instead of spawning processes."""

    commands: list[list[str]] = []

    def fake_run_ssh(command: list[str]) -> int:
        commands.append(list(command))
        return 0

    monkeypatch.setattr(cli_module, "run_ssh", fake_run_ssh)
    return commands


def _history() -> HistoryStore:
    store = HistoryStore(paths.history_path())
    store.load()
    return store


def test_app_is_typer_instance() -> None:
    """Ensure the CLI exposes a Typer application."""
    assert isinstance(app, Typer)


def test_main_without_arguments_opens_history_menu(
    monkeypatch: pytest.MonkeyPatch, isolated_home: Path
) -> None:
    """Running bare `sshm` should open the history menu."""

    calls: list[Path | None] = []

    def fake_menu(store: HistoryStore, config_file: Path | None = None) -> int:
        calls.append(config_file)
        return 0

    monkeypatch.setattr(cli_module, "launch_history_menu", fake_menu)

    assert main([]) == 0
    assert calls == [isolated_home / ".ssh" / "config"]


def test_main_handles_version_flag(capsys: Any) -> None:
    """Entry point should surface version output when flags are provided."""
    assert main(["--version"]) == 0
    assert capsys.readouterr().out.strip() == __version__


def test_short_version_flag_alias() -> None:
    """Short flag should behave identically to the long option."""
    result = runner.invoke(app, ["-V"])
    assert result.exit_code == 0
    assert result.stdout.strip() == __version__


@pytest.mark.parametrize("group", ["config", "history"])
def test_groups_show_help_when_missing_subcommand(group: str) -> None:
    """Invoking a command group without a subcommand should display help."""

    result = runner.invoke(app, [group])

    assert result.exit_code == 0
    assert f"{group} [OPTIONS] COMMAND" in result.stdout
    assert "Missing command" not in result.stdout


def test_main_runs_subcommands_without_connecting(
    monkeypatch: pytest.MonkeyPatch, capsys: Any
) -> None:
    """Known subcommands must not be mistaken for host names."""

    monkeypatch.setattr(cli_module, "_connect", lambda args: pytest.fail("connected"))

    assert main(["config", "show"]) == 0
    assert '"sort_by": "recent"' in capsys.readouterr().out


def test_main_reads_sys_argv_when_not_supplied(
    monkeypatch: pytest.MonkeyPatch, capsys: Any
) -> None:
    monkeypatch.setattr(cli_module.sys, "argv", ["sshm", "config", "show"])

    assert main() == 0
    assert "ssh_config_path" in capsys.readouterr().out


def test_main_connects_to_configured_host(ssh_config: Path, launched: list[list[str]]) -> None:
    """A configured name is launched through the managed config file."""

    assert main(["web", "uptime"]) == 0

    assert launched == [["ssh", "-F", str(ssh_config), "web", "uptime"]]
    assert _history().connect_count("web") == 1


def test_main_connects_manual_target(ssh_config: Path, launched: list[list[str]]) -> None:
    """Unknown targets are passed to ssh verbatim and recorded as manual."""

    assert main(["alice@example.com"]) == 0
    assert main(["-p", "2222", "bob@example.com"]) == 0

    assert launched == [
        ["ssh", "alice@example.com"],
        ["ssh", "-p", "2222", "bob@example.com"],
    ]
    history = _history()
    assert history.connect_count("manual:alice@example.com:22") == 1
    assert history.connect_count("manual:bob@example.com:2222") == 1


def test_main_rejects_unusable_targets(
    ssh_config: Path, launched: list[list[str]], capsys: Any
) -> None:
    """Invocations naming another config file are not manual connections."""

    assert main(["-F", "other", "ops@box"]) == 2

    assert launched == []
    assert "neither a configured host" in capsys.readouterr().err


def test_main_returns_exit_code_from_typer_exit(monkeypatch: pytest.MonkeyPatch) -> None:
    """When Typer raises Exit the captured code should be returned."""

    def fake_app(*args: Any, **kwargs: Any) -> Any:
        raise typer.Exit(code=5)

    monkeypatch.setattr(cli_module, "app", fake_app)
    assert cli_module.main([]) == 5


def test_main_propagates_command_exit_codes() -> None:
    assert main(["history", "remove", "nowhere"]) == 1


def test_cli_skips_when_subcommand_invoked() -> None:
    """The callback should exit early when a subcommand is requested."""

    ctx = typer.Context(TyperCommand(app))
    ctx.invoked_subcommand = "dummy"

    assert cli_module.cli(ctx, version=False, verbose=False) is None


def test_module_run_invokes_cli_main(monkeypatch: pytest.MonkeyPatch) -> None:
    """The module-level run helper should delegate to the CLI entry point."""

    calls: dict[str, Any] = {}

    def fake_main(argv: Any | None = None) -> int:
        calls["argv"] = argv
        return 7

    monkeypatch.setattr(cli_module, "main", fake_main)
    from sshm.__main__ import run

    assert run() == 7
    assert calls["argv"] is None


def test_list_orders_hosts_by_recent_use(ssh_config: Path) -> None:
    HistoryStore.open().record_connection("db2")

    result = runner.invoke(app, ["list"])

    assert result.exit_code == 0
    names = [line.split()[0] for line in result.stdout.splitlines()]
    assert names == ["db2", "db1", "web"]
    assert "deploy@10.0.0.1" in result.stdout


def test_list_rejects_unknown_sort_mode(ssh_config: Path) -> None:
    result = runner.invoke(app, ["list", "--sort", "alphabetical"])

    assert result.exit_code == 2


def test_show_reports_shared_block(ssh_config: Path) -> None:
    result = runner.invoke(app, ["show", "db1"])

    assert result.exit_code == 0
    assert "HostName: 10.0.0.2" in result.stdout
    assert "Shares its block with: db2" in result.stdout


def test_show_unknown_host_fails(ssh_config: Path) -> None:
    result = runner.invoke(app, ["show", "nope"])

    assert result.exit_code == 1
    assert "nope" in result.output


def test_add_edit_and_delete_host(ssh_config: Path) -> None:
    added = runner.invoke(
        app,
        ["add", "cache", "-H", "10.0.0.9", "-u", "ops", "-t", "prod, redis", "--options", "Compression=yes"],
    )
    assert added.exit_code == 0

    store = SSHConfigStore(ssh_config)
    host = store.get_host("cache")
    assert (host.hostname, host.user, host.tags, host.options) == (
        "10.0.0.9",
        "ops",
        ["prod", "redis"],
        ["Compression yes"],
    )

    edited = runner.invoke(app, ["edit", "cache", "--port", "6380", "--rename", "redis"])
    assert edited.exit_code == 0
    renamed = store.get_host("redis")
    assert renamed.port == "6380"
    assert renamed.user == "ops"

    deleted = runner.invoke(app, ["delete", "redis"])
    assert deleted.exit_code == 0
    assert [h.name for h in store.parse_all()] == ["web", "db1", "db2"]


def test_add_rejects_invalid_port(ssh_config: Path) -> None:
    result = runner.invoke(app, ["add", "bad", "-H", "h", "-p", "ssh"])

    assert result.exit_code == 2
    assert "port" in result.output


def test_edit_with_names_rewrites_block(ssh_config: Path) -> None:
    result = runner.invoke(app, ["edit", "db1", "--names", "db1", "--names", "db3", "-u", "pg"])

    assert result.exit_code == 0
    store = SSHConfigStore(ssh_config)
    assert store.is_part_of_multi_host_declaration("db3") == (True, ["db1", "db3"])
    assert store.get_host("db3").user == "pg"


def test_delete_multi_host_asks_for_confirmation(ssh_config: Path) -> None:
    declined = runner.invoke(app, ["delete", "db1"], input="n\n")
    assert declined.exit_code == 1
    assert SSHConfigStore(ssh_config).get_host("db2").hostname == "10.0.0.2"

    confirmed = runner.invoke(app, ["delete", "db1"], input="y\n")
    assert confirmed.exit_code == 0
    assert [h.name for h in SSHConfigStore(ssh_config).parse_all()] == ["web"]


def test_forward_records_and_reuses_configuration(
    ssh_config: Path, launched: list[list[str]]
) -> None:
    first = runner.invoke(app, ["forward", "web", "-l", "8080", "-r", "80"])
    again = runner.invoke(app, ["forward", "web", "--last"])

    assert first.exit_code == 0
    assert again.exit_code == 0
    expected = ["ssh", "-F", str(ssh_config), "-L", "8080:localhost:80", "-N", "web"]
    assert launched == [expected, expected]
    history = _history()
    assert history.connect_count("web") == 2
    forwarding = history.port_forwarding_for("web")
    assert forwarding is not None
    assert forwarding.local_port == "8080"


def test_forward_without_previous_configuration(ssh_config: Path) -> None:
    result = runner.invoke(app, ["forward", "web", "--last"])

    assert result.exit_code == 1
    assert "No previous port forwarding" in result.output


def test_promote_manual_connection(ssh_config: Path) -> None:
    result = runner.invoke(app, ["promote", "manual:ops@10.0.0.5:2222", "ops-box"])

    assert result.exit_code == 0
    host = SSHConfigStore(ssh_config).get_host("ops-box")
    assert (host.hostname, host.user, host.port) == ("10.0.0.5", "ops", "2222")


def test_promote_drops_default_values(ssh_config: Path) -> None:
    result = runner.invoke(app, ["promote", "manual:default@example.com:22", "plain"])

    assert result.exit_code == 0
    host = SSHConfigStore(ssh_config).get_host("plain")
    assert (host.user, host.port) == ("", "")


def test_promote_rejects_configured_names(ssh_config: Path) -> None:
    result = runner.invoke(app, ["promote", "web", "web2"])

    assert result.exit_code == 2


def test_history_commands(ssh_config: Path) -> None:
    store = HistoryStore.open()
    store.record_connection("web")
    store.record_connection("retired")
    store.record_connection("manual:default@example.com:22")

    listed = runner.invoke(app, ["history", "list"])
    assert listed.exit_code == 0
    assert "★ default@example.com:22" in listed.stdout

    pruned = runner.invoke(app, ["history", "prune"])
    assert pruned.exit_code == 0
    assert "Removed retired" in pruned.stdout

    removed = runner.invoke(app, ["history", "remove", "web"])
    assert removed.exit_code == 0
    assert [info.identifier for info in _history().all_connections()] == [
        "manual:default@example.com:22"
    ]


def test_config_commands_persist_settings(isolated_home: Path) -> None:
    assert runner.invoke(app, ["config", "set-sort", "frequent"]).exit_code == 0
    assert runner.invoke(app, ["config", "set-ssh-config", "~/team_config"]).exit_code == 0
    assert runner.invoke(app, ["config", "set-sort", "random"]).exit_code == 2

    shown = runner.invoke(app, ["config", "show"])

    assert '"sort_by": "frequent"' in shown.stdout
    assert str(isolated_home / "team_config") in shown.stdout


def test_show_prints_options_and_block_comments(ssh_config: Path) -> None:
    ssh_config.write_text(
        "Host lab\n    # rack 4\n    HostName 10.1.0.1\n    Compression yes\n    ServerAliveInterval 30\n",
        encoding="utf-8",
    )

    result = runner.invoke(app, ["show", "lab"])

    assert result.exit_code == 0
    assert "Options: -o Compression=yes -o ServerAliveInterval=30" in result.stdout
    assert "# rack 4" in result.stdout
