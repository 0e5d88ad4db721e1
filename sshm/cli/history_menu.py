"""Interactive terminal menu for selecting SSH history entries."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path

import typer

from sshm.cli._shared import format_time_since
from sshm.cli.ssh_launcher import command_for_identifier, run_ssh
from sshm.core.history import ConnectionInfo, HistoryStore
from sshm.core.manual import decode_manual_id

PromptFn = Callable[[str], str]
OutputFn = Callable[[str], None]
LauncherFn = Callable[[ConnectionInfo], int]


def _default_prompt(message: str) -> str:
    """Prompt the user for input using Typer's utilities."""

    return typer.prompt(message, default="")


def _default_output(message: str) -> None:
    """Emit a single line of output to the terminal."""

    typer.echo(message)


def describe_identifier(identifier: str) -> str:
    """Render a history key for display; manual connections get a star."""

    decoded = decode_manual_id(identifier)
    if decoded is None:
        return identifier
    user, hostname, port = decoded
    return f"★ {user}@{hostname}:{port}"


class HistoryMenu:
    """Simple text-based menu that surfaces recent SSH targets."""

    def __init__(
        self,
        store: HistoryStore,
        *,
        config_file: Path | None = None,
        prompt: PromptFn | None = None,
        output: OutputFn | None = None,
        launcher: LauncherFn | None = None,
        now: datetime | None = None,
    ) -> None:
        self._store = store
        self._config_file = config_file
        self._prompt = prompt if prompt is not None else _default_prompt
        self._output = output if output is not None else _default_output
        self._launcher = launcher if launcher is not None else self._launch
        self._now = now

    def run(self) -> int:
        """Display the history menu and act on the user's selection."""

        entries = self._store.all_connections()
        if not entries:
            self._output("No SSH history yet. Connect to a host to populate the list.")
            return 0

        self._render(entries)

        while True:
            try:
                selection = self._prompt("Select host # (or 'q' to quit)").strip()
            except (EOFError, KeyboardInterrupt):
                self._output("")
                return 1

            if not selection or selection.lower() in {"q", "quit"}:
                return 0

            if selection.isdigit():
                index = int(selection) - 1
                if 0 <= index < len(entries):
                    return self._launcher(entries[index])

            self._output("Invalid selection. Enter a valid number or 'q' to exit.")

    def _launch(self, info: ConnectionInfo) -> int:
        command = command_for_identifier(info.identifier, self._config_file)
        self._store.record_connection(info.identifier)
        return run_ssh(command)

    def _render(self, entries: Iterable[ConnectionInfo]) -> None:
        """Print the menu header and available history entries."""

        self._output("Recent SSH connections:")
        for idx, entry in enumerate(entries, start=1):
            summary = self._format_entry(entry)
            self._output(f"  {idx:>2}. {summary}")

    def _format_entry(self, entry: ConnectionInfo) -> str:
        """Generate a readable summary line for a history entry."""

        target = describe_identifier(entry.identifier)
        since = format_time_since(entry.last_connect, self._now)
        times = "time" if entry.connect_count == 1 else "times"
        return f"{target}  ({entry.connect_count} {times}, {since})"


def launch_history_menu(store: HistoryStore, config_file: Path | None = None) -> int:
    """Convenience wrapper to instantiate and run the history menu."""

    return HistoryMenu(store, config_file=config_file).run()
