"""History command for viewing past passes.

This module provides the `fleetsync history` command for auditing what
earlier sync, install and uninstall runs changed on this machine.
"""

from datetime import datetime
from typing import Annotated

import typer
from rich.table import Table

from fleetsync.core.state import StateManager
from fleetsync.models.history import HistoryEntry
from fleetsync.utils.formatting import console, print_info, print_json

app = typer.Typer(
    name="history",
    help="View history of past passes.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def history(
    ctx: typer.Context,
    limit: Annotated[
        int,
        typer.Option(
            "--limit",
            "-n",
            min=1,
            help="Maximum number of entries to show.",
        ),
    ] = 20,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON.",
        ),
    ] = False,
) -> None:
    """Show history of past passes.

    Each entry lists the titles a pass installed, updated, rolled back,
    queued, uninstalled or expired, plus how many packages failed.

    Examples:
        fleetsync history              # Show last 20 entries
        fleetsync history -n 50        # Show last 50 entries
        fleetsync history --json       # JSON output for scripting
    """
    if ctx.invoked_subcommand is not None:
        return

    entries = StateManager().get_history(limit=limit)

    if not entries:
        print_info("No history entries found.")
        return

    if json_output:
        _print_json(entries)
    else:
        _print_table(entries)


def _print_table(entries: list[HistoryEntry]) -> None:
    """Print history as a Rich table, one row per entry."""
    table = Table(
        title="Sync History",
        header_style="bold_header",
        border_style="border",
    )
    table.add_column("ID", style="dim")
    table.add_column("Timestamp")
    table.add_column("Command")
    table.add_column("Changes")
    table.add_column("Failed", justify="right")

    for entry in entries:
        changes = []
        for action, items in entry.grouped().items():
            names = ", ".join(item.title for item in items[:3])
            if len(items) > 3:
                names += f" (+{len(items) - 3} more)"
            changes.append(f"{action.value}: {names}")

        table.add_row(
            entry.id[:8],
            _format_timestamp(entry.timestamp),
            entry.command,
            "\n".join(changes),
            f"[error]{entry.failures}[/error]" if entry.failures else "0",
        )

    console.print(table)


def _format_timestamp(iso_timestamp: str) -> str:
    """Format an ISO 8601 timestamp as local YYYY-MM-DD HH:MM."""
    dt = datetime.fromisoformat(iso_timestamp.replace("Z", "+00:00"))
    return dt.astimezone().strftime("%Y-%m-%d %H:%M")


def _print_json(entries: list[HistoryEntry]) -> None:
    print_json([entry.to_dict() for entry in entries])
