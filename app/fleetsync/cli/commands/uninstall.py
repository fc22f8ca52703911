"""Uninstall command implementation."""

from typing import Annotated

import typer

from fleetsync.cli.display import print_report
from fleetsync.cli.types import ConfigPath, load_reconciler


def uninstall(
    ctx: typer.Context,
    titles: Annotated[list[str], typer.Argument(help="Titles to uninstall.")],
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Uninstall even if the title is marked not removable.",
        ),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output the report as JSON.",
        ),
    ] = False,
    config_path: ConfigPath = None,
) -> None:
    """Uninstall titles and delete their receipts.

    Examples:
        fleetsync uninstall firefox
        fleetsync uninstall firefox --force
    """
    reconciler = load_reconciler(ctx, config_path)
    print_report(reconciler.uninstall(titles, force=force), json_output=json_output)
