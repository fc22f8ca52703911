"""Freeze and thaw commands.

A frozen title keeps its installed version: sync neither updates nor
rolls it back until it is thawed or reinstalled manually.
"""

from typing import Annotated

import typer

from fleetsync.cli.display import print_report
from fleetsync.cli.types import ConfigPath, load_reconciler


def freeze(
    ctx: typer.Context,
    titles: Annotated[list[str], typer.Argument(help="Titles to freeze.")],
    config_path: ConfigPath = None,
) -> None:
    """Freeze installed titles at their current version."""
    reconciler = load_reconciler(ctx, config_path)
    print_report(reconciler.freeze(titles))


def thaw(
    ctx: typer.Context,
    titles: Annotated[list[str], typer.Argument(help="Titles to thaw.")],
    config_path: ConfigPath = None,
) -> None:
    """Let frozen titles follow the catalog again."""
    reconciler = load_reconciler(ctx, config_path)
    print_report(reconciler.thaw(titles))
