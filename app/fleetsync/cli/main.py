"""Main CLI application entry point.

Defines the Typer application and global options.
"""

from pathlib import Path
from typing import Annotated

import typer

from fleetsync import __version__
from fleetsync.cli.commands import (
    config,
    freeze,
    history,
    install,
    puppies,
    receipts,
    sync,
    uninstall,
    usage,
)
from fleetsync.utils.log import setup_logging

app = typer.Typer(
    name="fleetsync",
    help="Keep this machine in line with the fleet software catalog.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"fleetsync version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress non-essential output.",
        ),
    ] = False,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            help="Debug log location (default: sync.log in the state directory).",
            dir_okay=False,
        ),
    ] = None,
) -> None:
    """fleetsync - software deployment client for managed machines.

    Installs, updates, rolls back and expires titles so this machine
    matches what the catalog server targets at it.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)


app.add_typer(sync.app, name="sync")
app.command(name="install")(install.install)
app.command(name="uninstall")(uninstall.uninstall)
app.command(name="freeze")(freeze.freeze)
app.command(name="thaw")(freeze.thaw)
app.add_typer(puppies.app, name="puppies")
app.add_typer(receipts.app, name="receipts")
app.add_typer(usage.app, name="usage")
app.add_typer(history.app, name="history")
app.add_typer(config.app, name="config")


if __name__ == "__main__":
    app()
