"""Sync command implementation.

Runs one reconciliation pass: refresh receipts, clean and optionally
install the puppy queue, update installed titles, auto-install targeted
titles, expire unused titles and drop receipts of vanished packages.
"""

import logging
from typing import Annotated

import typer

from fleetsync.cli.display import print_report
from fleetsync.cli.types import ConfigPath, is_verbose, load_reconciler
from fleetsync.core.errors import FatalSyncError
from fleetsync.core.session import SyncOptions
from fleetsync.utils.formatting import print_error

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Converge this machine to the catalog.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def sync(
    ctx: typer.Context,
    puppies: Annotated[
        bool,
        typer.Option(
            "--puppies",
            "-p",
            help="Install queued reboot-required packages now.",
        ),
    ] = False,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Install even if eligibility checks or running processes object.",
        ),
    ] = False,
    custom_expiration: Annotated[
        int | None,
        typer.Option(
            "--custom-expiration",
            min=0,
            help="Expiration days for auto-installed titles (overrides the catalog).",
        ),
    ] = None,
    puppy_notification: Annotated[
        bool,
        typer.Option(
            "--puppy-notification/--no-puppy-notification",
            help="Run the puppy notification command when installs were queued.",
        ),
    ] = True,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output the report as JSON.",
        ),
    ] = False,
    config_path: ConfigPath = None,
) -> None:
    """Run one sync pass against the catalog.

    Per-package failures are reported and the pass continues; the command
    only fails when the receipt store, the catalog or every distribution
    point is unusable.

    Examples:
        fleetsync sync                       # Regular pass
        fleetsync sync --puppies             # Also install queued reboot packages
        fleetsync sync --custom-expiration 30
        fleetsync sync --json                # Machine-readable report
    """
    if ctx.invoked_subcommand is not None:
        return

    reconciler = load_reconciler(ctx, config_path)
    options = SyncOptions(
        verbose=is_verbose(ctx),
        force=force,
        puppies=puppies,
        custom_expiration=custom_expiration,
        puppy_notification=puppy_notification,
    )

    try:
        report = reconciler.sync(options)
    except FatalSyncError as e:
        logger.error("Sync aborted: %s", e)
        print_error(f"Sync aborted: {e}")
        raise typer.Exit(code=1) from e

    print_report(report, json_output=json_output)
