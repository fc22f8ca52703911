"""Install command implementation.

Installs titles on request, outside the regular sync pass.
"""

import logging
from typing import Annotated

import typer

from fleetsync.cli.display import print_report
from fleetsync.cli.types import ConfigPath, load_reconciler
from fleetsync.core.errors import FatalSyncError
from fleetsync.utils.formatting import print_error

logger = logging.getLogger(__name__)


def install(
    ctx: typer.Context,
    titles: Annotated[list[str], typer.Argument(help="Titles to install.")],
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Install even if eligibility checks or running processes object.",
        ),
    ] = False,
    freeze: Annotated[
        bool,
        typer.Option(
            "--freeze",
            help="Freeze the title after installing it.",
        ),
    ] = False,
    custom_expiration: Annotated[
        int | None,
        typer.Option(
            "--custom-expiration",
            min=0,
            help="Expiration days for this install (overrides the catalog).",
        ),
    ] = None,
    puppies: Annotated[
        bool,
        typer.Option(
            "--puppies",
            "-p",
            help="Install reboot-required packages now instead of queueing them.",
        ),
    ] = False,
    package_id: Annotated[
        int | None,
        typer.Option(
            "--package-id",
            help="Install this package id instead of the current release (one title only).",
        ),
    ] = None,
    admin: Annotated[
        str | None,
        typer.Option(
            "--admin",
            help="Admin name recorded on the receipt.",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output the report as JSON.",
        ),
    ] = False,
    config_path: ConfigPath = None,
) -> None:
    """Install titles now.

    Installs the released version of each title, or the pilot version if
    this machine is in one of its pilot groups. A manual install clears the
    frozen flag unless --freeze is given.

    Examples:
        fleetsync install firefox
        fleetsync install firefox --freeze
        fleetsync install firefox --package-id 42
    """
    if package_id is not None and len(titles) != 1:
        print_error("--package-id can only be used with a single title.")
        raise typer.Exit(code=1)

    reconciler = load_reconciler(ctx, config_path)
    try:
        report = reconciler.install(
            titles,
            admin=admin,
            force=force,
            freeze=freeze,
            custom_expiration=custom_expiration,
            walk=puppies,
            package_id=package_id,
        )
    except FatalSyncError as e:
        logger.error("Install aborted: %s", e)
        print_error(f"Install aborted: {e}")
        raise typer.Exit(code=1) from e

    print_report(report, json_output=json_output)
