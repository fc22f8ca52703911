"""Usage command for recording foreground observations.

Meant to run often (e.g. from a launchd interval job) so expiration can
tell titles in use from abandoned ones.
"""

import typer

from fleetsync.cli.types import ConfigPath, is_quiet, load_reconciler
from fleetsync.core.errors import StoreCorruptError
from fleetsync.utils.formatting import print_error, print_info

app = typer.Typer(
    help="Record application usage for expiration.",
    invoke_without_command=True,
    no_args_is_help=True,
)


@app.command()
def record(ctx: typer.Context, config_path: ConfigPath = None) -> None:
    """Observe the frontmost application once."""
    reconciler = load_reconciler(ctx, config_path)
    try:
        observed = reconciler.record_usage()
    except StoreCorruptError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if is_quiet(ctx):
        return
    if observed is None:
        print_info("No foreground application observed.")
    else:
        print_info(f"Recorded {observed.bundle_id or observed.path}")
