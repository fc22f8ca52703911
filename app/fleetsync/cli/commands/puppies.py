"""Puppy queue commands.

Reboot-required packages are not installed during a regular pass; they
wait in the puppy queue until ``fleetsync sync --puppies`` walks them.
"""

from typing import Annotated

import typer

from fleetsync.cli.display import create_puppies_table, print_report
from fleetsync.cli.types import ConfigPath, load_reconciler
from fleetsync.core.errors import StoreCorruptError
from fleetsync.core.store import PuppyQueue
from fleetsync.utils.formatting import console, print_error, print_info, print_json

app = typer.Typer(
    help="Inspect and manage queued reboot-required installs.",
    invoke_without_command=True,
    no_args_is_help=True,
)


@app.command(name="list")
def list_puppies(
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON.",
        ),
    ] = False,
) -> None:
    """Show queued installs, oldest first."""
    try:
        entries = PuppyQueue().all()
    except StoreCorruptError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if json_output:
        print_json([entry.model_dump(mode="json") for entry in entries])
        return

    if not entries:
        print_info("The puppy queue is empty.")
        return
    console.print(create_puppies_table(entries))


@app.command()
def dequeue(
    ctx: typer.Context,
    titles: Annotated[list[str], typer.Argument(help="Titles to remove, or 'all'.")],
    config_path: ConfigPath = None,
) -> None:
    """Remove titles from the puppy queue without installing them.

    Examples:
        fleetsync puppies dequeue firefox
        fleetsync puppies dequeue all
    """
    reconciler = load_reconciler(ctx, config_path)
    try:
        report = reconciler.dequeue_puppies(titles)
    except StoreCorruptError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    print_report(report)
