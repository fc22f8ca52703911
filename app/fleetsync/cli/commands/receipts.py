"""Receipts command for listing installed titles."""

from typing import Annotated

import typer

from fleetsync.cli.display import create_receipts_table
from fleetsync.core.errors import StoreCorruptError
from fleetsync.core.store import ReceiptStore
from fleetsync.utils.formatting import console, print_error, print_info, print_json

app = typer.Typer(
    help="List titles installed by fleetsync.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def receipts(
    ctx: typer.Context,
    frozen: Annotated[
        bool,
        typer.Option(
            "--frozen",
            help="Only show frozen titles.",
        ),
    ] = False,
    pilots: Annotated[
        bool,
        typer.Option(
            "--pilots",
            help="Only show titles installed from a pilot version.",
        ),
    ] = False,
    manual: Annotated[
        bool,
        typer.Option(
            "--manual",
            help="Only show titles installed on request.",
        ),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON.",
        ),
    ] = False,
) -> None:
    """Show installed titles from the receipt store.

    Examples:
        fleetsync receipts
        fleetsync receipts --frozen
        fleetsync receipts --pilots --json
    """
    if ctx.invoked_subcommand is not None:
        return

    try:
        items = ReceiptStore().all()
    except StoreCorruptError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if frozen:
        items = [r for r in items if r.frozen]
    if pilots:
        items = [r for r in items if r.is_pilot]
    if manual:
        items = [r for r in items if r.manual]

    if json_output:
        print_json([r.model_dump(mode="json") for r in items])
        return

    if not items:
        print_info("No matching receipts.")
        return
    console.print(create_receipts_table(items))
