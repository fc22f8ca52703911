"""Client configuration commands.

Provides commands to create the config file for this machine and to show
the effective configuration.
"""

from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.table import Table

from fleetsync.cli.types import ConfigPath
from fleetsync.core.config import (
    ClientConfig,
    ConfigError,
    require_config,
    save_config,
)
from fleetsync.core.paths import ensure_config_dir, get_config_path
from fleetsync.utils.formatting import (
    console,
    print_error,
    print_info,
    print_json,
    print_success,
    print_warning,
)

app = typer.Typer(
    help="Create and inspect the client configuration.",
    invoke_without_command=True,
    no_args_is_help=True,
)


@app.command()
def init(
    server: Annotated[
        str,
        typer.Option(
            "--server",
            "-s",
            help="Base URL of the catalog API.",
        ),
    ],
    dist_point: Annotated[
        str,
        typer.Option(
            "--dist-point",
            "-d",
            help="Base URL of the primary distribution point.",
        ),
    ],
    machine_id: Annotated[
        str | None,
        typer.Option(
            "--machine-id",
            help="Identifier of this machine on the server (default: host name).",
        ),
    ] = None,
    cloud: Annotated[
        str | None,
        typer.Option(
            "--cloud",
            help="Base URL of the cloud distribution point fallback.",
        ),
    ] = None,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite an existing config file.",
        ),
    ] = False,
    config_path: ConfigPath = None,
) -> None:
    """Write a config file for this machine.

    Examples:
        fleetsync config init --server https://fleet.example.com/api \\
            --dist-point https://dp.example.com/packages
        fleetsync config init -s URL -d URL --cloud https://cdn.example.com --force
    """
    path: Path = config_path or get_config_path()
    if path.exists() and not force:
        print_error(f"Config already exists: {path}")
        print_info("Use --force to overwrite.")
        raise typer.Exit(code=1)

    data: dict[str, object] = {"server_url": server, "distribution_point_url": dist_point}
    if machine_id:
        data["machine_id"] = machine_id
    if cloud:
        data["cloud_distribution_url"] = cloud
        data["try_cloud_distribution_point"] = True

    try:
        config = ClientConfig.model_validate(data)
    except ValidationError as e:
        print_error(f"Invalid settings: {e}")
        raise typer.Exit(code=1) from e

    if path.exists():
        print_warning(f"Overwriting existing config: {path}")

    try:
        if config_path is None:
            ensure_config_dir()
        saved = save_config(config, path)
    except (ConfigError, RuntimeError) as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    print_success(f"Config written: {saved}")


@app.command()
def show(
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON.",
        ),
    ] = False,
    config_path: ConfigPath = None,
) -> None:
    """Show the effective configuration, defaults included."""
    config = require_config(config_path)

    if json_output:
        print_json(config.model_dump())
        return

    table = Table(
        title="Configuration",
        show_header=True,
        header_style="bold_header",
        border_style="border",
    )
    table.add_column("Setting", style="muted")
    table.add_column("Value")
    for key, value in config.model_dump().items():
        if isinstance(value, list):
            value = " ".join(value) if value else "-"
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)
