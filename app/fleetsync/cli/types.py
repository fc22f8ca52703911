"""Shared types and helpers for CLI commands.

This module provides the common ``--config`` option and the factory that
wires a Reconciler from the client configuration, so every command
builds its collaborators the same way.
"""

from pathlib import Path
from typing import Annotated

import typer

from fleetsync.core.catalog import HttpCatalogSource
from fleetsync.core.config import ClientConfig, require_config
from fleetsync.core.installer import Installer
from fleetsync.core.reconciler import Reconciler
from fleetsync.core.state import StateManager
from fleetsync.core.store import PuppyQueue, ReceiptStore, UsageLedger
from fleetsync.operators.macos import MacPkgOperator
from fleetsync.scanners.lsappinfo import LsAppInfoScanner

ConfigPath = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to config file (default: ~/.config/fleetsync/config.toml).",
    ),
]


def is_quiet(ctx: typer.Context) -> bool:
    """Check the global --quiet flag."""
    return bool(ctx.obj and ctx.obj.get("quiet"))


def is_verbose(ctx: typer.Context) -> bool:
    """Check the global --verbose flag."""
    return bool(ctx.obj and ctx.obj.get("verbose"))


def build_reconciler(config: ClientConfig, show_progress: bool = True) -> Reconciler:
    """Wire a Reconciler for this machine.

    Args:
        config: Loaded client configuration.
        show_progress: Render download progress on stderr.

    Returns:
        Reconciler backed by the HTTP catalog and the default stores.
    """
    source = HttpCatalogSource(config)
    operator = MacPkgOperator(config.install_command)
    receipts = ReceiptStore()
    puppies = PuppyQueue()
    installer = Installer(
        config, source, operator, receipts, puppies, show_progress=show_progress
    )
    return Reconciler(
        config,
        source,
        operator,
        receipts=receipts,
        puppies=puppies,
        usage=UsageLedger(),
        scanner=LsAppInfoScanner(),
        history=StateManager(),
        installer=installer,
    )


def load_reconciler(ctx: typer.Context, config_path: Path | None) -> Reconciler:
    """Load the config (exiting on failure) and build a Reconciler."""
    config = require_config(config_path)
    return build_reconciler(config, show_progress=not is_quiet(ctx))
