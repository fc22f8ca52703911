"""CLI commands for fleetsync.

This package contains all subcommand implementations.
"""

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

__all__ = [
    "config",
    "freeze",
    "history",
    "install",
    "puppies",
    "receipts",
    "sync",
    "uninstall",
    "usage",
]
