"""CLI package for fleetsync.

This package contains the Typer application and all subcommands.
"""

from fleetsync.cli.main import app

__all__ = ["app"]
