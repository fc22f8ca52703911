"""Themed Rich consoles and one-line message printers.

Tables, reports and JSON go to stdout; warnings and errors go to stderr so
``--json`` output stays parseable.
"""

import json
import sys
from typing import Any

from rich.console import Console

from fleetsync.core.theme import get_theme


def _detect_color_system() -> str | None:
    """Detect the best color system for the current terminal.

    Returns "truecolor" for interactive terminals to enable full hex color support,
    None otherwise to let Rich auto-detect.
    """
    if sys.stdout.isatty():
        return "truecolor"
    return None


# Shared console instances (theme loaded once at import)
console = Console(theme=get_theme(), color_system=_detect_color_system())
err_console = Console(theme=get_theme(), stderr=True, color_system=_detect_color_system())


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[info]{message}[/]")


def print_warning(message: str) -> None:
    """Print a warning message."""
    err_console.print(f"[warning]Warning:[/] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    err_console.print(f"[error]Error:[/] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[success]{message}[/]")


def print_json(data: Any) -> None:
    """Print data as indented JSON on stdout, without markup or wrapping."""
    console.print(json.dumps(data, indent=2), soft_wrap=True, markup=False, highlight=False)
