"""Logging configuration for the CLI.

Console output goes through Rich on stderr so it never mixes with tables
or JSON on stdout. A rotating file under the state directory keeps the
full debug trail of every pass, which unattended runs rely on.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.logging import RichHandler

from fleetsync.core.paths import ensure_state_dir, get_log_path
from fleetsync.utils.formatting import err_console

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
MAX_LOG_SIZE = 5 * 1024 * 1024
BACKUP_COUNT = 3

# Handlers installed by setup_logging, so a second call replaces them.
_handlers: list[logging.Handler] = []


def setup_logging(
    verbose: bool = False, quiet: bool = False, log_file: Path | None = None
) -> None:
    """Configure the ``fleetsync`` logger.

    Args:
        verbose: Show INFO messages on the console.
        quiet: Show only errors on the console.
        log_file: Override for the debug log file. If the state directory
            cannot be created, file logging is skipped.
    """
    root = logging.getLogger("fleetsync")
    root.setLevel(logging.DEBUG)
    for handler in _handlers:
        root.removeHandler(handler)
        handler.close()
    _handlers.clear()

    console_level = logging.INFO if verbose else logging.WARNING
    if quiet:
        console_level = logging.ERROR
    console_handler = RichHandler(
        console=err_console, show_path=False, show_time=False, markup=False
    )
    console_handler.setLevel(console_level)
    _handlers.append(console_handler)

    try:
        if log_file is None:
            ensure_state_dir()
            log_file = get_log_path()
        file_handler = RotatingFileHandler(
            log_file, maxBytes=MAX_LOG_SIZE, backupCount=BACKUP_COUNT, encoding="utf-8"
        )
    except (OSError, RuntimeError) as e:
        err_console.print(f"[warning]Warning:[/] Logging to file disabled: {e}")
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        _handlers.append(file_handler)

    for handler in _handlers:
        root.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
