"""Console output and subprocess helpers shared by the CLI and the core."""

from fleetsync.utils.formatting import (
    console,
    err_console,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from fleetsync.utils.shell import CommandResult, command_exists, process_running, run_command

__all__ = [
    "CommandResult",
    "command_exists",
    "console",
    "err_console",
    "print_error",
    "print_info",
    "print_success",
    "print_warning",
    "process_running",
    "run_command",
]
