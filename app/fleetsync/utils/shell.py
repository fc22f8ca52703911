"""Subprocess helpers for installers, scripts and system queries.

Commands are always run with an argument list, never through a shell.
"""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Captured outcome of one command.

    Attributes:
        stdout: Decoded standard output.
        stderr: Decoded standard error.
        returncode: Process exit status.
    """

    stdout: str
    stderr: str
    returncode: int

    @property
    def success(self) -> bool:
        """True for exit status 0."""
        return self.returncode == 0

    @property
    def error_text(self) -> str:
        """Best available explanation of a failure."""
        return self.stderr.strip() or self.stdout.strip() or f"exit code {self.returncode}"


def run_command(
    args: list[str],
    *,
    check: bool = False,
    timeout: float | None = 60.0,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """Run ``args`` and capture its output as text.

    Args:
        args: Executable followed by its arguments.
        check: Raise CalledProcessError on a non-zero exit.
        timeout: Seconds before the process is killed; None waits forever.
        cwd: Working directory, defaults to the current one.
        env: Variables added on top of the inherited environment.

    Raises:
        subprocess.CalledProcessError: If ``check`` and the command fails.
        subprocess.TimeoutExpired: If the command outlives ``timeout``.
        FileNotFoundError: If the executable does not exist.
    """
    logger.debug("Running %s", args[0])
    completed = subprocess.run(
        args,
        capture_output=True,
        text=True,
        check=check,
        timeout=timeout,
        cwd=cwd,
        env={**os.environ, **env} if env else None,
    )
    return CommandResult(completed.stdout, completed.stderr, completed.returncode)


def command_exists(name: str) -> bool:
    """Check if ``name`` resolves to an executable (absolute or on PATH)."""
    return shutil.which(name) is not None


def process_running(name: str) -> bool:
    """Check whether a process with exactly this name is running.

    Uses ``pgrep -x``; a missing pgrep is treated as "not running".
    """
    try:
        result = run_command(["pgrep", "-x", name], timeout=10.0)
    except (FileNotFoundError, OSError, subprocess.TimeoutExpired):
        return False
    return result.success
