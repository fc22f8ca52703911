"""Abstract base class for installer operators.

An operator knows how to put a downloaded package file in place, how to
remove what a package installed, and how to run the install/remove scripts
attached to a package on this platform.
"""

import logging
import os
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from fleetsync.models.catalog import CatalogScript
from fleetsync.utils.shell import CommandResult, run_command

logger = logging.getLogger(__name__)


class Operator(ABC):
    """Abstract base class for all installer operators.

    Operators raise nothing themselves for command failures; they return
    ``CommandResult`` objects and the caller decides which error category
    a failure belongs to.

    Attributes:
        dry_run: If True, only log what would be done.

    Example:
        >>> operator = MacPkgOperator(dry_run=True)
        >>> if operator.is_available():
        ...     result = operator.install(Path("/tmp/editor-12.pkg"))
        ...     print(result.success)
    """

    # Timeout for a single script run (10 minutes)
    _SCRIPT_TIMEOUT: float = 600.0

    def __init__(self, dry_run: bool = False) -> None:
        """Initialize the operator.

        Args:
            dry_run: If True, only simulate actions without executing them.
        """
        self._dry_run = dry_run

    @property
    def dry_run(self) -> bool:
        """Check if operator is in dry-run mode."""
        return self._dry_run

    @property
    @abstractmethod
    def name(self) -> str:
        """Short name of the installer technology."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the installer tooling exists on this system."""

    @abstractmethod
    def install(self, package_file: Path) -> CommandResult:
        """Install a downloaded package file.

        Args:
            package_file: Local path of the package.

        Returns:
            Result of the installer run.
        """

    @abstractmethod
    def uninstall(self, installer_ids: list[str]) -> CommandResult:
        """Remove everything installed under the given installer ids.

        Args:
            installer_ids: OS package receipt ids of the package.

        Returns:
            Combined result; failure if any id could not be removed.
        """

    def run_script(self, script: CatalogScript, edition: str) -> CommandResult:
        """Run a package script with the edition as its only argument.

        The script code is written to a private temporary file, made
        executable, run, and deleted again.

        Args:
            script: Script fetched from the catalog.
            edition: Edition being installed or removed.

        Returns:
            Result of the script run. A timeout counts as a failure.
        """
        if self.dry_run:
            logger.info("Would run script '%s' for %s", script.name, edition)
            return CommandResult(stdout="", stderr="", returncode=0)

        fd, raw_path = tempfile.mkstemp(prefix="fleetsync-script-")
        script_path = Path(raw_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(script.code)
            script_path.chmod(0o700)
            logger.debug("Running script '%s' (%d) for %s", script.name, script.id, edition)
            return run_command(
                [str(script_path), edition],
                timeout=self._SCRIPT_TIMEOUT,
                env={"FLEETSYNC_EDITION": edition},
            )
        except subprocess.TimeoutExpired:
            return CommandResult(
                stdout="", stderr=f"script '{script.name}' timed out", returncode=124
            )
        except OSError as e:
            return CommandResult(stdout="", stderr=f"cannot run script: {e}", returncode=126)
        finally:
            script_path.unlink(missing_ok=True)
