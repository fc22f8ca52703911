"""macOS installer package operator.

Installs .pkg files with the configured installer command and removes
them through the pkgutil receipt database.
"""

import logging
import plistlib
import subprocess
from pathlib import Path

from fleetsync.core.config import DEFAULT_INSTALL_COMMAND
from fleetsync.operators.base import Operator
from fleetsync.utils.shell import CommandResult, command_exists, run_command

logger = logging.getLogger(__name__)


class MacPkgOperator(Operator):
    """Operator for flat installer packages on macOS.

    Uninstalling deletes the files pkgutil recorded for each installer id,
    deepest paths first, removing directories only once they are empty,
    then forgets the id.
    """

    # Timeout for installer runs (30 minutes)
    _INSTALL_TIMEOUT: float = 1800.0
    _PKGUTIL = "/usr/sbin/pkgutil"

    def __init__(self, install_command: list[str] | None = None, dry_run: bool = False) -> None:
        super().__init__(dry_run=dry_run)
        self._install_command = list(install_command or DEFAULT_INSTALL_COMMAND)

    @property
    def name(self) -> str:
        return "pkg"

    def is_available(self) -> bool:
        """Check if the installer executable and pkgutil exist."""
        return command_exists(self._install_command[0]) and command_exists(self._PKGUTIL)

    def install(self, package_file: Path) -> CommandResult:
        args = [part.replace("{path}", str(package_file)) for part in self._install_command]
        if self.dry_run:
            logger.info("Would run: %s", " ".join(args))
            return CommandResult(stdout="", stderr="", returncode=0)

        logger.info("Installing %s", package_file.name)
        try:
            return run_command(args, timeout=self._INSTALL_TIMEOUT)
        except subprocess.TimeoutExpired:
            return CommandResult(stdout="", stderr="installer timed out", returncode=124)
        except OSError as e:
            return CommandResult(stdout="", stderr=f"cannot run installer: {e}", returncode=126)

    def uninstall(self, installer_ids: list[str]) -> CommandResult:
        if not installer_ids:
            return CommandResult(stdout="", stderr="no installer ids recorded", returncode=1)

        known = self._known_ids()
        errors: list[str] = []
        removed: list[str] = []
        for pkg_id in installer_ids:
            if pkg_id not in known:
                logger.warning("Installer id %s is not known to pkgutil", pkg_id)
                continue
            if self.dry_run:
                logger.info("Would remove files of %s", pkg_id)
                continue
            try:
                self._remove_files(pkg_id)
            except (OSError, ValueError) as e:
                errors.append(f"{pkg_id}: {e}")
                continue
            forget = run_command([self._PKGUTIL, "--forget", pkg_id])
            if not forget.success:
                errors.append(f"{pkg_id}: {forget.error_text}")
                continue
            removed.append(pkg_id)

        if errors:
            return CommandResult(stdout="\n".join(removed), stderr="\n".join(errors), returncode=1)
        return CommandResult(stdout="\n".join(removed), stderr="", returncode=0)

    def _known_ids(self) -> set[str]:
        result = run_command([self._PKGUTIL, "--pkgs"])
        if not result.success:
            return set()
        return {line.strip() for line in result.stdout.splitlines() if line.strip()}

    def _install_root(self, pkg_id: str) -> Path:
        """Volume joined with install location for ``pkg_id``."""
        result = run_command([self._PKGUTIL, "--pkg-info-plist", pkg_id])
        if not result.success:
            msg = f"no package info: {result.error_text}"
            raise ValueError(msg)
        try:
            info = plistlib.loads(result.stdout.encode("utf-8"))
        except plistlib.InvalidFileException as e:
            msg = f"unreadable package info: {e}"
            raise ValueError(msg) from e
        volume = info.get("volume") or "/"
        location = (info.get("install-location") or "").strip("/")
        return Path(volume) / location if location else Path(volume)

    def _remove_files(self, pkg_id: str) -> None:
        result = run_command([self._PKGUTIL, "--files", pkg_id])
        if not result.success:
            msg = f"no file list: {result.error_text}"
            raise ValueError(msg)
        root = self._install_root(pkg_id)
        items = [line for line in result.stdout.splitlines() if line.strip()]

        # Depth-first: children are listed after their directories.
        for item in reversed(items):
            path = root / item
            if path.is_symlink() or path.is_file():
                path.unlink()
            elif path.is_dir() and not any(path.iterdir()):
                path.rmdir()
        logger.info("Removed %d paths installed by %s", len(items), pkg_id)
