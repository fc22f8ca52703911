"""Foreground scanner based on macOS lsappinfo."""

import logging
import re
import subprocess

from fleetsync.scanners.base import ForegroundApp, ForegroundScanner
from fleetsync.utils.shell import command_exists, run_command

logger = logging.getLogger(__name__)

_LSAPPINFO = "/usr/bin/lsappinfo"

# lsappinfo prints lines like: "CFBundleIdentifier"="com.example.editor"
_FIELD = re.compile(r'^"?(?P<key>[A-Za-z]+)"?="(?P<value>[^"]*)"$')


class LsAppInfoScanner(ForegroundScanner):
    """Ask the window server for the frontmost application.

    Only works inside a logged-in user session; without one there is no
    foreground application and ``frontmost()`` returns None.
    """

    def is_available(self) -> bool:
        return command_exists(_LSAPPINFO)

    def frontmost(self) -> ForegroundApp | None:
        try:
            front = run_command([_LSAPPINFO, "front"], timeout=10.0)
            if not front.success or not front.stdout.strip():
                return None
            asn = front.stdout.strip()
            info = run_command(
                [_LSAPPINFO, "info", "-only", "bundleid", "-only", "bundlepath", asn],
                timeout=10.0,
            )
        except (FileNotFoundError, OSError, subprocess.TimeoutExpired) as e:
            logger.debug("lsappinfo failed: %s", e)
            return None
        if not info.success:
            return None
        return self._parse_info(info.stdout)

    @staticmethod
    def _parse_info(output: str) -> ForegroundApp | None:
        """Parse the key="value" lines printed by ``lsappinfo info``."""
        fields: dict[str, str] = {}
        for line in output.splitlines():
            match = _FIELD.match(line.strip())
            if match and match.group("value"):
                fields[match.group("key")] = match.group("value")
        app = ForegroundApp(
            bundle_id=fields.get("CFBundleIdentifier"),
            path=fields.get("LSBundlePath"),
        )
        return app if app.triggers else None
