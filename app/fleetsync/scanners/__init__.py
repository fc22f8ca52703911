"""Foreground application scanners used for usage-based expiration."""

from fleetsync.scanners.base import ForegroundApp, ForegroundScanner
from fleetsync.scanners.lsappinfo import LsAppInfoScanner

__all__ = ["ForegroundApp", "ForegroundScanner", "LsAppInfoScanner"]
