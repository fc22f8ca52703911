"""Installer operators for putting packages in place and removing them.

This module provides the abstract operator interface and the macOS
installer package implementation.
"""

from fleetsync.operators.base import Operator
from fleetsync.operators.macos import MacPkgOperator

__all__ = ["Operator", "MacPkgOperator"]
