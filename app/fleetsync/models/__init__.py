"""Data models for fleetsync.

This module exports the core data structures used throughout the application.
"""

from fleetsync.models.action import (
    ActionResult,
    ActionType,
    ResultStatus,
    SkipReason,
    SyncReport,
)
from fleetsync.models.catalog import CatalogDocument, CatalogPackage, CatalogScript
from fleetsync.models.changes import Change, ChangeSet
from fleetsync.models.history import HistoryEntry, HistoryItem, create_history_entry
from fleetsync.models.puppy import PuppyQueueEntry
from fleetsync.models.receipt import Receipt
from fleetsync.models.title import STANDARD_GROUP, TITLE_RULES, Title
from fleetsync.models.version import VERSION_RULES, Version, VersionStatus

__all__ = [
    "ActionResult",
    "ActionType",
    "CatalogDocument",
    "CatalogPackage",
    "CatalogScript",
    "Change",
    "ChangeSet",
    "HistoryEntry",
    "HistoryItem",
    "PuppyQueueEntry",
    "Receipt",
    "ResultStatus",
    "STANDARD_GROUP",
    "SkipReason",
    "SyncReport",
    "TITLE_RULES",
    "Title",
    "VERSION_RULES",
    "Version",
    "VersionStatus",
    "create_history_entry",
]
