"""History entry model for auditing past passes.

Each sync pass (or manual install/uninstall) that changed something is
recorded as one entry holding every successful mutation of that pass.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from fleetsync.models.action import ActionResult, ActionType

# Mutations worth auditing; receipt bookkeeping is left to the log file.
RECORDED_ACTIONS: frozenset[ActionType] = frozenset(
    {
        ActionType.INSTALL,
        ActionType.UPDATE,
        ActionType.ROLLBACK,
        ActionType.REINSTALL,
        ActionType.QUEUE,
        ActionType.UNINSTALL,
        ActionType.EXPIRE,
    }
)


@dataclass(frozen=True, slots=True)
class HistoryItem:
    """Single title affected during a pass.

    Attributes:
        action: What was done.
        title: Title identifier.
        package_id: Package id involved, if known.
    """

    action: ActionType
    title: str
    package_id: int | None = None

    def __post_init__(self) -> None:
        if not self.title:
            msg = "Title cannot be empty"
            raise ValueError(msg)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"action": self.action.value, "title": self.title}
        if self.package_id is not None:
            result["package_id"] = self.package_id
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoryItem":
        """Inverse of ``to_dict``; raises KeyError or ValueError on bad data."""
        return cls(
            action=ActionType(data["action"]),
            title=data["title"],
            package_id=data.get("package_id"),
        )


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """Record of one pass or command.

    Attributes:
        id: Unique identifier (12-character hex string from UUID).
        timestamp: When the pass finished (ISO 8601 with timezone).
        command: Command that produced it ("sync", "install", ...).
        items: Mutations performed, in order.
        failures: Number of per-package failures in the pass.
        metadata: Additional context (admin, machine id, ...).
    """

    id: str
    timestamp: str
    command: str
    items: tuple[HistoryItem, ...]
    failures: int = 0
    metadata: dict[str, Any] = field(default_factory=lambda: {})

    def __post_init__(self) -> None:
        if not self.id or not self.timestamp:
            msg = "History entry needs an id and a timestamp"
            raise ValueError(msg)
        if not self.items:
            msg = "History entry must have at least one item"
            raise ValueError(msg)

    def grouped(self) -> dict[ActionType, list[HistoryItem]]:
        """Items grouped by action type, preserving first-seen order."""
        groups: dict[ActionType, list[HistoryItem]] = {}
        for item in self.items:
            groups.setdefault(item.action, []).append(item)
        return groups

    def to_dict(self) -> dict[str, Any]:
        """Plain-JSON form, as stored in the history file."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "command": self.command,
            "items": [item.to_dict() for item in self.items],
            "failures": self.failures,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoryEntry":
        """Rebuild an entry from ``to_dict`` output.

        Raises:
            KeyError: A required field is missing.
            ValueError: An item or action value is invalid.
        """
        return cls(
            id=data["id"],
            timestamp=data["timestamp"],
            command=data["command"],
            items=tuple(HistoryItem.from_dict(item) for item in data["items"]),
            failures=data.get("failures", 0),
            metadata=data.get("metadata", {}),
        )

    def to_json_line(self) -> str:
        """Compact JSON without the trailing newline."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json_line(cls, line: str) -> "HistoryEntry":
        """Parse one line of the history file.

        Raises:
            json.JSONDecodeError, KeyError, ValueError: The line is corrupt.
        """
        return cls.from_dict(json.loads(line.strip()))


def create_history_entry(
    command: str,
    results: list[ActionResult],
    metadata: dict[str, Any] | None = None,
) -> HistoryEntry | None:
    """Build a history entry from a pass's results.

    Only successful mutations in ``RECORDED_ACTIONS`` become items.

    Args:
        command: Command that produced the results.
        results: All results of the pass.
        metadata: Optional additional context.

    Returns:
        New HistoryEntry, or None if nothing worth recording happened.
    """
    items = [
        HistoryItem(action=r.action, title=r.title, package_id=r.package_id)
        for r in results
        if r.succeeded and r.action in RECORDED_ACTIONS
    ]
    if not items:
        return None

    return HistoryEntry(
        id=uuid.uuid4().hex[:12],
        timestamp=datetime.now(UTC).isoformat(),
        command=command,
        items=tuple(items),
        failures=sum(1 for r in results if r.failed),
        metadata=metadata or {},
    )
