"""Pending change-set for title and version edits.

Every validated attribute setter records its edit here so the admin side
can publish a changelog. Edits that return a value to where it started
cancel out and leave no entry.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Change:
    """Net change of one attribute since the change-set was last cleared.

    Attributes:
        attr: Attribute name.
        orig: Value before the first edit.
        new: Value after the latest edit.
    """

    attr: str
    orig: Any
    new: Any

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON storage."""
        return {"orig": self.orig, "new": self.new}


class ChangeSet:
    """Ordered mapping of attribute name to its net change."""

    def __init__(self) -> None:
        self._changes: dict[str, Change] = {}

    def note(self, attr: str, start: Any, end: Any) -> None:
        """Record that ``attr`` moved from ``start`` to ``end``.

        The original value is captured on the first edit only. If ``end``
        equals that original value the entry is dropped.

        Args:
            attr: Attribute name.
            start: Value before this edit.
            end: Value after this edit.
        """
        existing = self._changes.get(attr)
        orig = existing.orig if existing is not None else start
        if orig == end:
            self._changes.pop(attr, None)
        else:
            self._changes[attr] = Change(attr=attr, orig=orig, new=end)

    def clear(self) -> None:
        """Forget all pending changes (after they were published)."""
        self._changes.clear()

    def get(self, attr: str) -> Change | None:
        """Return the pending change for ``attr``, if any."""
        return self._changes.get(attr)

    def __contains__(self, attr: object) -> bool:
        return attr in self._changes

    def __len__(self) -> int:
        return len(self._changes)

    def __bool__(self) -> bool:
        return bool(self._changes)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        """Serialize all pending changes."""
        return {attr: change.to_dict() for attr, change in self._changes.items()}
