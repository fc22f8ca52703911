"""Abstract base class for foreground application scanners.

Expiration needs to know which application the user is actually using.
A scanner reports the frontmost application as a set of trigger values
(bundle id and bundle path) that receipts list as expiration triggers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ForegroundApp:
    """The application currently in the foreground.

    Attributes:
        bundle_id: Bundle identifier, e.g. "com.example.editor".
        path: Bundle path, e.g. "/Applications/Editor.app".
    """

    bundle_id: str | None = None
    path: str | None = None

    @property
    def triggers(self) -> list[str]:
        """Values that count as an observation of this app."""
        return [value for value in (self.bundle_id, self.path) if value]


class ForegroundScanner(ABC):
    """Abstract base class for foreground scanners.

    Example:
        >>> scanner = LsAppInfoScanner()
        >>> if scanner.is_available():
        ...     app = scanner.frontmost()
        ...     print(app.bundle_id if app else "nothing in front")
    """

    @abstractmethod
    def is_available(self) -> bool:
        """Check if foreground detection works on this system."""

    @abstractmethod
    def frontmost(self) -> ForegroundApp | None:
        """Return the frontmost application, or None if it cannot be determined."""
