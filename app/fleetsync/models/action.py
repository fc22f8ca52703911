"""Action and result models for reconciliation passes.

This module defines data structures describing what a sync pass did to
each title (install, update, rollback, uninstall, ...) and how it ended,
plus the per-pass report that collects them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from fleetsync.core.errors import ErrorCategory


class ActionType(str, Enum):
    """Kind of operation performed on a title.

    Attributes:
        INSTALL: First install of a title on this machine.
        UPDATE: Replace an installed package with a newer one.
        ROLLBACK: Replace an installed package with an older released one.
        REINSTALL: Install the package id that is already installed.
        QUEUE: Defer a reboot-required install to the puppy queue.
        UNINSTALL: Remove an installed title.
        EXPIRE: Uninstall because the title was not used within its window.
        RECEIPT_UPDATE: Bookkeeping change to a receipt, no install.
        RECEIPT_REMOVE: Drop a receipt whose package vanished server-side.
        DEQUEUE: Remove an entry from the puppy queue.
        FREEZE: Pin a title against automatic updates.
        THAW: Resume automatic updates for a title.
    """

    INSTALL = "install"
    UPDATE = "update"
    ROLLBACK = "rollback"
    REINSTALL = "reinstall"
    QUEUE = "queue"
    UNINSTALL = "uninstall"
    EXPIRE = "expire"
    RECEIPT_UPDATE = "receipt-update"
    RECEIPT_REMOVE = "receipt-remove"
    DEQUEUE = "dequeue"
    FREEZE = "freeze"
    THAW = "thaw"


class ResultStatus(str, Enum):
    """Outcome of a single action."""

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


class SkipReason(str, Enum):
    """Why a reconciliation branch decided not to act."""

    FROZEN = "frozen"
    PILOT = "pilot"
    QUEUED = "queued"
    NO_RELEASE = "no-release"
    INELIGIBLE = "ineligible"
    ALREADY_INSTALLED = "already-installed"
    NOT_INSTALLED = "not-installed"
    NOT_FROZEN = "not-frozen"
    NOT_QUEUED = "not-queued"


# Action types that change installed software or persisted state.
MUTATING_ACTIONS: frozenset[ActionType] = frozenset(
    {
        ActionType.INSTALL,
        ActionType.UPDATE,
        ActionType.ROLLBACK,
        ActionType.REINSTALL,
        ActionType.QUEUE,
        ActionType.UNINSTALL,
        ActionType.EXPIRE,
        ActionType.RECEIPT_UPDATE,
        ActionType.RECEIPT_REMOVE,
        ActionType.DEQUEUE,
        ActionType.FREEZE,
        ActionType.THAW,
    }
)


@dataclass(frozen=True, slots=True)
class ActionResult:
    """Result of one reconciliation action.

    Attributes:
        action: What was attempted.
        title: Title the action applies to.
        package_id: Package id involved, if any.
        status: Whether it succeeded, was skipped, or failed.
        category: Failure category for failed results.
        skip_reason: Why the action was skipped, for skipped results.
        message: Human-readable detail.
    """

    action: ActionType
    title: str
    status: ResultStatus
    package_id: int | None = None
    category: ErrorCategory | None = None
    skip_reason: SkipReason | None = None
    message: str | None = None

    def __post_init__(self) -> None:
        """Validate result data after initialization."""
        if not self.title:
            msg = "Title cannot be empty"
            raise ValueError(msg)
        if self.status == ResultStatus.FAILED and self.category is None:
            msg = "Failed results need an error category"
            raise ValueError(msg)

    @property
    def succeeded(self) -> bool:
        """Check if the action completed."""
        return self.status == ResultStatus.SUCCEEDED

    @property
    def skipped(self) -> bool:
        """Check if the action was deliberately not taken."""
        return self.status == ResultStatus.SKIPPED

    @property
    def failed(self) -> bool:
        """Check if the action failed."""
        return self.status == ResultStatus.FAILED

    @property
    def is_mutation(self) -> bool:
        """Check if this result changed software or persisted state."""
        return self.succeeded and self.action in MUTATING_ACTIONS

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly dictionary."""
        result: dict[str, Any] = {
            "action": self.action.value,
            "title": self.title,
            "status": self.status.value,
        }
        if self.package_id is not None:
            result["package_id"] = self.package_id
        if self.category is not None:
            result["category"] = self.category.value
        if self.skip_reason is not None:
            result["skip_reason"] = self.skip_reason.value
        if self.message:
            result["message"] = self.message
        return result


def succeeded(
    action: ActionType, title: str, package_id: int | None = None, message: str | None = None
) -> ActionResult:
    """Create a succeeded result."""
    return ActionResult(
        action=action,
        title=title,
        status=ResultStatus.SUCCEEDED,
        package_id=package_id,
        message=message,
    )


def skipped(
    action: ActionType,
    title: str,
    reason: SkipReason,
    package_id: int | None = None,
    message: str | None = None,
) -> ActionResult:
    """Create a skipped result."""
    return ActionResult(
        action=action,
        title=title,
        status=ResultStatus.SKIPPED,
        package_id=package_id,
        skip_reason=reason,
        message=message,
    )


def failed(
    action: ActionType,
    title: str,
    category: ErrorCategory,
    package_id: int | None = None,
    message: str | None = None,
) -> ActionResult:
    """Create a failed result."""
    return ActionResult(
        action=action,
        title=title,
        status=ResultStatus.FAILED,
        package_id=package_id,
        category=category,
        message=message,
    )


@dataclass(slots=True)
class SyncReport:
    """Ordered collection of everything a pass did.

    Attributes:
        results: Results in the order they were produced.
    """

    results: list[ActionResult] = field(default_factory=list)

    def add(self, result: ActionResult) -> ActionResult:
        """Append a result and return it."""
        self.results.append(result)
        return result

    @property
    def succeeded(self) -> list[ActionResult]:
        """Results that completed."""
        return [r for r in self.results if r.succeeded]

    @property
    def skipped(self) -> list[ActionResult]:
        """Results that were deliberately not acted on."""
        return [r for r in self.results if r.skipped]

    @property
    def failed(self) -> list[ActionResult]:
        """Results that failed."""
        return [r for r in self.results if r.failed]

    @property
    def mutations(self) -> list[ActionResult]:
        """Results that changed software or persisted state."""
        return [r for r in self.results if r.is_mutation]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "summary": {
                "succeeded": len(self.succeeded),
                "skipped": len(self.skipped),
                "failed": len(self.failed),
            },
            "results": [r.to_dict() for r in self.results],
        }
