"""Per-pass reconciliation context.

Everything a pass learns or decides is carried on a ``SyncSession`` that
is created when the pass starts and thrown away when it ends, so no state
leaks from one pass into the next.
"""

from dataclasses import dataclass, field
from datetime import datetime

from fleetsync.core.catalog import CatalogSnapshot, MachineFacts
from fleetsync.models.action import ActionResult, SyncReport


@dataclass(frozen=True, slots=True)
class SyncOptions:
    """Caller-selected behavior of one pass.

    Attributes:
        verbose: Log every decision, not only actions.
        force: Install even when pre-install validation objects.
        puppies: Install reboot-required packages now instead of queueing
            them, and flush the existing puppy queue.
        custom_expiration: Days to use as a machine-local expiration
            override for auto-installed expirable packages.
        puppy_notification: Run the puppy notify command if anything was
            queued during the pass.
    """

    verbose: bool = False
    force: bool = False
    puppies: bool = False
    custom_expiration: int | None = None
    puppy_notification: bool = True

    def __post_init__(self) -> None:
        """Validate options after initialization."""
        if self.custom_expiration is not None and self.custom_expiration < 0:
            msg = "Custom expiration cannot be negative"
            raise ValueError(msg)


@dataclass(slots=True)
class SyncSession:
    """State of one running pass.

    Attributes:
        options: Options the pass was started with.
        snapshot: Catalog view fetched at pass start.
        started_at: Reference time for the whole pass.
        report: Results collected so far.
        primary_reachable: Whether the primary distribution point answered;
            None until the first download tries it.
        cloud_reachable: Same for the cloud distribution point.
        expired: Titles uninstalled by the expiration sweep.
        queued: Titles newly added to the puppy queue.
    """

    options: SyncOptions
    snapshot: CatalogSnapshot
    started_at: datetime
    report: SyncReport = field(default_factory=SyncReport)
    primary_reachable: bool | None = None
    cloud_reachable: bool | None = None
    expired: list[str] = field(default_factory=list)
    queued: list[str] = field(default_factory=list)

    @property
    def facts(self) -> MachineFacts:
        """Machine facts of this pass."""
        return self.snapshot.facts

    def record(self, result: ActionResult) -> ActionResult:
        """Add a result to the pass report."""
        return self.report.add(result)
