"""The sync pass: converge this machine to the catalog.

A pass runs these steps in order, each to completion before the next:

1. refresh receipts from catalog data
2. drop queued puppies whose package is gone
3. install queued puppies (only when asked to)
4. update or roll back installed titles
5. auto-install titles targeted at this machine's groups
6. uninstall titles whose expiration window elapsed
7. delete receipts whose package vanished server-side

A ``PackageError`` only ends the work on that package: it is logged with
its category, recorded as a failed result, and the step moves on.
``FatalSyncError`` ends the pass.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from fleetsync.core.catalog import CatalogSnapshot, CatalogSource, MachineFacts, load_snapshot
from fleetsync.core.config import ClientConfig
from fleetsync.core.errors import (
    CatalogConsistencyError,
    ErrorCategory,
    MissingPackageError,
    PackageError,
)
from fleetsync.core.expiration import is_expired, notify, observe_foreground
from fleetsync.core.installer import Installer, install_action
from fleetsync.core.session import SyncOptions, SyncSession
from fleetsync.core.state import StateManager
from fleetsync.core.store import PuppyQueue, ReceiptStore, UsageLedger
from fleetsync.models.action import (
    ActionResult,
    ActionType,
    SkipReason,
    SyncReport,
    failed,
    skipped,
    succeeded,
)
from fleetsync.models.catalog import CatalogPackage
from fleetsync.models.receipt import Receipt
from fleetsync.models.version import VersionStatus
from fleetsync.operators.base import Operator
from fleetsync.scanners.base import ForegroundApp, ForegroundScanner

logger = logging.getLogger(__name__)

ALL_PUPPIES = "all"


class Reconciler:
    """Runs sync passes and the per-title entry points for one machine.

    Example:
        >>> reconciler = Reconciler(config, HttpCatalogSource(config), MacPkgOperator())
        >>> report = reconciler.sync(SyncOptions(puppies=True))
        >>> len(report.failed)
        0
    """

    def __init__(
        self,
        config: ClientConfig,
        source: CatalogSource,
        operator: Operator,
        *,
        receipts: ReceiptStore | None = None,
        puppies: PuppyQueue | None = None,
        usage: UsageLedger | None = None,
        scanner: ForegroundScanner | None = None,
        history: StateManager | None = None,
        installer: Installer | None = None,
        facts: MachineFacts | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._source = source
        self._receipts = receipts or ReceiptStore()
        self._puppies = puppies or PuppyQueue()
        self._usage = usage or UsageLedger()
        self._scanner = scanner
        self._history = history
        self._facts = facts
        self._clock = clock or (lambda: datetime.now(UTC))
        self._installer = installer or Installer(
            config, source, operator, self._receipts, self._puppies, clock=self._clock
        )

    @property
    def receipts(self) -> ReceiptStore:
        """Receipt store used by this reconciler."""
        return self._receipts

    @property
    def puppies(self) -> PuppyQueue:
        """Puppy queue used by this reconciler."""
        return self._puppies

    # =========================================================================
    # Pass
    # =========================================================================

    def start_session(self, options: SyncOptions | None = None) -> SyncSession:
        """Fetch a fresh catalog snapshot and open a pass.

        Raises:
            CatalogUnavailableError: If the catalog cannot be fetched.
        """
        snapshot = load_snapshot(self._source, self._config.machine_id, self._facts)
        return SyncSession(
            options=options or SyncOptions(), snapshot=snapshot, started_at=self._clock()
        )

    def sync(self, options: SyncOptions | None = None) -> SyncReport:
        """Run one full pass.

        Returns:
            Every result of the pass in order.

        Raises:
            FatalSyncError: If the store, catalog or every distribution
                point fails; the remaining steps do not run.
        """
        session = self.start_session(options)
        logger.info("Starting sync for %s", self._config.machine_id)

        self.refresh_receipts(session)
        self.clean_puppy_queue(session)
        if session.options.puppies:
            self.flush_puppies(session)
        self.update_installed(session)
        self.auto_install(session)
        self.expire(session)
        self.clean_missing_receipts(session)
        self._notify_puppies(session)

        report = session.report
        self._record_history("sync", report)
        logger.info(
            "Sync finished: %d succeeded, %d skipped, %d failed",
            len(report.succeeded),
            len(report.skipped),
            len(report.failed),
        )
        return report

    # -------------------------------------------------------------------------
    # Step 1
    # -------------------------------------------------------------------------

    def refresh_receipts(self, session: SyncSession) -> None:
        """Bring receipt bookkeeping in line with the catalog."""
        for receipt in self._receipts.all():
            package = session.snapshot.package(receipt.package_id)
            if package is None or package.is_missing or package.title != receipt.title:
                if not receipt.is_missing:
                    logger.warning(
                        "[%s] %s is no longer available on the server",
                        ErrorCategory.MISSING_PACKAGE.value,
                        receipt.edition,
                    )
                    missing = receipt.model_copy(update={"status": VersionStatus.MISSING})
                    self._receipts.put(missing)
                    session.record(
                        succeeded(
                            ActionType.RECEIPT_UPDATE,
                            receipt.title,
                            receipt.package_id,
                            "marked missing",
                        )
                    )
                continue

            updates = self._receipt_updates(receipt, package)
            if not updates:
                continue
            self._receipts.put(receipt.model_copy(update=updates))
            logger.info("Updated receipt for %s: %s", receipt.edition, ", ".join(sorted(updates)))
            session.record(
                succeeded(
                    ActionType.RECEIPT_UPDATE,
                    receipt.title,
                    receipt.package_id,
                    "updated " + ", ".join(sorted(updates)),
                )
            )

    def _receipt_updates(self, receipt: Receipt, package: CatalogPackage) -> dict[str, Any]:
        """Receipt fields that differ from the catalog and should follow it."""
        wanted: dict[str, Any] = {
            "removable": package.removable,
            "prohibiting_processes": list(package.prohibiting_processes),
            "pre_remove_script_id": package.pre_remove_script_id,
            "post_remove_script_id": package.post_remove_script_id,
        }
        if package.removable:
            wanted["expiration_triggers"] = list(package.expiration_bundle_ids)

        rolled_back = package.status == VersionStatus.PILOT and not receipt.is_pilot
        if rolled_back:
            logger.info(
                "%s was returned to pilot on the server; keeping receipt status %s",
                receipt.edition,
                receipt.status.value,
            )
        else:
            wanted["status"] = package.status

        if not receipt.custom_expiration:
            wanted["expiration"] = package.expiration
        if not package.removable:
            wanted["expiration"] = 0

        return {
            field: value for field, value in wanted.items() if getattr(receipt, field) != value
        }

    # -------------------------------------------------------------------------
    # Steps 2 and 3
    # -------------------------------------------------------------------------

    def clean_puppy_queue(self, session: SyncSession) -> None:
        """Drop queued entries whose package no longer exists."""
        for entry in self._puppies.all():
            if not session.snapshot.is_missing(entry.package_id):
                continue
            self._puppies.remove(entry.title)
            logger.warning(
                "[%s] Removed %s from the puppy queue: package no longer on the server",
                ErrorCategory.MISSING_PACKAGE.value,
                entry.edition,
            )
            session.record(
                succeeded(
                    ActionType.DEQUEUE, entry.title, entry.package_id, "package no longer exists"
                )
            )

    def flush_puppies(self, session: SyncSession) -> None:
        """Install every queued puppy with the values captured when queued."""
        for entry in self._puppies.all():
            action = install_action(self._receipts.get(entry.title), entry.package_id)
            try:
                result = self._installer.install(
                    session,
                    entry.package_id,
                    admin=entry.admin,
                    force=entry.force,
                    expiration=entry.expiration,
                    walk=True,
                    manual=entry.manual,
                )
            except MissingPackageError as e:
                self._puppies.remove(entry.title)
                self._record_failure(session, action, entry.title, entry.package_id, e)
                continue
            except PackageError as e:
                self._record_failure(session, action, entry.title, entry.package_id, e)
                continue
            self._puppies.remove(entry.title)
            session.record(result)

    # -------------------------------------------------------------------------
    # Step 4
    # -------------------------------------------------------------------------

    def update_installed(self, session: SyncSession) -> None:
        """Update or roll back installed titles to their target package."""
        for receipt in self._receipts.all():
            if receipt.is_missing:
                continue
            decision = self._update_decision(session, receipt)
            if decision is None:
                continue
            if isinstance(decision, ActionResult):
                session.record(decision)
                continue

            expiration = receipt.expiration if receipt.custom_expiration else None
            self._install(
                session,
                decision,
                admin=receipt.admin,
                expiration=expiration,
                manual=receipt.manual,
            )

    def _update_decision(
        self, session: SyncSession, receipt: Receipt
    ) -> int | ActionResult | None:
        """Target package id to install, a skip result, or None for no action."""
        snapshot = session.snapshot
        target = snapshot.target_id(receipt.title)
        if target is None:
            if session.options.verbose:
                return skipped(ActionType.UPDATE, receipt.title, SkipReason.NO_RELEASE)
            return None
        if target == receipt.package_id:
            return None

        action = ActionType.ROLLBACK if target < receipt.package_id else ActionType.UPDATE
        if receipt.frozen:
            logger.info("%s is frozen; not moving to package %d", receipt.edition, target)
            return skipped(action, receipt.title, SkipReason.FROZEN, target)
        if action == ActionType.ROLLBACK and receipt.is_pilot:
            logger.info("%s is a pilot install; not rolling back", receipt.edition)
            return skipped(action, receipt.title, SkipReason.PILOT, target)
        if target not in snapshot.eligible_ids and not session.options.force:
            reason = snapshot.ineligibility_reason(target)
            logger.info("Not moving %s to package %d: %s", receipt.edition, target, reason)
            return skipped(action, receipt.title, SkipReason.INELIGIBLE, target, reason)

        package = snapshot.package(target)
        if (
            action == ActionType.UPDATE
            and package is not None
            and package.reboot
            and self._puppies.has_equal_or_newer(receipt.title, target)
        ):
            return skipped(action, receipt.title, SkipReason.QUEUED, target)
        return target

    # -------------------------------------------------------------------------
    # Step 5
    # -------------------------------------------------------------------------

    def auto_install(self, session: SyncSession) -> None:
        """Install titles targeted at this machine that are not installed yet."""
        snapshot = session.snapshot
        handled: set[str] = set()

        for group in snapshot.install_groups():
            for title, package_id in sorted(self._auto_install_targets(snapshot, group).items()):
                if title in handled or self._receipts.get(title) is not None:
                    continue
                handled.add(title)
                package = snapshot.package(package_id)
                if package is None:
                    continue
                if package.reboot and self._puppies.has_equal_or_newer(title, package_id):
                    session.record(
                        skipped(ActionType.INSTALL, title, SkipReason.QUEUED, package_id)
                    )
                    continue

                expiration = None
                if package.expiration > 0 and session.options.custom_expiration is not None:
                    expiration = session.options.custom_expiration
                logger.info("Auto-installing %s for group %s", package.edition, group)
                self._install(
                    session,
                    package_id,
                    admin=self._config.auto_install_admin,
                    expiration=expiration,
                )

    @staticmethod
    def _auto_install_targets(snapshot: CatalogSnapshot, group: str) -> dict[str, int]:
        """Newest auto-install candidate per title for ``group``."""
        released = {
            pid
            for title in snapshot.titles
            if (pid := snapshot.released_id(title)) is not None
        }
        candidates = (released & snapshot.auto_install_ids(group)) & snapshot.eligible_ids

        for title in snapshot.titles:
            for package in snapshot.packages_for_title(title):
                if (
                    package.status == VersionStatus.PILOT
                    and group in package.pilot_groups
                    and package.package_id in snapshot.eligible_ids
                    and package.package_id > (snapshot.released_id(title) or 0)
                ):
                    candidates.add(package.package_id)

        targets: dict[str, int] = {}
        for package_id in candidates:
            package = snapshot.package(package_id)
            if package is None:
                continue
            targets[package.title] = max(targets.get(package.title, 0), package_id)
        return targets

    # -------------------------------------------------------------------------
    # Steps 6 and 7
    # -------------------------------------------------------------------------

    def expire(self, session: SyncSession) -> None:
        """Uninstall titles not used within their expiration window."""
        now = session.started_at
        observe_foreground(self._scanner, self._usage, now)

        for receipt in self._receipts.all():
            if receipt.is_missing or not is_expired(receipt, self._usage, now):
                continue
            logger.info(
                "%s unused for %d days; expiring", receipt.edition, receipt.expiration
            )
            try:
                result = self._installer.uninstall(receipt.title, action=ActionType.EXPIRE)
            except PackageError as e:
                self._record_failure(
                    session, ActionType.EXPIRE, receipt.title, receipt.package_id, e
                )
                continue
            session.expired.append(receipt.title)
            session.record(result)

        if session.expired:
            notify(self._config.expiration_notify_command, session.expired)

    def clean_missing_receipts(self, session: SyncSession) -> None:
        """Delete receipts marked missing during the refresh step."""
        for receipt in self._receipts.all():
            if not receipt.is_missing:
                continue
            self._receipts.delete(receipt.title)
            logger.warning(
                "[%s] Deleted receipt for %s: package no longer exists",
                ErrorCategory.MISSING_PACKAGE.value,
                receipt.edition,
            )
            session.record(
                succeeded(
                    ActionType.RECEIPT_REMOVE,
                    receipt.title,
                    receipt.package_id,
                    "package no longer exists",
                )
            )

    def _notify_puppies(self, session: SyncSession) -> None:
        if session.queued and session.options.puppy_notification:
            notify(self._config.puppy_notify_command, session.queued)

    # =========================================================================
    # Entry points
    # =========================================================================

    def freeze(self, titles: Iterable[str]) -> SyncReport:
        """Pin titles against automatic updates and rollbacks."""
        return self._set_frozen(titles, frozen=True)

    def thaw(self, titles: Iterable[str]) -> SyncReport:
        """Resume automatic updates for titles."""
        return self._set_frozen(titles, frozen=False)

    def _set_frozen(self, titles: Iterable[str], frozen: bool) -> SyncReport:
        report = SyncReport()
        action = ActionType.FREEZE if frozen else ActionType.THAW
        for title in titles:
            receipt = self._receipts.get(title)
            if receipt is None:
                report.add(skipped(action, title, SkipReason.NOT_INSTALLED))
                continue
            if receipt.frozen == frozen:
                reason = SkipReason.FROZEN if frozen else SkipReason.NOT_FROZEN
                report.add(skipped(action, title, reason, receipt.package_id))
                continue
            self._receipts.put(receipt.model_copy(update={"frozen": frozen}))
            logger.info("%s %s", "Froze" if frozen else "Thawed", receipt.edition)
            report.add(succeeded(action, title, receipt.package_id))
        return report

    def dequeue_puppies(self, titles: Iterable[str]) -> SyncReport:
        """Remove titles from the puppy queue; ``"all"`` empties it."""
        wanted = list(titles)
        if ALL_PUPPIES in wanted:
            wanted = [entry.title for entry in self._puppies.all()]

        report = SyncReport()
        for title in wanted:
            entry = self._puppies.get(title)
            if entry is None:
                report.add(skipped(ActionType.DEQUEUE, title, SkipReason.NOT_QUEUED))
                continue
            self._puppies.remove(title)
            logger.info("Removed %s from the puppy queue", entry.edition)
            report.add(succeeded(ActionType.DEQUEUE, title, entry.package_id))
        return report

    def install(
        self,
        titles: Iterable[str],
        *,
        admin: str | None = None,
        force: bool = False,
        freeze: bool = False,
        custom_expiration: int | None = None,
        walk: bool = False,
        package_id: int | None = None,
    ) -> SyncReport:
        """Install titles on request.

        Installs the released package (or the pilot target for pilot
        members) of each title, or ``package_id`` when given for a single
        title. Manual installs clear the frozen flag unless ``freeze``.

        Raises:
            FatalSyncError: If the catalog or every distribution point fails.
            ValueError: If ``package_id`` is given for more than one title.
        """
        wanted = list(titles)
        if package_id is not None and len(wanted) != 1:
            msg = "A package id can only be given for a single title"
            raise ValueError(msg)
        session = self.start_session(
            SyncOptions(force=force, puppies=walk, custom_expiration=custom_expiration)
        )

        for title in wanted:
            target = package_id if package_id is not None else session.snapshot.target_id(title)
            if target is None:
                error = MissingPackageError(f"{title} has no installable package")
                self._record_failure(session, ActionType.INSTALL, title, None, error)
                continue
            package = session.snapshot.package(target)
            if package is not None and package.title != title:
                error = MissingPackageError(f"Package {target} does not belong to {title}")
                self._record_failure(session, ActionType.INSTALL, title, target, error)
                continue
            self._install(
                session,
                target,
                admin=admin or self._config.default_admin,
                expiration=custom_expiration,
                manual=True,
                freeze=freeze,
                force=force,
            )

        self._notify_puppies(session)
        self._record_history("install", session.report)
        return session.report

    def uninstall(self, titles: Iterable[str], *, force: bool = False) -> SyncReport:
        """Uninstall titles on request."""
        report = SyncReport()
        for title in titles:
            receipt = self._receipts.get(title)
            try:
                report.add(self._installer.uninstall(title, force=force))
            except PackageError as e:
                package_id = receipt.package_id if receipt is not None else None
                self._log_failure(e, title)
                report.add(failed(ActionType.UNINSTALL, title, e.category, package_id, str(e)))
        self._record_history("uninstall", report)
        return report

    def record_usage(self) -> ForegroundApp | None:
        """Observe the foreground application once."""
        return observe_foreground(self._scanner, self._usage, self._clock())

    # =========================================================================
    # Helpers
    # =========================================================================

    def _install(
        self,
        session: SyncSession,
        package_id: int,
        *,
        admin: str,
        expiration: int | None = None,
        manual: bool = False,
        freeze: bool = False,
        force: bool | None = None,
    ) -> None:
        """Install one package, recording success or failure on the session."""
        package = session.snapshot.package(package_id)
        title = package.title if package is not None else str(package_id)
        receipt = self._receipts.get(title)
        action = install_action(receipt, package_id)
        try:
            result = self._installer.install(
                session,
                package_id,
                admin=admin,
                force=session.options.force if force is None else force,
                expiration=expiration,
                walk=session.options.puppies,
                manual=manual,
                freeze=freeze,
            )
        except PackageError as e:
            self._record_failure(session, action, title, package_id, e)
            return
        session.record(result)

    def _record_failure(
        self,
        session: SyncSession,
        action: ActionType,
        title: str,
        package_id: int | None,
        error: PackageError,
    ) -> None:
        self._log_failure(error, title)
        session.record(failed(action, title, error.category, package_id, str(error)))

    @staticmethod
    def _log_failure(error: PackageError, title: str) -> None:
        if isinstance(error, CatalogConsistencyError):
            logger.warning("[%s] Skipping %s: %s", error.category.value, title, error)
        else:
            logger.error("[%s] %s: %s", error.category.value, title, error)

    def _record_history(self, command: str, report: SyncReport) -> None:
        if self._history is None:
            return
        self._history.record_report(command, report, {"machine_id": self._config.machine_id})
