"""Install and uninstall operations shared by every reconciliation step.

``Installer.install`` validates a package against this machine, defers
reboot-required packages to the puppy queue, downloads the package file
from the best distribution point, runs the pre-install script, the
installer and the post-install script, and writes the receipt.
``Installer.uninstall`` runs the remove scripts around the operator's
removal and deletes the receipt.

Failures are raised as ``PackageError`` subclasses so callers can record
them per package; ``NoDistributionPointError`` is fatal for the pass.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

import httpx
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)

from fleetsync.core.catalog import CatalogSource
from fleetsync.core.config import ClientConfig
from fleetsync.core.errors import (
    DownloadError,
    InstallError,
    MissingPackageError,
    NoDistributionPointError,
    PostInstallError,
    PreInstallError,
    UninstallError,
)
from fleetsync.core.paths import ensure_download_dir, get_download_dir
from fleetsync.core.session import SyncSession
from fleetsync.core.store import PuppyQueue, ReceiptStore
from fleetsync.models.action import ActionResult, ActionType, succeeded
from fleetsync.models.catalog import CatalogPackage
from fleetsync.models.puppy import PuppyQueueEntry
from fleetsync.models.receipt import Receipt
from fleetsync.models.version import VersionStatus
from fleetsync.operators.base import Operator
from fleetsync.utils.formatting import err_console
from fleetsync.utils.shell import process_running

logger = logging.getLogger(__name__)

_RETIRED = frozenset({VersionStatus.DEPRECATED, VersionStatus.SKIPPED})


def install_action(receipt: Receipt | None, package_id: int) -> ActionType:
    """Classify installing ``package_id`` over an existing receipt."""
    if receipt is None:
        return ActionType.INSTALL
    if package_id > receipt.package_id:
        return ActionType.UPDATE
    if package_id < receipt.package_id:
        return ActionType.ROLLBACK
    return ActionType.REINSTALL


class Installer:
    """Performs installs and uninstalls for one machine."""

    _CHUNK_SIZE = 1024 * 256

    def __init__(
        self,
        config: ClientConfig,
        source: CatalogSource,
        operator: Operator,
        receipts: ReceiptStore,
        puppies: PuppyQueue,
        http: httpx.Client | None = None,
        download_dir: Path | None = None,
        show_progress: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._source = source
        self._operator = operator
        self._receipts = receipts
        self._puppies = puppies
        self._http = http or httpx.Client(
            timeout=httpx.Timeout(config.read_timeout, connect=config.connect_timeout),
            follow_redirects=True,
        )
        self._download_dir = download_dir or get_download_dir()
        self._show_progress = show_progress
        self._clock = clock or (lambda: datetime.now(UTC))

    # =========================================================================
    # Install
    # =========================================================================

    def install(
        self,
        session: SyncSession,
        package_id: int,
        *,
        admin: str,
        force: bool = False,
        expiration: int | None = None,
        walk: bool = False,
        manual: bool = False,
        freeze: bool = False,
    ) -> ActionResult:
        """Install a package, or queue it if it needs a reboot.

        Args:
            session: Current pass.
            package_id: Package to install.
            admin: Admin name recorded on the receipt.
            force: Override validation refusals.
            expiration: Machine-local expiration override in days.
            walk: Install reboot-required packages now instead of queueing.
            manual: Installed by explicit request rather than by sync.
            freeze: Freeze the receipt after installing.

        Returns:
            Succeeded result of type install/update/rollback/reinstall, or
            queue when the package was deferred.

        Raises:
            MissingPackageError: The package does not exist server-side.
            InstallError: Validation refused, or the installer failed.
            PreInstallError: The pre-install script failed.
            PostInstallError: The post-install script failed (receipt written).
            DownloadError: The package could not be downloaded.
            CatalogConsistencyError: A referenced script does not exist.
            NoDistributionPointError: No distribution point is reachable.
        """
        package = session.snapshot.package(package_id)
        if package is None or package.is_missing:
            msg = f"Package {package_id} is not available on the server"
            raise MissingPackageError(msg)

        previous = self._receipts.get(package.title)
        action = install_action(previous, package_id)
        self._validate(session, package, force)

        if package.reboot and not walk:
            return self._queue(session, package, admin, force, expiration, manual)

        package_file = self._fetch(session, package)
        try:
            self._run_script(package.pre_install_script_id, package, PreInstallError)

            logger.info("%s %s", action.value.capitalize(), package.edition)
            result = self._operator.install(package_file)
            if not result.success:
                msg = f"Installer failed for {package.edition}: {result.error_text}"
                raise InstallError(msg)

            post_error: PostInstallError | None = None
            try:
                self._run_script(package.post_install_script_id, package, PostInstallError)
            except PostInstallError as e:
                post_error = e

            receipt = self._build_receipt(package, previous, admin, expiration, manual, freeze)
            self._receipts.put(receipt)
            queued = self._puppies.queued_id(package.title)
            if queued is not None and queued <= package_id:
                self._puppies.remove(package.title)
            if post_error is not None:
                raise post_error
        finally:
            package_file.unlink(missing_ok=True)

        return succeeded(action, package.title, package_id, f"installed {package.edition}")

    def _validate(self, session: SyncSession, package: CatalogPackage, force: bool) -> None:
        """Refuse installs the catalog or the machine state advise against."""
        problems: list[str] = []
        if package.status in _RETIRED:
            problems.append(f"{package.edition} is {package.status.value}")
        reason = session.snapshot.ineligibility_reason(package.package_id)
        if reason:
            problems.append(reason)
        running = [p for p in package.prohibiting_processes if process_running(p)]
        if running:
            problems.append(f"blocked by running process(es) {', '.join(running)}")

        if not problems:
            return
        if force:
            for problem in problems:
                logger.warning("Forcing install of %s although %s", package.edition, problem)
            return
        msg = f"Not installing {package.edition}: " + "; ".join(problems) + " (use --force)"
        raise InstallError(msg)

    def _queue(
        self,
        session: SyncSession,
        package: CatalogPackage,
        admin: str,
        force: bool,
        expiration: int | None,
        manual: bool,
    ) -> ActionResult:
        entry = PuppyQueueEntry(
            title=package.title,
            package_id=package.package_id,
            version=package.version,
            admin=admin,
            force=force,
            expiration=expiration,
            manual=manual,
            queued_at=self._clock(),
        )
        self._puppies.enqueue(entry)
        session.queued.append(package.title)
        return succeeded(
            ActionType.QUEUE,
            package.title,
            package.package_id,
            f"{package.edition} requires a reboot; queued",
        )

    def _build_receipt(
        self,
        package: CatalogPackage,
        previous: Receipt | None,
        admin: str,
        expiration: int | None,
        manual: bool,
        freeze: bool,
    ) -> Receipt:
        if expiration is not None:
            days, custom = expiration, True
        elif previous is not None and previous.custom_expiration:
            days, custom = previous.expiration, True
        else:
            days, custom = package.expiration, False
        if not package.removable:
            days = 0

        return Receipt(
            title=package.title,
            package_id=package.package_id,
            version=package.version,
            status=package.status,
            admin=admin,
            installed_at=self._clock(),
            frozen=freeze,
            removable=package.removable,
            manual=manual or (previous is not None and previous.manual),
            expiration=days,
            custom_expiration=custom,
            expiration_triggers=list(package.expiration_bundle_ids),
            prohibiting_processes=list(package.prohibiting_processes),
            pre_remove_script_id=package.pre_remove_script_id,
            post_remove_script_id=package.post_remove_script_id,
            installer_ids=list(package.installer_ids),
            reboot=package.reboot,
        )

    def _run_script(
        self,
        script_id: int | None,
        package: CatalogPackage,
        error: type[PreInstallError] | type[PostInstallError],
    ) -> None:
        if script_id is None:
            return
        script = self._source.fetch_script(script_id)
        result = self._operator.run_script(script, package.edition)
        if not result.success:
            msg = f"Script '{script.name}' failed for {package.edition}: {result.error_text}"
            raise error(msg)

    # =========================================================================
    # Download
    # =========================================================================

    def _fetch(self, session: SyncSession, package: CatalogPackage) -> Path:
        """Download the package file, primary first, cloud as fallback."""
        primary = f"{self._config.distribution_point_url}/{package.filename}"
        if session.primary_reachable is not False:
            try:
                path = self._download(primary, package)
            except httpx.TransportError as e:
                logger.warning("Primary distribution point unreachable: %s", e)
                session.primary_reachable = False
            except httpx.HTTPStatusError as e:
                session.primary_reachable = True
                msg = f"Cannot download {package.filename}: {e}"
                raise DownloadError(msg) from e
            else:
                session.primary_reachable = True
                return path

        cloud_base = self._config.cloud_distribution_url
        if not self._config.cloud_enabled or cloud_base is None:
            msg = "Primary distribution point unreachable and no cloud fallback configured"
            raise NoDistributionPointError(msg)
        if session.cloud_reachable is False:
            msg = "Neither the primary nor the cloud distribution point is reachable"
            raise NoDistributionPointError(msg)

        cloud = f"{cloud_base}/{package.filename}"
        try:
            present = self._http.head(cloud)
        except httpx.TransportError as e:
            session.cloud_reachable = False
            msg = f"Neither the primary nor the cloud distribution point is reachable: {e}"
            raise NoDistributionPointError(msg) from e
        session.cloud_reachable = True
        if present.status_code != 200:
            msg = f"{package.filename} is not on the cloud distribution point"
            raise DownloadError(msg)

        logger.info("Using cloud distribution point for %s", package.edition)
        try:
            return self._download(cloud, package)
        except httpx.HTTPError as e:
            msg = f"Cannot download {package.filename} from the cloud: {e}"
            raise DownloadError(msg) from e

    def _download(self, url: str, package: CatalogPackage) -> Path:
        """Stream ``url`` into the download directory.

        Rich's progress display refreshes from a background thread that is
        stopped and joined when the ``with`` block exits.
        """
        try:
            if self._download_dir == get_download_dir():
                ensure_download_dir()
            else:
                self._download_dir.mkdir(parents=True, exist_ok=True)
        except (OSError, RuntimeError) as e:
            msg = f"Cannot prepare download directory: {e}"
            raise DownloadError(msg) from e
        target = self._download_dir / package.filename
        partial = target.with_name(target.name + ".part")
        try:
            with self._http.stream("GET", url) as response:
                response.raise_for_status()
                total = int(response.headers.get("Content-Length", 0)) or None
                with (
                    Progress(
                        TextColumn("[info]{task.description}"),
                        BarColumn(),
                        DownloadColumn(),
                        TransferSpeedColumn(),
                        console=err_console,
                        transient=True,
                        disable=not self._show_progress,
                    ) as progress,
                    partial.open("wb") as f,
                ):
                    task = progress.add_task(package.edition, total=total)
                    for chunk in response.iter_bytes(self._CHUNK_SIZE):
                        f.write(chunk)
                        progress.update(task, advance=len(chunk))
            partial.replace(target)
        except OSError as e:
            partial.unlink(missing_ok=True)
            msg = f"Cannot save {package.filename}: {e}"
            raise DownloadError(msg) from e
        except httpx.HTTPError:
            partial.unlink(missing_ok=True)
            raise
        logger.debug("Downloaded %s from %s", package.filename, url)
        return target

    # =========================================================================
    # Uninstall
    # =========================================================================

    def uninstall(
        self,
        title: str,
        *,
        force: bool = False,
        action: ActionType = ActionType.UNINSTALL,
    ) -> ActionResult:
        """Remove an installed title and delete its receipt.

        Args:
            title: Title to remove.
            force: Remove even if the receipt is not removable.
            action: Result type to report (uninstall or expire).

        Raises:
            UninstallError: Not installed, not removable, the pre-remove
                script failed or files could not be removed. The receipt
                is left in place.
        """
        receipt = self._receipts.get(title)
        if receipt is None:
            msg = f"{title} is not installed"
            raise UninstallError(msg)
        if not receipt.removable and not force:
            msg = f"{receipt.edition} is not removable (use --force)"
            raise UninstallError(msg)

        self._run_remove_script(receipt.pre_remove_script_id, receipt, fatal=True)

        if receipt.installer_ids:
            result = self._operator.uninstall(receipt.installer_ids)
            if not result.success:
                msg = f"Cannot remove {receipt.edition}: {result.error_text}"
                raise UninstallError(msg)
        else:
            logger.warning("No installer ids recorded for %s; dropping receipt", receipt.edition)

        self._run_remove_script(receipt.post_remove_script_id, receipt, fatal=False)
        self._receipts.delete(title)
        logger.info("Uninstalled %s", receipt.edition)
        return succeeded(action, title, receipt.package_id, f"removed {receipt.edition}")

    def _run_remove_script(self, script_id: int | None, receipt: Receipt, fatal: bool) -> None:
        if script_id is None:
            return
        script = self._source.fetch_script(script_id)
        result = self._operator.run_script(script, receipt.edition)
        if result.success:
            return
        msg = f"Script '{script.name}' failed for {receipt.edition}: {result.error_text}"
        if fatal:
            raise UninstallError(msg)
        logger.warning("[uninstall] %s", msg)
