"""Unit tests for the Installer."""

from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from fleetsync.core.config import ClientConfig
from fleetsync.core.errors import (
    CatalogConsistencyError,
    DownloadError,
    InstallError,
    MissingPackageError,
    NoDistributionPointError,
    PostInstallError,
    PreInstallError,
    UninstallError,
)
from fleetsync.core.installer import Installer, install_action
from fleetsync.core.session import SyncSession
from fleetsync.core.store import PuppyQueue, ReceiptStore
from fleetsync.models.action import ActionType
from fleetsync.models.catalog import CatalogPackage, CatalogScript
from fleetsync.models.receipt import Receipt
from fleetsync.models.version import VersionStatus

MakePackage = Callable[..., CatalogPackage]
MakeSession = Callable[..., SyncSession]

SCRIPTS = {
    1: CatalogScript(id=1, name="preflight", code="#!/bin/sh\ntrue"),
    2: CatalogScript(id=2, name="postflight", code="#!/bin/sh\ntrue"),
    3: CatalogScript(id=3, name="pre-remove", code="#!/bin/sh\ntrue"),
    4: CatalogScript(id=4, name="post-remove", code="#!/bin/sh\ntrue"),
}


@pytest.fixture
def catalog(source: Any, make_package: MakePackage) -> Any:
    """Source holding editor 10 and 12 plus the four scripts."""
    source.packages = [make_package(package_id=10), make_package(package_id=12)]
    source.scripts = dict(SCRIPTS)
    return source


def _receipt(package_id: int = 10, **extra: Any) -> Receipt:
    return Receipt(
        title="editor",
        package_id=package_id,
        version=f"1.{package_id}",
        admin="alice",
        installer_ids=["com.example.editor"],
        **extra,
    )


class TestInstallAction:
    """Tests for install_action function."""

    def test_classification(self) -> None:
        """Install type follows the package id relative to the receipt."""
        receipt = _receipt(12)

        assert install_action(None, 12) == ActionType.INSTALL
        assert install_action(receipt, 14) == ActionType.UPDATE
        assert install_action(receipt, 10) == ActionType.ROLLBACK
        assert install_action(receipt, 12) == ActionType.REINSTALL


class TestInstall:
    """Tests for Installer.install."""

    def test_fresh_install(
        self,
        catalog: Any,
        installer: Installer,
        make_session: MakeSession,
        operator: Any,
        receipts: ReceiptStore,
        tmp_path: Path,
        clock: Any,
    ) -> None:
        """A fresh install runs the operator and writes a receipt."""
        result = installer.install(make_session(), 10, admin="alice")

        assert result.action == ActionType.INSTALL
        assert result.succeeded
        assert operator.installed == ["editor-10.pkg"]
        receipt = receipts.get("editor")
        assert receipt is not None
        assert receipt.package_id == 10
        assert receipt.admin == "alice"
        assert receipt.installed_at == clock.now
        assert receipt.installer_ids == ["com.example.editor"]
        assert list((tmp_path / "downloads").iterdir()) == []

    def test_update_reports_update(
        self,
        catalog: Any,
        installer: Installer,
        make_session: MakeSession,
        receipts: ReceiptStore,
    ) -> None:
        """Installing over an older receipt is an update."""
        receipts.put(_receipt(10))

        result = installer.install(make_session(), 12, admin="alice")

        assert result.action == ActionType.UPDATE
        receipt = receipts.get("editor")
        assert receipt is not None
        assert receipt.package_id == 12

    def test_missing_package(
        self, catalog: Any, installer: Installer, make_session: MakeSession
    ) -> None:
        """Unknown or missing packages can never be installed."""
        with pytest.raises(MissingPackageError):
            installer.install(make_session(), 99, admin="alice")

        catalog.replace(12, status=VersionStatus.MISSING)
        with pytest.raises(MissingPackageError):
            installer.install(make_session(), 12, admin="alice")

    def test_manual_and_freeze_flags(
        self,
        catalog: Any,
        installer: Installer,
        make_session: MakeSession,
        receipts: ReceiptStore,
    ) -> None:
        """Manual and freeze flags land on the receipt."""
        installer.install(make_session(), 10, admin="alice", manual=True, freeze=True)

        receipt = receipts.get("editor")
        assert receipt is not None
        assert receipt.manual
        assert receipt.frozen


class TestValidation:
    """Tests for pre-install validation."""

    def test_deprecated_refused(
        self, catalog: Any, installer: Installer, make_session: MakeSession, operator: Any
    ) -> None:
        """Deprecated packages are refused without force."""
        catalog.replace(10, status=VersionStatus.DEPRECATED)

        with pytest.raises(InstallError, match="deprecated"):
            installer.install(make_session(), 10, admin="alice")
        assert operator.installed == []

    def test_force_overrides(
        self, catalog: Any, installer: Installer, make_session: MakeSession, operator: Any
    ) -> None:
        """Force installs despite the refusal."""
        catalog.replace(10, status=VersionStatus.SKIPPED)

        installer.install(make_session(), 10, admin="alice", force=True)

        assert operator.installed == ["editor-10.pkg"]

    def test_ineligible_refused(
        self, catalog: Any, installer: Installer, make_session: MakeSession
    ) -> None:
        """Packages this machine cannot run are refused."""
        catalog.replace(10, required_processor="intel")

        with pytest.raises(InstallError, match="intel"):
            installer.install(make_session(), 10, admin="alice")

    def test_prohibiting_process_refused(
        self, catalog: Any, installer: Installer, make_session: MakeSession
    ) -> None:
        """A running prohibiting process blocks the install."""
        catalog.replace(10, prohibiting_processes=["Editor"])

        with (
            patch("fleetsync.core.installer.process_running", return_value=True),
            pytest.raises(InstallError, match="Editor"),
        ):
            installer.install(make_session(), 10, admin="alice")


class TestQueueing:
    """Tests for reboot-required packages."""

    def test_reboot_package_queued(
        self,
        catalog: Any,
        installer: Installer,
        make_session: MakeSession,
        operator: Any,
        puppies: PuppyQueue,
    ) -> None:
        """Reboot packages are queued with the install parameters."""
        catalog.replace(12, reboot=True)
        session = make_session()

        result = installer.install(session, 12, admin="alice", force=True, expiration=7)

        assert result.action == ActionType.QUEUE
        assert operator.installed == []
        assert session.queued == ["editor"]
        entry = puppies.get("editor")
        assert entry is not None
        assert (entry.package_id, entry.admin) == (12, "alice")
        assert entry.force
        assert entry.expiration == 7

    def test_walk_installs_and_dequeues(
        self,
        catalog: Any,
        installer: Installer,
        make_session: MakeSession,
        puppies: PuppyQueue,
        receipts: ReceiptStore,
    ) -> None:
        """Walking installs now and clears the queue entry it satisfies."""
        catalog.replace(12, reboot=True)
        installer.install(make_session(), 12, admin="alice")

        result = installer.install(make_session(), 12, admin="alice", walk=True)

        assert result.action == ActionType.INSTALL
        assert puppies.get("editor") is None
        receipt = receipts.get("editor")
        assert receipt is not None
        assert receipt.reboot


class TestScripts:
    """Tests for pre- and post-install scripts."""

    def test_scripts_run_around_install(
        self, catalog: Any, installer: Installer, make_session: MakeSession, operator: Any
    ) -> None:
        """Both scripts run with the edition."""
        catalog.replace(10, pre_install_script_id=1, post_install_script_id=2)

        installer.install(make_session(), 10, admin="alice")

        assert operator.scripts == [("preflight", "editor-1.10"), ("postflight", "editor-1.10")]

    def test_pre_install_failure_aborts(
        self,
        catalog: Any,
        installer: Installer,
        make_session: MakeSession,
        operator: Any,
        receipts: ReceiptStore,
    ) -> None:
        """A failing pre-install script prevents the install."""
        catalog.replace(10, pre_install_script_id=1)
        operator.failing_scripts.add("preflight")

        with pytest.raises(PreInstallError, match="preflight"):
            installer.install(make_session(), 10, admin="alice")

        assert operator.installed == []
        assert receipts.get("editor") is None

    def test_post_install_failure_keeps_receipt(
        self,
        catalog: Any,
        installer: Installer,
        make_session: MakeSession,
        operator: Any,
        receipts: ReceiptStore,
    ) -> None:
        """The package stays installed and recorded after a post-install failure."""
        catalog.replace(10, post_install_script_id=2)
        operator.failing_scripts.add("postflight")

        with pytest.raises(PostInstallError):
            installer.install(make_session(), 10, admin="alice")

        assert receipts.get("editor") is not None

    def test_unknown_script(
        self, catalog: Any, installer: Installer, make_session: MakeSession
    ) -> None:
        """A script id the server does not know is a consistency error."""
        catalog.replace(10, pre_install_script_id=42)

        with pytest.raises(CatalogConsistencyError):
            installer.install(make_session(), 10, admin="alice")

    def test_installer_failure(
        self,
        catalog: Any,
        installer: Installer,
        make_session: MakeSession,
        operator: Any,
        receipts: ReceiptStore,
    ) -> None:
        """An operator failure is an install error without a receipt."""
        operator.install_returncode = 1

        with pytest.raises(InstallError, match="exploded"):
            installer.install(make_session(), 10, admin="alice")

        assert receipts.get("editor") is None


class TestExpiration:
    """Tests for expiration values written to receipts."""

    def test_catalog_value(
        self,
        catalog: Any,
        installer: Installer,
        make_session: MakeSession,
        receipts: ReceiptStore,
    ) -> None:
        """Without overrides the catalog expiration is used."""
        catalog.replace(10, expiration=30)

        installer.install(make_session(), 10, admin="alice")

        receipt = receipts.get("editor")
        assert receipt is not None
        assert (receipt.expiration, receipt.custom_expiration) == (30, False)

    def test_override_wins(
        self,
        catalog: Any,
        installer: Installer,
        make_session: MakeSession,
        receipts: ReceiptStore,
    ) -> None:
        """An explicit override is stored as custom."""
        catalog.replace(10, expiration=30)

        installer.install(make_session(), 10, admin="alice", expiration=5)

        receipt = receipts.get("editor")
        assert receipt is not None
        assert (receipt.expiration, receipt.custom_expiration) == (5, True)

    def test_previous_custom_value_kept(
        self,
        catalog: Any,
        installer: Installer,
        make_session: MakeSession,
        receipts: ReceiptStore,
    ) -> None:
        """Updates keep a machine-local override."""
        catalog.replace(12, expiration=30)
        receipts.put(_receipt(10, expiration=5, custom_expiration=True))

        installer.install(make_session(), 12, admin="alice")

        receipt = receipts.get("editor")
        assert receipt is not None
        assert (receipt.expiration, receipt.custom_expiration) == (5, True)

    def test_non_removable_never_expires(
        self,
        catalog: Any,
        installer: Installer,
        make_session: MakeSession,
        receipts: ReceiptStore,
    ) -> None:
        """Non-removable packages get a zero window."""
        catalog.replace(10, expiration=30, removable=False)

        installer.install(make_session(), 10, admin="alice", expiration=5)

        receipt = receipts.get("editor")
        assert receipt is not None
        assert receipt.expiration == 0


class TestDownload:
    """Tests for distribution point selection."""

    def test_primary_used_first(
        self, catalog: Any, installer: Installer, make_session: MakeSession, dist_point: Any
    ) -> None:
        """The primary answers, the cloud is never asked."""
        session = make_session()
        installer.install(session, 10, admin="alice")

        assert [r.url.host for r in dist_point.requests] == ["dp.test"]
        assert session.primary_reachable is True

    def test_primary_404_is_download_error(
        self, catalog: Any, installer: Installer, make_session: MakeSession, dist_point: Any
    ) -> None:
        """A reachable primary without the file does not fall back."""
        dist_point.missing.add("editor-10.pkg")

        with pytest.raises(DownloadError):
            installer.install(make_session(), 10, admin="alice")
        assert {r.url.host for r in dist_point.requests} == {"dp.test"}

    def test_cloud_fallback(
        self,
        catalog: Any,
        installer: Installer,
        make_session: MakeSession,
        dist_point: Any,
        operator: Any,
    ) -> None:
        """An unreachable primary falls back to the cloud for the whole pass."""
        dist_point.primary_down = True
        session = make_session()

        installer.install(session, 10, admin="alice")
        installer.install(session, 12, admin="alice")

        assert operator.installed == ["editor-10.pkg", "editor-12.pkg"]
        assert [r.url.host for r in dist_point.requests].count("dp.test") == 1
        assert session.primary_reachable is False
        assert session.cloud_reachable is True

    def test_cloud_missing_file(
        self, catalog: Any, installer: Installer, make_session: MakeSession, dist_point: Any
    ) -> None:
        """A file absent from the cloud is a per-package download error."""
        dist_point.primary_down = True
        dist_point.missing.add("editor-10.pkg")

        with pytest.raises(DownloadError, match="cloud"):
            installer.install(make_session(), 10, admin="alice")

    def test_nothing_reachable(
        self, catalog: Any, installer: Installer, make_session: MakeSession, dist_point: Any
    ) -> None:
        """No reachable distribution point is fatal."""
        dist_point.primary_down = True
        dist_point.cloud_down = True

        with pytest.raises(NoDistributionPointError):
            installer.install(make_session(), 10, admin="alice")

    def test_cloud_disabled(
        self,
        catalog: Any,
        config: ClientConfig,
        operator: Any,
        receipts: ReceiptStore,
        puppies: PuppyQueue,
        dist_point: Any,
        make_session: MakeSession,
        tmp_path: Path,
    ) -> None:
        """Without a cloud fallback an unreachable primary is fatal."""
        dist_point.primary_down = True
        installer = Installer(
            config.model_copy(update={"try_cloud_distribution_point": False}),
            catalog,
            operator,
            receipts,
            puppies,
            http=dist_point.client(),
            download_dir=tmp_path / "downloads",
            show_progress=False,
        )

        with pytest.raises(NoDistributionPointError, match="no cloud"):
            installer.install(make_session(), 10, admin="alice")


class TestUninstall:
    """Tests for Installer.uninstall."""

    def test_uninstall(
        self, catalog: Any, installer: Installer, operator: Any, receipts: ReceiptStore
    ) -> None:
        """Files are removed by installer id and the receipt is deleted."""
        receipts.put(_receipt(pre_remove_script_id=3, post_remove_script_id=4))

        result = installer.uninstall("editor")

        assert result.action == ActionType.UNINSTALL
        assert operator.uninstalled == [["com.example.editor"]]
        assert operator.scripts == [("pre-remove", "editor-1.10"), ("post-remove", "editor-1.10")]
        assert receipts.get("editor") is None

    def test_not_installed(self, installer: Installer) -> None:
        """Uninstalling an unknown title fails."""
        with pytest.raises(UninstallError, match="not installed"):
            installer.uninstall("editor")

    def test_not_removable_needs_force(
        self, installer: Installer, receipts: ReceiptStore
    ) -> None:
        """Non-removable receipts need force."""
        receipts.put(_receipt(removable=False))

        with pytest.raises(UninstallError, match="not removable"):
            installer.uninstall("editor")

        installer.uninstall("editor", force=True)
        assert receipts.get("editor") is None

    def test_pre_remove_failure_keeps_receipt(
        self, catalog: Any, installer: Installer, operator: Any, receipts: ReceiptStore
    ) -> None:
        """A failing pre-remove script aborts the removal."""
        receipts.put(_receipt(pre_remove_script_id=3))
        operator.failing_scripts.add("pre-remove")

        with pytest.raises(UninstallError):
            installer.uninstall("editor")

        assert operator.uninstalled == []
        assert receipts.get("editor") is not None

    def test_post_remove_failure_only_warns(
        self, catalog: Any, installer: Installer, operator: Any, receipts: ReceiptStore
    ) -> None:
        """A failing post-remove script does not resurrect the receipt."""
        receipts.put(_receipt(post_remove_script_id=4))
        operator.failing_scripts.add("post-remove")

        installer.uninstall("editor")

        assert receipts.get("editor") is None

    def test_operator_failure_keeps_receipt(
        self, installer: Installer, operator: Any, receipts: ReceiptStore
    ) -> None:
        """Files that cannot be removed keep the receipt."""
        receipts.put(_receipt())
        operator.uninstall_returncode = 1

        with pytest.raises(UninstallError, match="files busy"):
            installer.uninstall("editor")

        assert receipts.get("editor") is not None

    def test_expire_action(self, installer: Installer, receipts: ReceiptStore) -> None:
        """The reported action can be expire."""
        receipts.put(_receipt())

        result = installer.uninstall("editor", action=ActionType.EXPIRE)

        assert result.action == ActionType.EXPIRE
