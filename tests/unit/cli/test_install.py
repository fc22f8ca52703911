"""Unit tests for install and uninstall commands."""

import json
from collections.abc import Callable, Iterator
from typing import Any
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from fleetsync.cli.main import app
from fleetsync.core.reconciler import Reconciler
from fleetsync.core.store import ReceiptStore
from fleetsync.models.catalog import CatalogPackage
from fleetsync.models.version import VersionStatus

runner = CliRunner()

MakePackage = Callable[..., CatalogPackage]


@pytest.fixture(autouse=True)
def wired(reconciler: Reconciler, source: Any, make_package: MakePackage) -> Iterator[None]:
    """Catalog with editor 10 (deprecated) and 12 (released)."""
    source.packages = [
        make_package(package_id=10, status=VersionStatus.DEPRECATED),
        make_package(package_id=12),
    ]
    with (
        patch("fleetsync.cli.commands.install.load_reconciler", return_value=reconciler),
        patch("fleetsync.cli.commands.uninstall.load_reconciler", return_value=reconciler),
        patch("fleetsync.core.reconciler.notify"),
    ):
        yield


class TestInstallCommand:
    """Tests for fleetsync install command."""

    def test_installs_release(self, receipts: ReceiptStore) -> None:
        result = runner.invoke(app, ["install", "editor"])

        assert result.exit_code == 0
        receipt = receipts.get("editor")
        assert receipt is not None
        assert (receipt.package_id, receipt.manual, receipt.frozen) == (12, True, False)

    def test_freeze_and_expiration(self, receipts: ReceiptStore) -> None:
        """--freeze and --custom-expiration land on the receipt."""
        result = runner.invoke(
            app, ["install", "editor", "--freeze", "--custom-expiration", "7", "--admin", "ana"]
        )

        assert result.exit_code == 0
        receipt = receipts.get("editor")
        assert receipt is not None
        assert receipt.frozen
        assert (receipt.expiration, receipt.custom_expiration) == (7, True)
        assert receipt.admin == "ana"

    def test_package_id_refused_for_deprecated(self) -> None:
        """Deprecated packages need --force."""
        result = runner.invoke(app, ["install", "editor", "--package-id", "10", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["summary"]["failed"] == 1

    def test_package_id_needs_single_title(self, source: Any) -> None:
        """--package-id with several titles is rejected before any fetch."""
        result = runner.invoke(app, ["install", "editor", "mail", "--package-id", "12"])

        assert result.exit_code == 1
        assert "single title" in result.output
        assert source.catalog_fetches == 0

    def test_unknown_title(self) -> None:
        result = runner.invoke(app, ["install", "nonexistent", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["results"][0]["status"] == "failed"


class TestUninstallCommand:
    """Tests for fleetsync uninstall command."""

    def test_removes_receipt(self, receipts: ReceiptStore, operator: Any) -> None:
        runner.invoke(app, ["install", "editor"])

        result = runner.invoke(app, ["uninstall", "editor"])

        assert result.exit_code == 0
        assert receipts.get("editor") is None
        assert operator.uninstalled == [["com.example.editor"]]

    def test_not_installed_is_failure(self) -> None:
        result = runner.invoke(app, ["uninstall", "editor", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["summary"]["failed"] == 1
