"""Pytest configuration and shared fixtures.

This module contains fixtures used across all test modules: isolated XDG
directories, catalog builders, a fake operator, an in-memory catalog
source and a mocked distribution point.
"""

from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import httpx
import pytest

from fleetsync.core.catalog import CatalogSnapshot, CatalogSource, MachineFacts
from fleetsync.core.config import ClientConfig
from fleetsync.core.errors import CatalogConsistencyError
from fleetsync.core.installer import Installer
from fleetsync.core.reconciler import Reconciler
from fleetsync.core.session import SyncOptions, SyncSession
from fleetsync.core.state import StateManager
from fleetsync.core.store import PuppyQueue, ReceiptStore, UsageLedger
from fleetsync.models.catalog import CatalogDocument, CatalogPackage, CatalogScript
from fleetsync.models.version import VersionStatus
from fleetsync.operators.base import Operator
from fleetsync.scanners.base import ForegroundApp, ForegroundScanner
from fleetsync.utils.shell import CommandResult

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class FakeOperator(Operator):
    """Operator that records calls instead of touching the system."""

    def __init__(self) -> None:
        super().__init__(dry_run=False)
        self.installed: list[str] = []
        self.uninstalled: list[list[str]] = []
        self.scripts: list[tuple[str, str]] = []
        self.install_returncode = 0
        self.uninstall_returncode = 0
        self.failing_scripts: set[str] = set()

    @property
    def name(self) -> str:
        return "fake"

    def is_available(self) -> bool:
        return True

    def install(self, package_file: Path) -> CommandResult:
        self.installed.append(package_file.name)
        if self.install_returncode:
            return CommandResult("", "installer exploded", self.install_returncode)
        return CommandResult("installed", "", 0)

    def uninstall(self, installer_ids: list[str]) -> CommandResult:
        self.uninstalled.append(list(installer_ids))
        if self.uninstall_returncode:
            return CommandResult("", "files busy", self.uninstall_returncode)
        return CommandResult("removed", "", 0)

    def run_script(self, script: CatalogScript, edition: str) -> CommandResult:
        self.scripts.append((script.name, edition))
        if script.name in self.failing_scripts:
            return CommandResult("", f"{script.name} failed", 1)
        return CommandResult("", "", 0)


class StaticCatalogSource(CatalogSource):
    """In-memory catalog source; tests edit ``packages`` between passes."""

    def __init__(
        self,
        packages: list[CatalogPackage] | None = None,
        groups: list[str] | None = None,
        auto_install: dict[str, list[int]] | None = None,
        scripts: dict[int, CatalogScript] | None = None,
    ) -> None:
        self.packages = list(packages or [])
        self.groups = list(groups or [])
        self.auto_install = auto_install
        self.scripts = dict(scripts or {})
        self.catalog_fetches = 0

    def fetch_catalog(self) -> CatalogDocument:
        self.catalog_fetches += 1
        return CatalogDocument(packages=list(self.packages), auto_install=self.auto_install)

    def fetch_groups(self, machine_id: str) -> list[str]:
        return list(self.groups)

    def fetch_script(self, script_id: int) -> CatalogScript:
        try:
            return self.scripts[script_id]
        except KeyError:
            msg = f"Script {script_id} does not exist"
            raise CatalogConsistencyError(msg) from None

    def replace(self, package_id: int, **changes: Any) -> None:
        """Swap one package for a copy with ``changes`` applied."""
        self.packages = [
            p.model_copy(update=changes) if p.package_id == package_id else p
            for p in self.packages
        ]


class FakeScanner(ForegroundScanner):
    """Scanner reporting a fixed frontmost application."""

    def __init__(self, app: ForegroundApp | None = None) -> None:
        self.app = app

    def is_available(self) -> bool:
        return True

    def frontmost(self) -> ForegroundApp | None:
        return self.app


class Clock:
    """Settable clock for time-dependent reconciliation."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class DistributionPoint:
    """Mocked primary and cloud distribution points."""

    def __init__(self) -> None:
        self.primary_down = False
        self.cloud_down = False
        self.missing: set[str] = set()
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        is_cloud = request.url.host == "cloud.test"
        if (is_cloud and self.cloud_down) or (not is_cloud and self.primary_down):
            raise httpx.ConnectError("connection refused", request=request)
        filename = request.url.path.rsplit("/", 1)[-1]
        if filename in self.missing:
            return httpx.Response(404)
        return httpx.Response(200, content=b"xar!" + filename.encode())

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every XDG directory at a temporary location."""
    for var in ("XDG_CONFIG_HOME", "XDG_STATE_HOME", "XDG_CACHE_HOME"):
        target = tmp_path / "xdg" / var.lower()
        monkeypatch.setenv(var, str(target))
    return tmp_path / "xdg"


@pytest.fixture
def make_package() -> Callable[..., CatalogPackage]:
    """Factory for catalog packages with sensible defaults."""

    def _make(title: str = "editor", package_id: int = 10, **overrides: Any) -> CatalogPackage:
        data: dict[str, Any] = {
            "title": title,
            "package_id": package_id,
            "version": f"1.{package_id}",
            "filename": f"{title}-{package_id}.pkg",
            "status": VersionStatus.RELEASED,
            "installer_ids": [f"com.example.{title}"],
        }
        data.update(overrides)
        return CatalogPackage.model_validate(data)

    return _make


@pytest.fixture
def config() -> ClientConfig:
    """Client config pointing at test hosts."""
    return ClientConfig(
        server_url="https://fleet.test/api",
        machine_id="mac-01",
        distribution_point_url="https://dp.test/packages",
        cloud_distribution_url="https://cloud.test/packages",
        try_cloud_distribution_point=True,
        expiration_notify_command=["notify-expired"],
        puppy_notify_command=["notify-puppies"],
    )


@pytest.fixture
def facts() -> MachineFacts:
    """A current Apple silicon machine."""
    return MachineFacts(os_version="14.2.1", cpu="arm64")


@pytest.fixture
def operator() -> FakeOperator:
    """Recording operator."""
    return FakeOperator()


@pytest.fixture
def source() -> StaticCatalogSource:
    """Empty in-memory catalog source."""
    return StaticCatalogSource()


@pytest.fixture
def clock() -> Clock:
    """Clock starting at a fixed instant."""
    return Clock()


@pytest.fixture
def dist_point() -> DistributionPoint:
    """Mocked distribution points, both reachable."""
    return DistributionPoint()


@pytest.fixture
def receipts(tmp_path: Path) -> ReceiptStore:
    """Receipt store in a temporary directory."""
    return ReceiptStore(tmp_path / "state" / "receipts.json")


@pytest.fixture
def puppies(tmp_path: Path) -> PuppyQueue:
    """Puppy queue in a temporary directory."""
    return PuppyQueue(tmp_path / "state" / "puppies.json")


@pytest.fixture
def usage(tmp_path: Path) -> UsageLedger:
    """Usage ledger in a temporary directory."""
    return UsageLedger(tmp_path / "state" / "usage.json")


@pytest.fixture
def scanner() -> FakeScanner:
    """Scanner with nothing in the foreground."""
    return FakeScanner()


@pytest.fixture
def installer(
    tmp_path: Path,
    config: ClientConfig,
    source: StaticCatalogSource,
    operator: FakeOperator,
    receipts: ReceiptStore,
    puppies: PuppyQueue,
    dist_point: DistributionPoint,
    clock: Clock,
) -> Iterator[Installer]:
    """Installer wired to the fakes and the mocked distribution point."""
    http = dist_point.client()
    yield Installer(
        config,
        source,
        operator,
        receipts,
        puppies,
        http=http,
        download_dir=tmp_path / "downloads",
        show_progress=False,
        clock=clock,
    )
    http.close()


@pytest.fixture
def reconciler(
    tmp_path: Path,
    config: ClientConfig,
    source: StaticCatalogSource,
    operator: FakeOperator,
    receipts: ReceiptStore,
    puppies: PuppyQueue,
    usage: UsageLedger,
    scanner: FakeScanner,
    installer: Installer,
    facts: MachineFacts,
    clock: Clock,
) -> Reconciler:
    """Reconciler wired to the fakes, with history in a temp directory."""
    return Reconciler(
        config,
        source,
        operator,
        receipts=receipts,
        puppies=puppies,
        usage=usage,
        scanner=scanner,
        history=StateManager(tmp_path / "state"),
        installer=installer,
        facts=facts,
        clock=clock,
    )


@pytest.fixture
def make_session(
    source: StaticCatalogSource, facts: MachineFacts, clock: Clock
) -> Callable[..., SyncSession]:
    """Factory for a session over the current source contents."""

    def _make(**options: Any) -> SyncSession:
        document = source.fetch_catalog()
        snapshot = CatalogSnapshot(
            document,
            MachineFacts(
                os_version=facts.os_version, cpu=facts.cpu, groups=frozenset(source.groups)
            ),
        )
        return SyncSession(options=SyncOptions(**options), snapshot=snapshot, started_at=clock())

    return _make
