"""Package catalog client.

A ``CatalogSource`` fetches the server-declared data: the catalog
document, this machine's group memberships and install/remove scripts.
``load_snapshot()`` turns one fetch into an immutable ``CatalogSnapshot``
answering the questions the reconciler asks during a single pass. A new
pass must build a new snapshot; eligibility depends on group memberships
and pilot assignments that change between passes.
"""

import json
import logging
import platform
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

import httpx
from pydantic import ValidationError

from fleetsync.core.config import ClientConfig
from fleetsync.core.errors import (
    CatalogConsistencyError,
    CatalogUnavailableError,
    DownloadError,
)
from fleetsync.models.catalog import CatalogDocument, CatalogPackage, CatalogScript
from fleetsync.models.title import STANDARD_GROUP
from fleetsync.models.version import VersionStatus

logger = logging.getLogger(__name__)

# CPU architectures reported by platform.machine() for each processor type.
PROCESSOR_ARCHES: dict[str, frozenset[str]] = {
    "intel": frozenset({"x86_64", "i386", "amd64"}),
    "arm": frozenset({"arm64", "aarch64"}),
}

_OS_BOUND = re.compile(r"^(>=|<=)\s*(\d+(?:\.\d+)*)$")


# =============================================================================
# Machine facts and eligibility
# =============================================================================


@dataclass(frozen=True, slots=True)
class MachineFacts:
    """What the eligibility rules need to know about this machine.

    Attributes:
        os_version: Dotted OS version, e.g. "14.2.1".
        cpu: Architecture as reported by the OS, e.g. "arm64".
        groups: Machine group memberships from the server.
    """

    os_version: str
    cpu: str
    groups: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def detect(cls, groups: list[str] | None = None) -> "MachineFacts":
        """Facts for the running machine."""
        os_version = platform.mac_ver()[0] or platform.release()
        return cls(os_version=os_version, cpu=platform.machine(), groups=frozenset(groups or []))


def _version_tuple(version: str) -> tuple[int, ...]:
    parts: list[int] = []
    for part in version.split("."):
        digits = re.match(r"\d+", part)
        if digits is None:
            break
        parts.append(int(digits.group()))
    return tuple(parts)


def _pad(version: tuple[int, ...], length: int) -> tuple[int, ...]:
    return version + (0,) * (length - len(version))


def os_matches(oses: list[str], os_version: str) -> bool:
    """Check an OS version against a package's OS list.

    Entries like ``">=13"`` and ``"<=14.1"`` are bounds that must all hold.
    Plain entries like ``"14"`` match that version and its point releases;
    if any plain entries exist, at least one of them must match. An empty
    list matches every OS.
    """
    current = _version_tuple(os_version)
    plain: list[str] = []
    for entry in oses:
        bound = _OS_BOUND.match(entry.strip())
        if bound is None:
            plain.append(entry.strip())
            continue
        op, value = bound.groups()
        limit = _version_tuple(value)
        width = max(len(current), len(limit))
        if op == ">=" and _pad(current, width) < _pad(limit, width):
            return False
        if op == "<=" and current[: len(limit)] > limit:
            return False
    if not plain:
        return True
    return any(current[: len(_version_tuple(p))] == _version_tuple(p) for p in plain)


def processor_matches(required: str | None, cpu: str) -> bool:
    """Check a machine architecture against a package's processor requirement."""
    if required is None or required.lower() in ("", "none"):
        return True
    return cpu.lower() in PROCESSOR_ARCHES.get(required.lower(), frozenset())


def ineligibility_reason(package: CatalogPackage, facts: MachineFacts) -> str | None:
    """Describe why ``package`` cannot be installed here, or return None."""
    if not os_matches(package.oses, facts.os_version):
        return f"requires OS {', '.join(package.oses)}, this machine runs {facts.os_version}"
    if not processor_matches(package.required_processor, facts.cpu):
        return f"requires a {package.required_processor} processor, this machine is {facts.cpu}"
    excluded = facts.groups & set(package.excluded_groups)
    if excluded:
        return f"this machine is in excluded group(s) {', '.join(sorted(excluded))}"
    return None


# =============================================================================
# Sources
# =============================================================================


class CatalogSource(ABC):
    """Where catalog data comes from."""

    @abstractmethod
    def fetch_catalog(self) -> CatalogDocument:
        """Fetch the full catalog document.

        Raises:
            CatalogUnavailableError: If the catalog cannot be fetched.
        """

    @abstractmethod
    def fetch_groups(self, machine_id: str) -> list[str]:
        """Fetch the machine's group memberships.

        Raises:
            CatalogUnavailableError: If memberships cannot be fetched.
        """

    @abstractmethod
    def fetch_script(self, script_id: int) -> CatalogScript:
        """Fetch a script.

        Raises:
            CatalogConsistencyError: If the script does not exist.
            DownloadError: If the server cannot be reached.
        """


class HttpCatalogSource(CatalogSource):
    """Catalog served over HTTP by the fleet server.

    Every request is bounded by the configured connect/read timeouts and
    is tried once; a failed pass is retried by the next scheduled run.
    """

    def __init__(self, config: ClientConfig, client: httpx.Client | None = None) -> None:
        self._base_url = config.server_url
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(config.read_timeout, connect=config.connect_timeout),
            follow_redirects=True,
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def _get_json(self, path: str) -> object:
        response = self._client.get(f"{self._base_url}{path}")
        response.raise_for_status()
        return response.json()

    def fetch_catalog(self) -> CatalogDocument:
        try:
            data = self._get_json("/catalog")
            return CatalogDocument.model_validate(data)
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            msg = f"Cannot fetch catalog from {self._base_url}: {e}"
            raise CatalogUnavailableError(msg) from e
        except ValidationError as e:
            msg = f"Catalog from {self._base_url} is invalid: {e}"
            raise CatalogUnavailableError(msg) from e

    def fetch_groups(self, machine_id: str) -> list[str]:
        try:
            data = self._get_json(f"/computers/{machine_id}/groups")
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            msg = f"Cannot fetch groups for {machine_id}: {e}"
            raise CatalogUnavailableError(msg) from e
        if not isinstance(data, list) or not all(isinstance(g, str) for g in data):
            msg = f"Group list for {machine_id} is not a list of names"
            raise CatalogUnavailableError(msg)
        return data

    def fetch_script(self, script_id: int) -> CatalogScript:
        try:
            data = self._get_json(f"/scripts/{script_id}")
            return CatalogScript.model_validate(data)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                msg = f"Script {script_id} does not exist on the server"
                raise CatalogConsistencyError(msg) from e
            msg = f"Cannot fetch script {script_id}: {e}"
            raise DownloadError(msg) from e
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            msg = f"Cannot fetch script {script_id}: {e}"
            raise DownloadError(msg) from e
        except ValidationError as e:
            msg = f"Script {script_id} is malformed: {e}"
            raise CatalogConsistencyError(msg) from e


class FileCatalogSource(CatalogSource):
    """Catalog read from a published JSON document on disk.

    Scripts live next to the document as ``scripts/<id>.json``.
    """

    def __init__(self, path: Path, groups: list[str] | None = None) -> None:
        self._path = path
        self._groups = list(groups or [])

    def fetch_catalog(self) -> CatalogDocument:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return CatalogDocument.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            msg = f"Cannot read catalog {self._path}: {e}"
            raise CatalogUnavailableError(msg) from e

    def fetch_groups(self, machine_id: str) -> list[str]:
        return list(self._groups)

    def fetch_script(self, script_id: int) -> CatalogScript:
        script_path = self._path.parent / "scripts" / f"{script_id}.json"
        try:
            data = json.loads(script_path.read_text(encoding="utf-8"))
            return CatalogScript.model_validate(data)
        except FileNotFoundError as e:
            msg = f"Script {script_id} does not exist in {script_path.parent}"
            raise CatalogConsistencyError(msg) from e
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            msg = f"Cannot read script {script_id}: {e}"
            raise CatalogConsistencyError(msg) from e


# =============================================================================
# Snapshot
# =============================================================================


class CatalogSnapshot:
    """Immutable view of the catalog for one pass, from this machine's angle."""

    def __init__(self, document: CatalogDocument, facts: MachineFacts) -> None:
        self._facts = facts
        self._by_id: dict[int, CatalogPackage] = {p.package_id: p for p in document.packages}
        self._by_title: dict[str, list[CatalogPackage]] = {}
        for package in sorted(document.packages, key=lambda p: p.package_id):
            self._by_title.setdefault(package.title, []).append(package)
        self._auto_install = document.auto_install_sets()
        self._eligible = frozenset(
            p.package_id for p in document.packages if ineligibility_reason(p, facts) is None
        )

    @property
    def facts(self) -> MachineFacts:
        """Machine facts the snapshot was evaluated against."""
        return self._facts

    @property
    def titles(self) -> list[str]:
        """Titles with at least one package, sorted."""
        return sorted(self._by_title)

    @property
    def eligible_ids(self) -> frozenset[int]:
        """Package ids whose OS, CPU and exclusions allow this machine."""
        return self._eligible

    def package(self, package_id: int) -> CatalogPackage | None:
        """The package with ``package_id``, if it exists."""
        return self._by_id.get(package_id)

    def packages_for_title(self, title: str) -> list[CatalogPackage]:
        """All packages of ``title``, oldest package id first."""
        return list(self._by_title.get(title, []))

    def is_missing(self, package_id: int) -> bool:
        """Check if a package id is absent or its file is gone server-side."""
        package = self._by_id.get(package_id)
        return package is None or package.is_missing

    def released_id(self, title: str) -> int | None:
        """Package id of the released version of ``title``."""
        for package in self._by_title.get(title, []):
            if package.status == VersionStatus.RELEASED:
                return package.package_id
        return None

    def pilot_ids(self, title: str | None = None) -> list[int]:
        """Pilot package ids this machine is a pilot-group member for.

        Args:
            title: Restrict to one title; all titles when None.
        """
        titles = [title] if title is not None else self.titles
        ids: list[int] = []
        for name in titles:
            for package in self._by_title.get(name, []):
                if (
                    package.status == VersionStatus.PILOT
                    and self._facts.groups & set(package.pilot_groups)
                ):
                    ids.append(package.package_id)
        return ids

    def pilot_target_id(self, title: str) -> int | None:
        """Newest eligible pilot package of ``title`` newer than its release."""
        released = self.released_id(title) or 0
        candidates = [
            pid for pid in self.pilot_ids(title) if pid in self._eligible and pid > released
        ]
        return max(candidates) if candidates else None

    def target_id(self, title: str) -> int | None:
        """The package this machine should run: pilot target, else release."""
        return self.pilot_target_id(title) or self.released_id(title)

    def auto_install_ids(self, group: str) -> frozenset[int]:
        """Package ids marked for auto-install to ``group``."""
        return self._auto_install.get(group, frozenset())

    def install_groups(self) -> list[str]:
        """The implicit standard group followed by this machine's groups."""
        return [STANDARD_GROUP, *sorted(self._facts.groups - {STANDARD_GROUP})]

    def ineligibility_reason(self, package_id: int) -> str | None:
        """Why a package cannot be installed here, or None if it can."""
        package = self._by_id.get(package_id)
        if package is None:
            return f"package {package_id} does not exist"
        return ineligibility_reason(package, self._facts)


def load_snapshot(
    source: CatalogSource, machine_id: str, facts: MachineFacts | None = None
) -> CatalogSnapshot:
    """Fetch catalog and memberships and build this pass's snapshot.

    Args:
        source: Where to fetch from.
        machine_id: Machine whose groups to fetch.
        facts: Pre-detected facts; groups in it are replaced by the
            fetched memberships.

    Raises:
        CatalogUnavailableError: If the catalog or memberships cannot be fetched.
    """
    document = source.fetch_catalog()
    groups = source.fetch_groups(machine_id)
    base = facts or MachineFacts.detect()
    snapshot = CatalogSnapshot(
        document, MachineFacts(os_version=base.os_version, cpu=base.cpu, groups=frozenset(groups))
    )
    logger.info(
        "Loaded catalog: %d packages, %d eligible, groups %s",
        len(document.packages),
        len(snapshot.eligible_ids),
        ", ".join(sorted(groups)) or "(none)",
    )
    return snapshot
