"""Version lifecycle administration.

Governs which version of a title is live. Each title has at most one
released version. Releasing a newer version deprecates the previously
released one and skips older versions that never made it to release;
newer candidates are left alone. The only way back is an explicit
rollback, which re-releases an older version and returns every newer
version that had left the candidate states to pilot.

``LifecycleCatalog`` holds all titles, allocates package ids and projects
everything into the catalog document clients consume.
"""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from fleetsync.core.errors import (
    DuplicateVersionError,
    InvalidAttributeError,
    InvalidTransitionError,
    LifecycleError,
    NoSuchVersionError,
    ReleasedVersionDeleteError,
)
from fleetsync.core.store import write_atomic
from fleetsync.models.catalog import CatalogDocument, CatalogPackage
from fleetsync.models.title import Title
from fleetsync.models.version import Version, VersionStatus

logger = logging.getLogger(__name__)

_CANDIDATES = frozenset({VersionStatus.PENDING, VersionStatus.PILOT})
_RETIRED = frozenset(
    {VersionStatus.RELEASED, VersionStatus.DEPRECATED, VersionStatus.SKIPPED}
)


def _now(at: datetime | None) -> datetime:
    return at or datetime.now(UTC)


class TitleLifecycle:
    """A title together with its versions, ordered by package id."""

    def __init__(self, title: Title, versions: list[Version] | None = None) -> None:
        self.title = title
        self._versions: dict[str, Version] = {}
        for version in versions or []:
            self._versions[version.version] = version

    @property
    def name(self) -> str:
        """Title identifier."""
        return self.title.title

    @property
    def versions(self) -> list[Version]:
        """All versions, oldest package id first."""
        return sorted(self._versions.values(), key=lambda v: v.package_id)

    @property
    def released(self) -> Version | None:
        """The released version, if any."""
        for version in self._versions.values():
            if version.status == VersionStatus.RELEASED:
                return version
        return None

    def version(self, version: str) -> Version:
        """Look up a version by version string.

        Raises:
            NoSuchVersionError: If the title has no such version.
        """
        try:
            return self._versions[version]
        except KeyError:
            msg = f"Title '{self.name}' has no version '{version}'"
            raise NoSuchVersionError(msg) from None

    def add(self, version: Version) -> Version:
        """Attach a new version.

        Raises:
            DuplicateVersionError: If the version string already exists.
            InvalidAttributeError: If the version belongs to another title.
        """
        if version.title != self.name:
            msg = f"Version {version.edition} does not belong to title '{self.name}'"
            raise InvalidAttributeError(msg)
        if version.version in self._versions:
            msg = f"Title '{self.name}' already has version '{version.version}'"
            raise DuplicateVersionError(msg)
        self._versions[version.version] = version
        return version

    def pilot(self, version: str, actor: str, at: datetime | None = None) -> Version:
        """Make a pending version available to its pilot groups."""
        target = self.version(version)
        target.transition(VersionStatus.PILOT, actor, _now(at))
        logger.info("%s is now in pilot (by %s)", target.edition, actor)
        return target

    def release(self, version: str, actor: str, at: datetime | None = None) -> Version:
        """Release a pending or pilot version.

        The previously released version becomes deprecated. Older versions
        that were never released become skipped; newer candidates stay as
        they are. A candidate older than the current release is released
        through :meth:`rollback`.

        Raises:
            InvalidTransitionError: If the version is not a candidate.
        """
        when = _now(at)
        target = self.version(version)
        current = self.released

        if target.status not in _CANDIDATES:
            msg = (
                f"Cannot release {target.edition}: status is {target.status.value}"
                + (", use rollback" if target.status in _RETIRED else "")
            )
            raise InvalidTransitionError(msg)
        if current is not None and target.package_id < current.package_id:
            return self.rollback(version, actor, when)

        target.transition(VersionStatus.RELEASED, actor, when)
        if current is not None:
            current.transition(VersionStatus.DEPRECATED, actor, when)
        self._skip_older_candidates(target, actor, when)

        logger.info("Released %s (by %s)", target.edition, actor)
        return target

    def rollback(self, version: str, actor: str, at: datetime | None = None) -> Version:
        """Re-release a version older than the current release.

        Every newer version that is released, deprecated or skipped is reset
        to pilot so it can be released again later. Older versions that
        were never released become skipped.

        Raises:
            InvalidTransitionError: If the version is not older than the
                current release.
        """
        when = _now(at)
        target = self.version(version)
        current = self.released
        if current is None or target.package_id >= current.package_id:
            msg = f"Cannot roll back to {target.edition}: it is not older than the release"
            raise InvalidTransitionError(msg)

        target.transition(VersionStatus.RELEASED, actor, when, rollback=True)
        for other in self.versions:
            if other.package_id > target.package_id and other.status in _RETIRED:
                other.transition(VersionStatus.PILOT, actor, when, rollback=True)
        self._skip_older_candidates(target, actor, when)

        logger.info("Rolled %s back to %s (by %s)", self.name, target.edition, actor)
        return target

    def _skip_older_candidates(self, released: Version, actor: str, at: datetime) -> None:
        for other in self.versions:
            if other.package_id < released.package_id and other.status in _CANDIDATES:
                other.transition(VersionStatus.SKIPPED, actor, at)

    def delete_version(
        self,
        version: str,
        actor: str,
        replacement: str | None = None,
        at: datetime | None = None,
    ) -> Version:
        """Delete a version.

        Any non-released version can be deleted. Deleting the released
        version requires a replacement, which is released (or rolled back
        to, if older) before the deletion.

        Raises:
            ReleasedVersionDeleteError: If deleting the release without a
                replacement.
        """
        target = self.version(version)
        if target.status == VersionStatus.RELEASED:
            if replacement is None or replacement == version:
                msg = f"Cannot delete released {target.edition} without a replacement"
                raise ReleasedVersionDeleteError(msg)
            new = self.version(replacement)
            if new.package_id > target.package_id:
                self.release(replacement, actor, at)
            else:
                self.rollback(replacement, actor, at)

        del self._versions[version]
        logger.info("Deleted %s (by %s)", target.edition, actor)
        return target

    def changelog(self) -> dict[str, Any]:
        """Pending changes of the title and its versions."""
        log: dict[str, Any] = {}
        if self.title.changes:
            log[self.name] = self.title.changes.to_dict()
        for version in self.versions:
            if version.changes:
                log[version.edition] = version.changes.to_dict()
        return log

    def clear_changes(self) -> None:
        """Forget pending changes after they were published."""
        self.title.changes.clear()
        for version in self._versions.values():
            version.changes.clear()

    def to_packages(self) -> list[CatalogPackage]:
        """Catalog records for every version clients may know about."""
        title = self.title
        packages: list[CatalogPackage] = []
        for version in self.versions:
            if version.status == VersionStatus.PENDING:
                continue
            oses = list(version.oses)
            if version.min_os:
                oses.append(f">={version.min_os}")
            if version.max_os:
                oses.append(f"<={version.max_os}")
            packages.append(
                CatalogPackage(
                    title=title.title,
                    package_id=version.package_id,
                    version=version.version,
                    filename=version.filename,
                    status=version.status,
                    oses=oses,
                    required_processor=version.required_processor,
                    excluded_groups=list(title.excluded_groups),
                    auto_groups=list(title.target_groups),
                    pilot_groups=list(version.pilot_groups),
                    reboot=version.reboot,
                    removable=version.removable,
                    expiration=title.expiration,
                    expiration_bundle_ids=list(title.expiration_triggers),
                    prohibiting_processes=list(version.prohibiting_processes),
                    pre_install_script_id=version.pre_install_script_id,
                    post_install_script_id=version.post_install_script_id,
                    pre_remove_script_id=version.pre_remove_script_id,
                    post_remove_script_id=version.post_remove_script_id,
                    installer_ids=list(version.installer_ids),
                )
            )
        return packages


class LifecycleCatalog:
    """Every title and version known to the server side.

    Package ids are allocated here so they increase monotonically across
    the whole catalog, never per title.
    """

    def __init__(self, next_package_id: int = 1) -> None:
        self._titles: dict[str, TitleLifecycle] = {}
        self._next_id = next_package_id

    @property
    def titles(self) -> list[TitleLifecycle]:
        """All titles, sorted by name."""
        return [self._titles[name] for name in sorted(self._titles)]

    def title(self, name: str) -> TitleLifecycle:
        """Look up a title.

        Raises:
            LifecycleError: If the title does not exist.
        """
        try:
            return self._titles[name]
        except KeyError:
            msg = f"No such title '{name}'"
            raise LifecycleError(msg) from None

    def add_title(self, title: Title, actor: str, at: datetime | None = None) -> TitleLifecycle:
        """Register a new title.

        Raises:
            LifecycleError: If a title with that name exists.
        """
        if title.title in self._titles:
            msg = f"Title '{title.title}' already exists"
            raise LifecycleError(msg)
        title.created_at = _now(at)
        title.created_by = actor
        lifecycle = TitleLifecycle(title)
        self._titles[title.title] = lifecycle
        logger.info("Added title %s (by %s)", title.title, actor)
        return lifecycle

    def delete_title(self, name: str) -> TitleLifecycle:
        """Remove a title and all of its versions."""
        lifecycle = self.title(name)
        del self._titles[name]
        logger.info("Deleted title %s with %d versions", name, len(lifecycle.versions))
        return lifecycle

    def add_version(
        self,
        title: str,
        version: str,
        filename: str,
        actor: str,
        at: datetime | None = None,
        **attrs: Any,
    ) -> Version:
        """Create a pending version with the next package id.

        Raises:
            DuplicateVersionError: If the version string exists in the title.
        """
        lifecycle = self.title(title)
        if version in {v.version for v in lifecycle.versions}:
            msg = f"Title '{title}' already has version '{version}'"
            raise DuplicateVersionError(msg)
        try:
            new = Version(
                title=title,
                version=version,
                filename=filename,
                package_id=self._next_id,
                created_at=_now(at),
                created_by=actor,
                **attrs,
            )
        except ValueError as e:
            raise InvalidAttributeError(str(e)) from e
        self._next_id += 1
        return lifecycle.add(new)

    def to_catalog_document(self) -> CatalogDocument:
        """Project every title into the client catalog format."""
        packages: list[CatalogPackage] = []
        auto_install: dict[str, list[int]] = {}
        for lifecycle in self.titles:
            packages.extend(lifecycle.to_packages())
            released = lifecycle.released
            if released is None:
                continue
            for group in lifecycle.title.target_groups:
                auto_install.setdefault(group, []).append(released.package_id)
        return CatalogDocument(packages=packages, auto_install=auto_install)

    def publish(self, path: Path) -> dict[str, Any]:
        """Write the catalog document to ``path`` and clear pending changes.

        Returns:
            The changelog that was published, keyed by title or edition.
        """
        document = self.to_catalog_document()
        write_atomic(path, json.dumps(document.model_dump(mode="json"), indent=2).encode())
        changelog: dict[str, Any] = {}
        for lifecycle in self.titles:
            changelog.update(lifecycle.changelog())
            lifecycle.clear_changes()
        logger.info("Published catalog with %d packages to %s", len(document.packages), path)
        return changelog
