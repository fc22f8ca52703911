"""Unit tests for version lifecycle administration."""

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from fleetsync.core.errors import (
    DuplicateVersionError,
    InvalidTransitionError,
    LifecycleError,
    NoSuchVersionError,
    ReleasedVersionDeleteError,
)
from fleetsync.core.lifecycle import LifecycleCatalog, TitleLifecycle
from fleetsync.models.title import Title
from fleetsync.models.version import VersionStatus as S

T0 = datetime(2026, 2, 1, tzinfo=UTC)


def _title(name: str = "editor", **overrides: object) -> Title:
    data: dict[str, object] = {
        "title": name,
        "display_name": name.capitalize(),
        "description": f"The {name} application used across the fleet",
        "publisher": "Example Inc.",
        "app_name": f"{name.capitalize()}.app",
        "app_bundle_id": f"com.example.{name}",
    }
    data.update(overrides)
    return Title(**data)


@pytest.fixture
def catalog() -> LifecycleCatalog:
    """Catalog holding an editor title with versions 1.0 to 4.0."""
    catalog = LifecycleCatalog(next_package_id=10)
    catalog.add_title(_title(target_groups=["standard"]), "alice", T0)
    for version in ("1.0", "2.0", "3.0", "4.0"):
        catalog.add_version("editor", version, f"editor-{version}.pkg", "alice", T0)
    return catalog


@pytest.fixture
def editor(catalog: LifecycleCatalog) -> TitleLifecycle:
    """The editor title of the catalog fixture."""
    return catalog.title("editor")


def _statuses(editor: TitleLifecycle) -> dict[str, S]:
    return {v.version: v.status for v in editor.versions}


class TestAddVersion:
    """Tests for LifecycleCatalog.add_version."""

    def test_package_ids_increase_across_titles(self, catalog: LifecycleCatalog) -> None:
        """Ids are allocated catalog-wide, never per title."""
        catalog.add_title(_title("mail"), "alice", T0)
        mail = catalog.add_version("mail", "1.0", "mail-1.0.pkg", "alice", T0)

        assert [v.package_id for v in catalog.title("editor").versions] == [10, 11, 12, 13]
        assert mail.package_id == 14

    def test_new_versions_are_pending(self, editor: TitleLifecycle) -> None:
        """Fresh versions start pending with creation stamps."""
        version = editor.version("1.0")

        assert version.status == S.PENDING
        assert version.created_by == "alice"
        assert version.created_at == T0

    def test_duplicate_version_rejected(self, catalog: LifecycleCatalog) -> None:
        """Version strings are unique within a title."""
        with pytest.raises(DuplicateVersionError):
            catalog.add_version("editor", "2.0", "again.pkg", "alice")

    def test_duplicate_does_not_consume_id(self, catalog: LifecycleCatalog) -> None:
        """A rejected version leaves the id counter alone."""
        with pytest.raises(DuplicateVersionError):
            catalog.add_version("editor", "2.0", "again.pkg", "alice")

        assert catalog.add_version("editor", "5.0", "e.pkg", "alice").package_id == 14

    def test_unknown_title(self, catalog: LifecycleCatalog) -> None:
        """Versions need an existing title."""
        with pytest.raises(LifecycleError, match="No such title"):
            catalog.add_version("mail", "1.0", "mail.pkg", "alice")

    def test_unknown_version_lookup(self, editor: TitleLifecycle) -> None:
        """Looking up a missing version raises."""
        with pytest.raises(NoSuchVersionError):
            editor.version("9.9")


class TestRelease:
    """Tests for TitleLifecycle.release."""

    def test_release_from_pending(self, editor: TitleLifecycle) -> None:
        """Pending versions may be released directly."""
        editor.release("2.0", "alice", T0)

        assert editor.released is editor.version("2.0")
        assert _statuses(editor) == {"1.0": S.SKIPPED, "2.0": S.RELEASED, "3.0": S.PENDING,
                                     "4.0": S.PENDING}

    def test_release_deprecates_previous(self, editor: TitleLifecycle) -> None:
        """Releasing a newer version deprecates the old release."""
        editor.release("1.0", "alice", T0)
        editor.pilot("3.0", "alice", T0)
        editor.release("3.0", "bob", T0)

        assert _statuses(editor) == {"1.0": S.DEPRECATED, "2.0": S.SKIPPED, "3.0": S.RELEASED,
                                     "4.0": S.PENDING}
        assert editor.version("1.0").deprecated_by == "bob"

    def test_newer_candidates_untouched(self, editor: TitleLifecycle) -> None:
        """Newer pilots stay in pilot when an older version is released."""
        editor.pilot("4.0", "alice", T0)
        editor.release("2.0", "alice", T0)

        assert editor.version("4.0").status == S.PILOT

    def test_only_one_release(self, editor: TitleLifecycle) -> None:
        """A title never has two released versions."""
        for version in ("1.0", "2.0", "3.0"):
            editor.release(version, "alice", T0)

        assert sum(1 for v in editor.versions if v.status == S.RELEASED) == 1

    def test_retired_older_version_rejected(self, editor: TitleLifecycle) -> None:
        """Deprecated versions come back only through a rollback."""
        editor.release("2.0", "alice", T0)
        editor.pilot("3.0", "alice", T0)
        editor.release("3.0", "alice", T0)

        with pytest.raises(InvalidTransitionError, match="rollback"):
            editor.release("2.0", "alice", T0)

    def test_older_candidate_released_as_rollback(self, editor: TitleLifecycle) -> None:
        """Releasing a candidate below the release rolls back to it."""
        editor.pilot("2.0", "alice", T0)
        editor.version("3.0").transition(S.RELEASED, "alice", T0)

        editor.release("2.0", "bob", T0)

        assert editor.released is editor.version("2.0")
        assert _statuses(editor) == {"1.0": S.SKIPPED, "2.0": S.RELEASED, "3.0": S.PILOT,
                                     "4.0": S.PENDING}

    def test_skipped_cannot_be_released(self, editor: TitleLifecycle) -> None:
        """Skipped versions are terminal going forward."""
        editor.release("2.0", "alice", T0)

        with pytest.raises(InvalidTransitionError, match="skipped"):
            editor.release("1.0", "alice", T0)


class TestRollback:
    """Tests for TitleLifecycle.rollback."""

    def test_rollback_rereleases_and_pilots_newer(self, editor: TitleLifecycle) -> None:
        """Newer retired versions return to pilot, newer candidates stay."""
        editor.release("1.0", "alice", T0)
        editor.release("2.0", "alice", T0)
        editor.release("3.0", "alice", T0)

        editor.rollback("1.0", "bob", T0)

        assert _statuses(editor) == {"1.0": S.RELEASED, "2.0": S.PILOT, "3.0": S.PILOT,
                                     "4.0": S.PENDING}

    def test_rollback_to_skipped(self, editor: TitleLifecycle) -> None:
        """A skipped version can be rolled back to."""
        editor.release("3.0", "alice", T0)

        editor.rollback("2.0", "bob", T0)

        assert editor.released is editor.version("2.0")
        assert editor.version("3.0").status == S.PILOT

    def test_rolled_back_pilot_can_release_again(self, editor: TitleLifecycle) -> None:
        """After a rollback the newer version can be released again."""
        editor.release("1.0", "alice", T0)
        editor.release("2.0", "alice", T0)
        editor.rollback("1.0", "bob", T0)

        editor.release("2.0", "alice", T0)

        assert _statuses(editor)["1.0"] == S.DEPRECATED
        assert _statuses(editor)["2.0"] == S.RELEASED

    def test_rollback_skips_older_candidates(self, editor: TitleLifecycle) -> None:
        """Never-released versions below the rollback target are skipped."""
        editor.pilot("1.0", "alice", T0)
        editor.version("3.0").transition(S.RELEASED, "alice", T0)

        editor.rollback("2.0", "bob", T0)

        assert _statuses(editor) == {"1.0": S.SKIPPED, "2.0": S.RELEASED, "3.0": S.PILOT,
                                     "4.0": S.PENDING}
        assert editor.version("1.0").skipped_by == "bob"

    def test_rollback_needs_older_version(self, editor: TitleLifecycle) -> None:
        """Rolling back forward is rejected."""
        editor.release("2.0", "alice", T0)

        with pytest.raises(InvalidTransitionError, match="not older"):
            editor.rollback("3.0", "alice", T0)

    def test_rollback_without_release(self, editor: TitleLifecycle) -> None:
        """There is nothing to roll back from without a release."""
        with pytest.raises(InvalidTransitionError):
            editor.rollback("1.0", "alice", T0)


class TestDeleteVersion:
    """Tests for TitleLifecycle.delete_version."""

    def test_delete_unreleased(self, editor: TitleLifecycle) -> None:
        """Pending versions can simply be deleted."""
        editor.delete_version("4.0", "alice")
        assert [v.version for v in editor.versions] == ["1.0", "2.0", "3.0"]

    def test_released_needs_replacement(self, editor: TitleLifecycle) -> None:
        """The release cannot vanish without a successor."""
        editor.release("2.0", "alice", T0)

        with pytest.raises(ReleasedVersionDeleteError):
            editor.delete_version("2.0", "alice")

    def test_newer_replacement_is_released(self, editor: TitleLifecycle) -> None:
        """A newer replacement is released first."""
        editor.release("2.0", "alice", T0)

        editor.delete_version("2.0", "alice", replacement="3.0")

        assert editor.released is editor.version("3.0")

    def test_older_replacement_is_rolled_back_to(self, editor: TitleLifecycle) -> None:
        """An older replacement is reached through a rollback."""
        editor.release("1.0", "alice", T0)
        editor.release("2.0", "alice", T0)

        editor.delete_version("2.0", "alice", replacement="1.0")

        assert editor.released is editor.version("1.0")
        assert "2.0" not in {v.version for v in editor.versions}


class TestCatalogDocument:
    """Tests for projecting the lifecycle catalog to clients."""

    def test_pending_versions_hidden(self, catalog: LifecycleCatalog) -> None:
        """Clients never see pending versions."""
        editor = catalog.title("editor")
        editor.pilot("3.0", "alice", T0)
        editor.release("2.0", "alice", T0)

        document = catalog.to_catalog_document()

        assert {p.version: p.status for p in document.packages} == {
            "1.0": S.SKIPPED,
            "2.0": S.RELEASED,
            "3.0": S.PILOT,
        }

    def test_auto_install_uses_release(self, catalog: LifecycleCatalog) -> None:
        """Target groups map to the released package id."""
        catalog.title("editor").release("2.0", "alice", T0)

        document = catalog.to_catalog_document()

        assert document.auto_install == {"standard": [11]}

    def test_os_bounds_projected(self, catalog: LifecycleCatalog) -> None:
        """min_os and max_os become version constraints."""
        editor = catalog.title("editor")
        editor.version("2.0").update_attr("min_os", "13")
        editor.release("2.0", "alice", T0)

        package = catalog.to_catalog_document().packages[-1]

        assert package.oses == [">=13"]

    def test_publish_writes_and_clears(self, catalog: LifecycleCatalog, tmp_path: Path) -> None:
        """publish() writes the document and returns the changelog once."""
        catalog.title("editor").release("2.0", "alice", T0)
        path = tmp_path / "catalog.json"

        changelog = catalog.publish(path)

        data = json.loads(path.read_text())
        assert [p["version"] for p in data["packages"]] == ["1.0", "2.0"]
        assert changelog["editor-2.0"]["status"]["new"] == "released"
        assert catalog.publish(path) == {}


class TestTitles:
    """Tests for adding and deleting titles."""

    def test_duplicate_title_rejected(self, catalog: LifecycleCatalog) -> None:
        with pytest.raises(LifecycleError, match="already exists"):
            catalog.add_title(_title(), "bob", T0)

    def test_delete_removes_versions(self, catalog: LifecycleCatalog) -> None:
        """Deleting a title drops all of its versions from the catalog."""
        catalog.title("editor").release("2.0", "alice", T0)

        deleted = catalog.delete_title("editor")

        assert len(deleted.versions) == 4
        assert catalog.to_catalog_document().packages == []
        with pytest.raises(LifecycleError, match="No such title"):
            catalog.title("editor")
