"""Wire models for the package catalog served to clients.

The catalog document is what ``GET /catalog`` returns and what
``LifecycleCatalog.to_catalog_document()`` produces::

    {
        "packages": [{"title": "editor", "package_id": 12, ...}, ...],
        "auto_install": {"standard": [12], "design": [14]}
    }
"""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fleetsync.models.title import STANDARD_GROUP
from fleetsync.models.version import VersionStatus


class CatalogPackage(BaseModel):
    """One package (version of a title) as the client sees it."""

    model_config = ConfigDict(extra="ignore")

    title: str
    package_id: Annotated[int, Field(gt=0)]
    version: str
    filename: str
    status: VersionStatus
    oses: list[str] = Field(default_factory=list)
    required_processor: str | None = None
    excluded_groups: list[str] = Field(default_factory=list)
    auto_groups: list[str] = Field(default_factory=list)
    pilot_groups: list[str] = Field(default_factory=list)
    reboot: bool = False
    removable: bool = True
    expiration: Annotated[int, Field(ge=0)] = 0
    expiration_bundle_ids: list[str] = Field(default_factory=list)
    prohibiting_processes: list[str] = Field(default_factory=list)
    pre_install_script_id: int | None = None
    post_install_script_id: int | None = None
    pre_remove_script_id: int | None = None
    post_remove_script_id: int | None = None
    installer_ids: list[str] = Field(default_factory=list)

    @property
    def edition(self) -> str:
        """Title and version joined by a dash."""
        return f"{self.title}-{self.version}"

    @property
    def is_missing(self) -> bool:
        """Check if the package file is gone server-side."""
        return self.status == VersionStatus.MISSING


class CatalogDocument(BaseModel):
    """The full catalog: every package plus per-group auto-install sets."""

    model_config = ConfigDict(extra="ignore")

    packages: list[CatalogPackage] = Field(default_factory=list)
    auto_install: dict[str, list[int]] | None = None

    @model_validator(mode="after")
    def validate_unique_ids(self) -> "CatalogDocument":
        """Reject documents listing the same package id twice."""
        seen: set[int] = set()
        for package in self.packages:
            if package.package_id in seen:
                msg = f"Package id {package.package_id} appears more than once"
                raise ValueError(msg)
            seen.add(package.package_id)
        return self

    def auto_install_sets(self) -> dict[str, frozenset[int]]:
        """Per-group auto-install package ids.

        Uses the explicit ``auto_install`` mapping when the server sent one,
        otherwise derives it from each package's ``auto_groups``.
        """
        if self.auto_install is not None:
            return {group: frozenset(ids) for group, ids in self.auto_install.items()}
        derived: dict[str, set[int]] = {}
        for package in self.packages:
            for group in package.auto_groups:
                derived.setdefault(group, set()).add(package.package_id)
        derived.setdefault(STANDARD_GROUP, set())
        return {group: frozenset(ids) for group, ids in derived.items()}


class CatalogScript(BaseModel):
    """A pre/post install or remove script served by ``GET /scripts/{id}``."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    code: str
