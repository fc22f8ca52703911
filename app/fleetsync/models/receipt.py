"""Receipt model: what is installed on this machine, one per title."""

from datetime import UTC, datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from fleetsync.models.version import VersionStatus


class Receipt(BaseModel):
    """Local record of one installed title.

    Attributes:
        title: Title identifier.
        package_id: Installed package id.
        version: Installed version string.
        status: Catalog status of the installed package, as last refreshed.
        admin: Who installed it (admin login, or the auto-install name).
        installed_at: When the installed package was put in place.
        frozen: Pinned against automatic updates and rollbacks.
        removable: Whether the package may be uninstalled.
        manual: Installed by an explicit install command rather than a sync.
        expiration: Days without foreground use before uninstall; 0 disables.
        custom_expiration: ``expiration`` is a machine-local override and
            must not be replaced by catalog refreshes.
        expiration_triggers: Bundle ids or paths counted as "in use".
        prohibiting_processes: Processes that block reinstalling this title.
        pre_remove_script_id: Script run before uninstalling.
        post_remove_script_id: Script run after uninstalling.
        installer_ids: OS package receipt ids used to remove installed files.
        reboot: Installed package required a reboot.
    """

    model_config = ConfigDict(extra="forbid")

    title: Annotated[str, Field(description="Title identifier")]
    package_id: Annotated[int, Field(description="Installed package id")]
    version: Annotated[str, Field(description="Installed version string")]
    status: VersionStatus = VersionStatus.RELEASED
    admin: str
    installed_at: Annotated[datetime, Field(default_factory=lambda: datetime.now(UTC))]
    frozen: bool = False
    removable: bool = True
    manual: bool = False
    expiration: Annotated[int, Field(ge=0)] = 0
    custom_expiration: bool = False
    expiration_triggers: list[str] = Field(default_factory=list)
    prohibiting_processes: list[str] = Field(default_factory=list)
    pre_remove_script_id: int | None = None
    post_remove_script_id: int | None = None
    installer_ids: list[str] = Field(default_factory=list)
    reboot: bool = False

    @property
    def edition(self) -> str:
        """Title and version joined by a dash."""
        return f"{self.title}-{self.version}"

    @property
    def is_missing(self) -> bool:
        """Check if the installed package vanished from the catalog."""
        return self.status == VersionStatus.MISSING

    @property
    def is_pilot(self) -> bool:
        """Check if a pilot build is installed."""
        return self.status == VersionStatus.PILOT

    @property
    def expires(self) -> bool:
        """Check if the expiration sweep applies to this receipt."""
        return (
            not self.frozen
            and self.removable
            and self.expiration > 0
            and bool(self.expiration_triggers)
        )
