"""Version models and the version lifecycle transition table.

A Version is one installable build of a Title. Its ``package_id`` is a
catalog-wide monotonic integer used for all ordering: version strings are
not reliably comparable, package ids are.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from fleetsync.core.errors import InvalidAttributeError, InvalidTransitionError
from fleetsync.models.changes import ChangeSet
from fleetsync.models.rules import (
    FieldRule,
    is_bool,
    matches,
    non_empty_string,
    positive_int,
    rule_violations,
    string_list,
    validate_field,
)


class VersionStatus(str, Enum):
    """Lifecycle status of a Version.

    Attributes:
        PENDING: Created, not yet available to anyone.
        PILOT: Available to pilot groups only.
        RELEASED: The version every eligible machine should run.
        DEPRECATED: Was released, superseded by a newer release.
        SKIPPED: Never released, superseded by a newer release.
        MISSING: Reported by the catalog when the package file is gone.
            Never produced by a lifecycle transition.
    """

    PENDING = "pending"
    PILOT = "pilot"
    RELEASED = "released"
    DEPRECATED = "deprecated"
    SKIPPED = "skipped"
    MISSING = "missing"


# Forward-only transitions. Deprecated, skipped and missing are terminal.
TRANSITIONS: dict[VersionStatus, frozenset[VersionStatus]] = {
    VersionStatus.PENDING: frozenset(
        {VersionStatus.PILOT, VersionStatus.RELEASED, VersionStatus.SKIPPED}
    ),
    VersionStatus.PILOT: frozenset({VersionStatus.RELEASED, VersionStatus.SKIPPED}),
    VersionStatus.RELEASED: frozenset({VersionStatus.DEPRECATED}),
    VersionStatus.DEPRECATED: frozenset(),
    VersionStatus.SKIPPED: frozenset(),
    VersionStatus.MISSING: frozenset(),
}

# Moves only a rollback may make: re-release an older build, and return
# every newer build to pilot.
ROLLBACK_TRANSITIONS: dict[VersionStatus, frozenset[VersionStatus]] = {
    VersionStatus.PENDING: frozenset({VersionStatus.RELEASED}),
    VersionStatus.PILOT: frozenset({VersionStatus.RELEASED}),
    VersionStatus.RELEASED: frozenset({VersionStatus.PILOT}),
    VersionStatus.DEPRECATED: frozenset({VersionStatus.RELEASED, VersionStatus.PILOT}),
    VersionStatus.SKIPPED: frozenset({VersionStatus.RELEASED, VersionStatus.PILOT}),
    VersionStatus.MISSING: frozenset(),
}

# Status -> name prefix of the write-once stamp fields set on entry.
_STAMPS: dict[VersionStatus, str] = {
    VersionStatus.PILOT: "piloted",
    VersionStatus.RELEASED: "released",
    VersionStatus.DEPRECATED: "deprecated",
    VersionStatus.SKIPPED: "skipped",
}

PROCESSORS = ("intel", "arm")
OS_VERSION_PATTERN = r"\d+(\.\d+)*"

VERSION_RULES: dict[str, FieldRule] = {
    "title": FieldRule(non_empty_string, "must name an existing title", immutable=True),
    "version": FieldRule(non_empty_string, "must be a non-empty string", immutable=True),
    "package_id": FieldRule(positive_int, "must be a positive integer", immutable=True),
    "filename": FieldRule(non_empty_string, "must be the installer file name"),
    "oses": FieldRule(string_list, "must be a list of OS versions such as '14' or '>=13'"),
    "min_os": FieldRule(matches(OS_VERSION_PATTERN), "must look like '13.4'", optional=True),
    "max_os": FieldRule(matches(OS_VERSION_PATTERN), "must look like '14.1'", optional=True),
    "required_processor": FieldRule(
        lambda v: v in PROCESSORS, f"must be one of {', '.join(PROCESSORS)}", optional=True
    ),
    "reboot": FieldRule(is_bool, "must be true or false"),
    "standalone": FieldRule(is_bool, "must be true or false"),
    "removable": FieldRule(is_bool, "must be true or false"),
    "killapps": FieldRule(string_list, "must be a list of application names"),
    "pilot_groups": FieldRule(string_list, "must be a list of machine group names"),
    "prohibiting_processes": FieldRule(string_list, "must be a list of process names"),
    "installer_ids": FieldRule(string_list, "must be a list of installer receipt ids"),
    "pre_install_script_id": FieldRule(positive_int, "must be a script id", optional=True),
    "post_install_script_id": FieldRule(positive_int, "must be a script id", optional=True),
    "pre_remove_script_id": FieldRule(positive_int, "must be a script id", optional=True),
    "post_remove_script_id": FieldRule(positive_int, "must be a script id", optional=True),
}


class Version(BaseModel):
    """One installable build of a Title.

    Status changes go through :meth:`transition` only, which consults the
    transition table and fills the write-once lifecycle stamps.
    """

    model_config = ConfigDict(extra="forbid")

    title: Annotated[str, Field(description="Title this version belongs to")]
    version: Annotated[str, Field(description="Human version string, unique within title")]
    package_id: Annotated[int, Field(description="Monotonic catalog-wide ordering id")]
    filename: Annotated[str, Field(description="Installer file on the distribution point")]
    status: VersionStatus = VersionStatus.PENDING
    oses: list[str] = Field(default_factory=list)
    min_os: str | None = None
    max_os: str | None = None
    required_processor: str | None = None
    reboot: bool = False
    standalone: bool = True
    removable: bool = True
    killapps: list[str] = Field(default_factory=list)
    pilot_groups: list[str] = Field(default_factory=list)
    prohibiting_processes: list[str] = Field(default_factory=list)
    installer_ids: list[str] = Field(default_factory=list)
    pre_install_script_id: int | None = None
    post_install_script_id: int | None = None
    pre_remove_script_id: int | None = None
    post_remove_script_id: int | None = None

    created_at: datetime | None = None
    created_by: str | None = None
    piloted_at: datetime | None = None
    piloted_by: str | None = None
    released_at: datetime | None = None
    released_by: str | None = None
    deprecated_at: datetime | None = None
    deprecated_by: str | None = None
    skipped_at: datetime | None = None
    skipped_by: str | None = None

    _changes: ChangeSet = PrivateAttr(default_factory=ChangeSet)

    @model_validator(mode="after")
    def validate_rules(self) -> "Version":
        """Apply the version rule table to every field."""
        problems = rule_violations(VERSION_RULES, self.__dict__)
        if problems:
            msg = f"Invalid version {self.title}-{self.version}: " + "; ".join(problems)
            raise ValueError(msg)
        return self

    @property
    def edition(self) -> str:
        """Unique textual identifier: title and version joined by a dash."""
        return f"{self.title}-{self.version}"

    @property
    def changes(self) -> ChangeSet:
        """Pending edits since the last publish."""
        return self._changes

    @property
    def was_released(self) -> bool:
        """Check if this version has ever been released."""
        return self.released_at is not None

    def update_attr(self, attr: str, value: Any) -> None:
        """Validate and set a single attribute, recording the change.

        Args:
            attr: Attribute name.
            value: New value.

        Raises:
            InvalidAttributeError: If the attribute is unknown, immutable,
                lifecycle-managed, or the value fails its rule.
        """
        if attr == "status" or attr.endswith(("_at", "_by")):
            msg = f"'{attr}' is managed by the version lifecycle"
            raise InvalidAttributeError(msg)
        if attr not in type(self).model_fields:
            msg = f"Unknown version attribute '{attr}'"
            raise InvalidAttributeError(msg)
        rule = VERSION_RULES.get(attr)
        if rule is not None and rule.immutable:
            msg = f"'{attr}' cannot be changed once the version exists"
            raise InvalidAttributeError(msg)
        validate_field(VERSION_RULES, attr, value)

        start = getattr(self, attr)
        if start == value:
            return
        setattr(self, attr, value)
        self._changes.note(attr, start, value)

    def transition(
        self,
        new_status: VersionStatus,
        actor: str,
        at: datetime | None = None,
        *,
        rollback: bool = False,
    ) -> None:
        """Move this version to a new lifecycle status.

        Args:
            new_status: Target status.
            actor: Login of the admin (or "system") causing the change.
            at: Timestamp; defaults to now.
            rollback: Use the rollback table instead of the forward table.

        Raises:
            InvalidTransitionError: If the move is not in the table.
        """
        table = ROLLBACK_TRANSITIONS if rollback else TRANSITIONS
        if new_status not in table[self.status]:
            kind = "rollback" if rollback else "transition"
            msg = (
                f"Invalid {kind} for {self.edition}: "
                f"{self.status.value} -> {new_status.value}"
            )
            raise InvalidTransitionError(msg)

        when = at or datetime.now(UTC)
        prefix = _STAMPS.get(new_status)
        if prefix is not None and getattr(self, f"{prefix}_at") is None:
            setattr(self, f"{prefix}_at", when)
            setattr(self, f"{prefix}_by", actor)

        self._changes.note("status", self.status, new_status)
        self.status = new_status
