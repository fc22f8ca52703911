"""Title model: the administrative identity of a managed software product."""

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from fleetsync.core.errors import InvalidAttributeError
from fleetsync.models.changes import ChangeSet
from fleetsync.models.rules import (
    FieldRule,
    is_bool,
    longer_than,
    matches,
    non_empty_string,
    non_negative_int,
    rule_violations,
    string_list,
    validate_field,
)

# Group name meaning "every machine that is not excluded".
STANDARD_GROUP = "standard"

TITLE_PATTERN = r"[a-z0-9-][a-z0-9-]+"


def _trimmed_name(value: Any) -> bool:
    return isinstance(value, str) and len(value) >= 3 and value == value.strip()


TITLE_RULES: dict[str, FieldRule] = {
    "title": FieldRule(
        matches(TITLE_PATTERN),
        "must be at least two lowercase letters, digits or dashes",
        immutable=True,
    ),
    "display_name": FieldRule(
        _trimmed_name, "must be at least three characters without surrounding spaces"
    ),
    "publisher": FieldRule(
        _trimmed_name, "must be at least three characters without surrounding spaces"
    ),
    "description": FieldRule(longer_than(20), "must be more than 20 characters long"),
    "app_name": FieldRule(
        lambda v: isinstance(v, str) and v.endswith(".app") and len(v) > 4,
        "must end with .app",
        optional=True,
    ),
    "app_bundle_id": FieldRule(
        lambda v: isinstance(v, str) and "." in v.strip(".") and " " not in v,
        "must be a reverse-DNS bundle id such as com.example.editor",
        optional=True,
    ),
    "version_script": FieldRule(non_empty_string, "must contain script code", optional=True),
    "target_groups": FieldRule(string_list, "must be a list of machine group names"),
    "excluded_groups": FieldRule(string_list, "must be a list of machine group names"),
    "self_service": FieldRule(is_bool, "must be true or false"),
    "expiration": FieldRule(non_negative_int, "must be a whole number of days, 0 for never"),
    "expiration_triggers": FieldRule(string_list, "must be a list of bundle ids or paths"),
}


class Title(BaseModel):
    """A managed software product.

    Installed software is identified either by ``app_name`` together with
    ``app_bundle_id`` or by a ``version_script``, never both.
    """

    model_config = ConfigDict(extra="forbid")

    title: Annotated[str, Field(description="Unique lowercase identifier")]
    display_name: str
    description: str
    publisher: str
    app_name: str | None = None
    app_bundle_id: str | None = None
    version_script: str | None = None
    target_groups: list[str] = Field(default_factory=list)
    excluded_groups: list[str] = Field(default_factory=list)
    self_service: bool = False
    expiration: int = 0
    expiration_triggers: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    created_by: str | None = None

    _changes: ChangeSet = PrivateAttr(default_factory=ChangeSet)

    @model_validator(mode="after")
    def validate_rules(self) -> "Title":
        """Apply the rule table and the identification rule."""
        problems = rule_violations(TITLE_RULES, self.__dict__)
        ident = identification_problem(self.app_name, self.app_bundle_id, self.version_script)
        if ident:
            problems.append(ident)
        if problems:
            msg = f"Invalid title {self.title!r}: " + "; ".join(problems)
            raise ValueError(msg)
        return self

    @property
    def changes(self) -> ChangeSet:
        """Pending edits since the last publish."""
        return self._changes

    @property
    def auto_install_everywhere(self) -> bool:
        """Check if the title targets every non-excluded machine."""
        return STANDARD_GROUP in self.target_groups

    def update_attr(self, attr: str, value: Any) -> None:
        """Validate and set one attribute, recording it in the change-set.

        Raises:
            InvalidAttributeError: If the attribute is unknown or immutable,
                or the new value breaks a rule.
        """
        if attr not in TITLE_RULES:
            msg = f"Unknown or read-only title attribute '{attr}'"
            raise InvalidAttributeError(msg)
        if TITLE_RULES[attr].immutable:
            msg = f"'{attr}' cannot be changed once the title exists"
            raise InvalidAttributeError(msg)
        validate_field(TITLE_RULES, attr, value)

        pending = {
            "app_name": self.app_name,
            "app_bundle_id": self.app_bundle_id,
            "version_script": self.version_script,
            attr: value,
        }
        ident = identification_problem(
            pending["app_name"], pending["app_bundle_id"], pending["version_script"]
        )
        if ident:
            raise InvalidAttributeError(ident)

        start = getattr(self, attr)
        if start == value:
            return
        setattr(self, attr, value)
        self._changes.note(attr, start, value)

    def set_identification(
        self,
        app_name: str | None = None,
        app_bundle_id: str | None = None,
        version_script: str | None = None,
    ) -> None:
        """Switch identification method in one step.

        Changing between app-based and script-based identification touches
        several attributes at once, which single-attribute setters cannot do
        without passing through an invalid state.
        """
        ident = identification_problem(app_name, app_bundle_id, version_script)
        if ident:
            raise InvalidAttributeError(ident)
        new_values = {
            "app_name": app_name,
            "app_bundle_id": app_bundle_id,
            "version_script": version_script,
        }
        for attr, value in new_values.items():
            validate_field(TITLE_RULES, attr, value)
        for attr, value in new_values.items():
            start = getattr(self, attr)
            if start != value:
                setattr(self, attr, value)
                self._changes.note(attr, start, value)


def identification_problem(
    app_name: str | None, app_bundle_id: str | None, version_script: str | None
) -> str | None:
    """Describe a violation of the identification rule, or return None."""
    has_app = app_name is not None or app_bundle_id is not None
    if has_app and version_script is not None:
        return "identify by app name and bundle id, or by version script, not both"
    if has_app and (app_name is None or app_bundle_id is None):
        return "app name and bundle id must be given together"
    if not has_app and version_script is None:
        return "needs app name and bundle id, or a version script"
    return None
