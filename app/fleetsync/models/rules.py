"""Declarative validation rules for entity attributes.

Each entity (Title, Version) owns a table mapping field name to a
``FieldRule``. The same table drives model validation on load and the
individual attribute setters used by admin tooling.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from fleetsync.core.errors import InvalidAttributeError


@dataclass(frozen=True, slots=True)
class FieldRule:
    """Validation rule for a single attribute.

    Attributes:
        check: Predicate returning True for acceptable values.
        message: Explanation shown when the predicate fails.
        immutable: If True, the attribute cannot be changed after creation.
        optional: If True, None is always accepted.
    """

    check: Callable[[Any], bool]
    message: str
    immutable: bool = False
    optional: bool = False

    def accepts(self, value: Any) -> bool:
        """Check a value against this rule."""
        if value is None:
            return self.optional
        try:
            return bool(self.check(value))
        except (TypeError, AttributeError):
            return False


def matches(pattern: str) -> Callable[[Any], bool]:
    """Build a predicate matching strings against a full regex."""
    compiled = re.compile(pattern)
    return lambda v: isinstance(v, str) and compiled.fullmatch(v) is not None


def longer_than(length: int) -> Callable[[Any], bool]:
    """Build a predicate for strings strictly longer than ``length``."""
    return lambda v: isinstance(v, str) and len(v.strip()) > length


def non_negative_int(value: Any) -> bool:
    """Accept ints >= 0 (bools excluded)."""
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def positive_int(value: Any) -> bool:
    """Accept ints > 0 (bools excluded)."""
    return non_negative_int(value) and value > 0


def is_bool(value: Any) -> bool:
    """Accept real booleans only."""
    return isinstance(value, bool)


def string_list(value: Any) -> bool:
    """Accept lists of unique, non-empty strings."""
    if not isinstance(value, list):
        return False
    if not all(isinstance(v, str) and v.strip() for v in value):
        return False
    return len(set(value)) == len(value)


def non_empty_string(value: Any) -> bool:
    """Accept strings with visible content."""
    return isinstance(value, str) and bool(value.strip())


def validate_field(rules: dict[str, FieldRule], attr: str, value: Any) -> Any:
    """Validate one attribute value against its rule.

    Attributes without a rule are accepted unchanged.

    Args:
        rules: Rule table of the entity.
        attr: Attribute name.
        value: Candidate value.

    Returns:
        The value, unchanged.

    Raises:
        InvalidAttributeError: If the rule rejects the value.
    """
    rule = rules.get(attr)
    if rule is not None and not rule.accepts(value):
        msg = f"Invalid {attr} {value!r}: {rule.message}"
        raise InvalidAttributeError(msg)
    return value


def rule_violations(rules: dict[str, FieldRule], values: dict[str, Any]) -> list[str]:
    """Collect messages for every rule the given values violate."""
    problems: list[str] = []
    for attr, rule in rules.items():
        if attr in values and not rule.accepts(values[attr]):
            problems.append(f"{attr}: {rule.message}")
    return problems
