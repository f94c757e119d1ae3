"""Field-level schema checks — one coercion-then-check pipeline per field."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, NamedTuple

from roster_rescue import ENTITY_TYPES
from roster_rescue.models import Dataset, ValidationIssue
from roster_rescue.utils import is_nan, is_number, parse_number

logger = logging.getLogger(__name__)

_MISSING = object()


class Coerced(NamedTuple):
    """Tagged result of coercing one cell: ``ok`` plus value or message."""

    ok: bool
    value: Any = None
    message: str = ""


def _ok(value: Any) -> Coerced:
    return Coerced(True, value)


def _fail(message: str) -> Coerced:
    return Coerced(False, message=message)


def _kind(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def _is_absent(value: Any) -> bool:
    if value is _MISSING or value is None:
        return True
    # NaN from spreadsheet readers, numpy or not
    return is_nan(value)


# ── Coercions ────────────────────────────────────────────────────


def _required_string(value: Any) -> Coerced:
    if _is_absent(value):
        return _fail("Required")
    if not isinstance(value, str):
        return _fail(f"Expected string, received {_kind(value)}")
    if not value:
        return _fail("Must be a non-empty string")
    return _ok(value)


def _optional_string(default: str | None) -> Callable[[Any], Coerced]:
    def coerce(value: Any) -> Coerced:
        if _is_absent(value):
            return _ok(default)
        if not isinstance(value, str):
            return _fail(f"Expected string, received {_kind(value)}")
        return _ok(value)

    return coerce


def _integer(value: Any) -> Coerced:
    number = None if _is_absent(value) else parse_number(value)
    if number is None:
        shown = "nothing" if _is_absent(value) else repr(value)
        return _fail(f"Expected number, received {shown}")
    if not number.is_integer():
        return _fail("Expected integer, received float")
    return _ok(int(number))


# ── Checks ───────────────────────────────────────────────────────


def _at_least(minimum: int) -> Callable[[Any], str | None]:
    def check(value: int) -> str | None:
        if value < minimum:
            return f"Number must be greater than or equal to {minimum}"
        return None

    return check


def _between(minimum: int, maximum: int) -> Callable[[Any], str | None]:
    lower = _at_least(minimum)

    def check(value: int) -> str | None:
        if value > maximum:
            return f"Number must be less than or equal to {maximum}"
        return lower(value)

    return check


@dataclass(frozen=True)
class FieldSpec:
    name: str
    coerce: Callable[[Any], Coerced]
    check: Callable[[Any], str | None] | None = None

    def apply(self, row: Mapping[str, Any]) -> Coerced:
        result = self.coerce(row.get(self.name, _MISSING))
        if not result.ok or self.check is None:
            return result
        message = self.check(result.value)
        return _fail(message) if message else result


SCHEMAS: dict[str, tuple[FieldSpec, ...]] = {
    "clients": (
        FieldSpec("ClientID", _required_string),
        FieldSpec("ClientName", _required_string),
        FieldSpec("PriorityLevel", _integer, _between(1, 5)),
        FieldSpec("RequestedTaskIDs", _optional_string("")),
        FieldSpec("GroupTag", _optional_string(None)),
        FieldSpec("AttributesJSON", _optional_string(None)),
    ),
    "workers": (
        FieldSpec("WorkerID", _required_string),
        FieldSpec("WorkerName", _required_string),
        FieldSpec("Skills", _optional_string("")),
        FieldSpec("AvailableSlots", _optional_string("[]")),
        FieldSpec("MaxLoadPerPhase", _integer, _at_least(0)),
        FieldSpec("WorkerGroup", _optional_string(None)),
        FieldSpec("QualificationLevel", _optional_string(None)),
    ),
    "tasks": (
        FieldSpec("TaskID", _required_string),
        FieldSpec("TaskName", _required_string),
        FieldSpec("Category", _optional_string(None)),
        FieldSpec("Duration", _integer, _at_least(1)),
        FieldSpec("RequiredSkills", _optional_string("")),
        FieldSpec("PreferredPhases", _optional_string(None)),
        FieldSpec("MaxConcurrent", _integer, _at_least(1)),
    ),
}


def coerce_row(entity: str, row: Mapping[str, Any]) -> dict[str, Coerced]:
    """Run every field pipeline of *entity* over *row*, keyed by field name."""
    return {spec.name: spec.apply(row) for spec in SCHEMAS[entity]}


def validate_row(entity: str, row: Mapping[str, Any], row_index: int) -> list[ValidationIssue]:
    return [
        ValidationIssue(entity, row_index, name, result.message)
        for name, result in coerce_row(entity, row).items()
        if not result.ok
    ]


def check_schema(dataset: Dataset) -> list[ValidationIssue]:
    """Schema issues for every row of every table, in table then row order."""
    issues: list[ValidationIssue] = []
    for entity in ENTITY_TYPES:
        for idx, row in enumerate(dataset.rows(entity)):
            issues.extend(validate_row(entity, row, idx))
    logger.debug("schema check: %d issue(s)", len(issues))
    return issues
