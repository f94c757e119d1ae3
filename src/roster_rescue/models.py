"""Data models used across the package."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from numbers import Integral
from typing import Any, Literal

from roster_rescue import ENTITY_TYPES

EntityType = Literal["clients", "workers", "tasks"]
Row = dict[str, Any]


class ClassificationError(ValueError):
    """Raised when a table cannot be matched to any entity type."""


class IngestionError(ClassificationError):
    """Raised when a classified table lacks columns its entity requires."""

    def __init__(self, entity: str, missing: Sequence[str]) -> None:
        self.entity = entity
        self.missing = list(missing)
        super().__init__(f"Missing required column(s) for {entity}: {', '.join(self.missing)}")


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def check_entity(entity: str) -> str:
    if entity not in ENTITY_TYPES:
        raise ValueError(f"Unknown entity type: {entity!r}. Use {', '.join(ENTITY_TYPES)}")
    return entity


def _copy_rows(rows: Iterable[Mapping[str, Any]] | None) -> list[Row]:
    if rows is None:
        return []
    return [dict(row) for row in rows]


@dataclass
class Dataset:
    """The three tables of a session. Every table is always present."""

    clients: list[Row] = field(default_factory=list)
    workers: list[Row] = field(default_factory=list)
    tasks: list[Row] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.clients = _copy_rows(self.clients)
        self.workers = _copy_rows(self.workers)
        self.tasks = _copy_rows(self.tasks)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Iterable[Mapping[str, Any]] | None]) -> Dataset:
        unknown = sorted(set(data) - set(ENTITY_TYPES))
        if unknown:
            raise ValueError(f"Unknown entity type(s): {', '.join(unknown)}")
        return cls(**{entity: _copy_rows(data.get(entity)) for entity in ENTITY_TYPES})

    def rows(self, entity: str) -> list[Row]:
        return getattr(self, check_entity(entity))

    def replace(self, entity: str, rows: Iterable[Mapping[str, Any]]) -> Dataset:
        """Return a new dataset with *entity*'s rows swapped out."""
        check_entity(entity)
        tables = {name: self.rows(name) for name in ENTITY_TYPES}
        tables[entity] = _copy_rows(rows)
        return Dataset(**tables)

    def counts(self) -> dict[str, int]:
        return {entity: len(self.rows(entity)) for entity in ENTITY_TYPES}

    def to_dict(self) -> dict[str, list[Row]]:
        return {entity: _copy_rows(self.rows(entity)) for entity in ENTITY_TYPES}


@dataclass(frozen=True)
class ValidationIssue:
    """One rule violation tied to a single entity/row/field."""

    entity: str
    row_index: int
    field: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity,
            "row_index": self.row_index,
            "field": self.field,
            "message": self.message,
        }

    def __str__(self) -> str:
        return f"{self.entity} row {self.row_index + 1}: {self.field} - {self.message}"


@dataclass
class ValidationReport:
    """Aggregate view of one validation pass, persisted as JSON."""

    rows: dict[str, int] = field(default_factory=dict)
    issues: list[ValidationIssue] = field(default_factory=list)

    def __post_init__(self) -> None:
        rows = dict(self.rows)
        for entity in rows:
            check_entity(entity)
        self.rows = {
            entity: _to_non_negative_int(rows.get(entity, 0), f"rows[{entity}]")
            for entity in ENTITY_TYPES
        }
        issues = list(self.issues or [])
        for issue in issues:
            if not isinstance(issue, ValidationIssue):
                raise TypeError("issues items must be ValidationIssue")
        self.issues = issues

    @property
    def error_count(self) -> int:
        return len(self.issues)

    @property
    def status(self) -> str:
        return "failed" if self.issues else "clean"

    def errors_by_entity(self) -> dict[str, int]:
        counts = {entity: 0 for entity in ENTITY_TYPES}
        for issue in self.issues:
            counts[issue.entity] += 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        per_entity = self.errors_by_entity()
        return {
            "entities": {
                entity: {"rows": self.rows[entity], "errors": per_entity[entity]}
                for entity in ENTITY_TYPES
            },
            "error_count": self.error_count,
            "errors": [issue.to_dict() for issue in self.issues],
            "status": self.status,
        }


@dataclass
class RunManifest:
    """Audit-trail manifest for a single CLI run."""

    tool: str = "roster-rescue"
    version: str = ""
    run_id: str = ""
    inputs: dict[str, str] = field(default_factory=dict)
    output_dir: str = ""
    created_at_utc: str = ""
    rows: dict[str, int] = field(default_factory=dict)
    error_count: int = 0
    sha256: dict[str, str] = field(default_factory=dict)
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""

    def __post_init__(self) -> None:
        self.error_count = _to_non_negative_int(self.error_count, "error_count")
        self.rows = {
            entity: _to_non_negative_int(count, f"rows[{entity}]")
            for entity, count in dict(self.rows).items()
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "run_id": self.run_id,
            "inputs": dict(self.inputs),
            "output_dir": self.output_dir,
            "created_at_utc": self.created_at_utc,
            "rows": dict(self.rows),
            "error_count": self.error_count,
            "sha256": dict(self.sha256),
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


@dataclass
class BusinessRule:
    """A free-text rule forwarded to the AI oracle; never executed locally."""

    id: str
    name: str
    rule: str
    entity_type: str = "all"
    field: str | None = None
    description: str = ""
    is_active: bool = True
    priority: int = 5
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        if self.entity_type != "all":
            check_entity(self.entity_type)
        self.priority = _to_non_negative_int(self.priority, "priority")
        if not 1 <= self.priority <= 10:
            raise ValueError("priority must be between 1 and 10")
        if not self.rule.strip():
            raise ValueError("rule must be a non-empty string")

    def applies_to(self, entity: str | None) -> bool:
        return entity is None or self.entity_type in ("all", entity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "entityType": self.entity_type,
            "field": self.field,
            "rule": self.rule,
            "isActive": self.is_active,
            "priority": self.priority,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BusinessRule:
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            rule=str(data.get("rule", "")),
            entity_type=str(data.get("entityType", "all")),
            field=data.get("field") or None,
            description=str(data.get("description", "")),
            is_active=bool(data.get("isActive", True)),
            priority=data.get("priority", 5),
            created_at=str(data.get("createdAt", "")),
            updated_at=str(data.get("updatedAt", "")),
        )
