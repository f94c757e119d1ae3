"""Entity classification — decide which table an uploaded file holds."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from roster_rescue import ENTITY_TYPES, KEY_FIELDS, REQUIRED_COLUMNS
from roster_rescue.models import ClassificationError, IngestionError, Row

# Priority order: a table exposing several key columns resolves to the first.
_KEY_PRIORITY: tuple[tuple[str, str], ...] = tuple(
    (KEY_FIELDS[entity], entity) for entity in ENTITY_TYPES
)
_FILENAME_HINTS: tuple[tuple[str, str], ...] = (
    ("client", "clients"),
    ("worker", "workers"),
    ("task", "tasks"),
)


def detect_entity_type(headers: Iterable[Any]) -> str | None:
    """Return the entity whose key column appears in *headers*, else ``None``."""
    present = {str(h) for h in headers}
    for key, entity in _KEY_PRIORITY:
        if key in present:
            return entity
    return None


def entity_from_filename(filename: str | None) -> str | None:
    if not filename:
        return None
    lowered = filename.lower()
    for hint, entity in _FILENAME_HINTS:
        if hint in lowered:
            return entity
    return None


def classify(headers: Sequence[Any], filename: str | None = None) -> str:
    """Classify a table by its headers, falling back to the filename.

    Raises
    ------
    ClassificationError
        If neither the headers nor the filename identify an entity type.
    """
    entity = detect_entity_type(headers) or entity_from_filename(filename)
    if entity is None:
        shown = ", ".join(str(h) for h in headers) or "(none)"
        source = f" in {filename!r}" if filename else ""
        raise ClassificationError(
            f"Could not determine entity type{source} from headers [{shown}]; "
            f"expected one of {', '.join(k for k, _ in _KEY_PRIORITY)}"
        )
    return entity


def missing_required_columns(entity: str, headers: Iterable[Any]) -> list[str]:
    present = {str(h) for h in headers}
    return sorted(set(REQUIRED_COLUMNS[entity]) - present)


def ingest(
    headers: Sequence[Any],
    rows: Iterable[Mapping[str, Any]],
    filename: str | None = None,
) -> tuple[str, list[Row]]:
    """Classify a parsed table and admit its rows, or reject it whole.

    Returns ``(entity, rows)``; the rows are shallow copies.
    """
    entity = classify(headers, filename)
    missing = missing_required_columns(entity, headers)
    if missing:
        raise IngestionError(entity, missing)
    return entity, [dict(row) for row in rows]
