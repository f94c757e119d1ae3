"""Cross-table checks — duplicate business keys and dangling task references."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any

from roster_rescue import ENTITY_TYPES, KEY_FIELDS
from roster_rescue.models import Dataset, ValidationIssue
from roster_rescue.utils import is_nan, split_list

logger = logging.getLogger(__name__)


def _key_value(value: Any) -> str | None:
    if value is None or is_nan(value):
        return None
    text = str(value)
    return text or None


def split_id_list(value: Any) -> list[str]:
    """Split a comma/semicolon list into trimmed, non-empty tokens."""
    if value is None or is_nan(value):
        return []
    return split_list(value)


def find_duplicate_keys(dataset: Dataset) -> list[ValidationIssue]:
    """Flag every row whose business key is shared with another row.

    Rows with an empty key are skipped; the schema check reports those.
    """
    issues: list[ValidationIssue] = []
    for entity in ENTITY_TYPES:
        key_field = KEY_FIELDS[entity]
        keys = [_key_value(row.get(key_field)) for row in dataset.rows(entity)]
        counts = Counter(key for key in keys if key is not None)
        for idx, key in enumerate(keys):
            if key is not None and counts[key] > 1:
                issues.append(
                    ValidationIssue(entity, idx, key_field, f"Duplicate {key_field} '{key}'")
                )
    return issues


def find_unknown_task_refs(dataset: Dataset) -> list[ValidationIssue]:
    """One issue per RequestedTaskIDs token that names no known task."""
    known = {key for key in (_key_value(t.get("TaskID")) for t in dataset.tasks) if key}
    issues: list[ValidationIssue] = []
    for idx, row in enumerate(dataset.clients):
        for task_id in split_id_list(row.get("RequestedTaskIDs")):
            if task_id not in known:
                issues.append(
                    ValidationIssue(
                        "clients", idx, "RequestedTaskIDs", f"Unknown TaskID '{task_id}'"
                    )
                )
    return issues


def check_references(dataset: Dataset) -> list[ValidationIssue]:
    issues = find_duplicate_keys(dataset) + find_unknown_task_refs(dataset)
    logger.debug("cross-reference check: %d issue(s)", len(issues))
    return issues
