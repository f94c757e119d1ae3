"""Structural checks — embedded JSON/list cells and worker overload."""

from __future__ import annotations

import json
import logging
from typing import Any

from roster_rescue.models import Dataset, ValidationIssue
from roster_rescue.utils import is_blank, is_nan, is_number, parse_number, split_list

logger = logging.getLogger(__name__)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant {name}")


def loads_strict(text: str) -> Any:
    """``json.loads`` without the NaN/Infinity extensions."""
    return json.loads(text, parse_constant=_reject_constant)


def _slot_number(item: Any) -> float | None:
    if is_number(item) or isinstance(item, str):
        return parse_number(item)
    return None


def parse_slots(value: Any) -> list[float] | None:
    """Parse an AvailableSlots cell into numbers.

    Accepts a JSON array (``"[1, 3]"``) or a comma/semicolon list
    (``"1;3"``). Returns ``None`` when the cell is malformed.
    """
    if is_number(value):
        value = str(value)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.startswith("["):
        try:
            parsed = loads_strict(text)
        except ValueError:
            return None
        if not isinstance(parsed, list):
            return None
        items: list[Any] = parsed
    else:
        items = split_list(text)

    numbers: list[float] = []
    for item in items:
        number = _slot_number(item)
        if number is None:
            return None
        numbers.append(number)
    return numbers


def check_attributes_json(dataset: Dataset) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for idx, row in enumerate(dataset.clients):
        value = row.get("AttributesJSON")
        if not isinstance(value, str) or not value.strip():
            continue
        try:
            loads_strict(value)
        except ValueError:
            issues.append(ValidationIssue("clients", idx, "AttributesJSON", "Invalid JSON"))
    return issues


def check_worker_slots(dataset: Dataset) -> list[ValidationIssue]:
    """Malformed AvailableSlots, then overload, per worker row.

    A malformed slot list suppresses the overload check for that row.
    """
    issues: list[ValidationIssue] = []
    for idx, row in enumerate(dataset.workers):
        raw = row.get("AvailableSlots")
        if is_blank(raw) or is_nan(raw):
            continue
        slots = parse_slots(raw)
        if slots is None:
            issues.append(ValidationIssue("workers", idx, "AvailableSlots", "Malformed list"))
            continue
        max_load = parse_number(row.get("MaxLoadPerPhase")) or 0
        if slots and len(slots) < max_load:
            issues.append(
                ValidationIssue(
                    "workers",
                    idx,
                    "MaxLoadPerPhase",
                    f"Load exceeds available slots ({max_load:g} > {len(slots)})",
                )
            )
    return issues


def check_structure(dataset: Dataset) -> list[ValidationIssue]:
    issues = check_attributes_json(dataset) + check_worker_slots(dataset)
    logger.debug("structural check: %d issue(s)", len(issues))
    return issues
