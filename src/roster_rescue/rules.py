"""Business-rule store. Rules are only forwarded to the AI oracle."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

from roster_rescue.io import write_json
from roster_rescue.models import BusinessRule

logger = logging.getLogger(__name__)

DEFAULT_RULES: tuple[BusinessRule, ...] = (
    BusinessRule(
        id="1",
        name="Client Priority Validation",
        description="Ensure client priority levels are between 1-5",
        entity_type="clients",
        field="PriorityLevel",
        rule=(
            "Priority levels must be between 1 and 5. "
            "If outside this range, set to 3 as default."
        ),
        priority=8,
    ),
    BusinessRule(
        id="2",
        name="Worker Skills Format",
        description="Ensure worker skills are properly formatted as comma-separated values",
        entity_type="workers",
        field="Skills",
        rule=(
            "Skills should be comma-separated. If semicolons are used, convert to commas. "
            "Remove any empty entries."
        ),
        priority=6,
    ),
    BusinessRule(
        id="3",
        name="Task Duration Validation",
        description="Ensure task durations are positive numbers",
        entity_type="tasks",
        field="Duration",
        rule=(
            "Task duration must be a positive number. "
            "If zero or negative, set to 1 as minimum."
        ),
        priority=7,
    ),
)


def default_rules() -> list[BusinessRule]:
    return [BusinessRule.from_dict(rule.to_dict()) for rule in DEFAULT_RULES]


def active_rules(rules: Iterable[BusinessRule], entity: str | None = None) -> list[BusinessRule]:
    """Active rules scoped to *entity* (or ``"all"``), highest priority first."""
    selected = [r for r in rules if r.is_active and r.applies_to(entity)]
    return sorted(selected, key=lambda r: r.priority, reverse=True)


def load_rules(path: Path | None) -> list[BusinessRule]:
    """Load rules from a JSON list; fall back to the defaults if unusable."""
    if path is None:
        return default_rules()
    path = Path(path)
    if not path.exists():
        logger.info("No rules file at %s; using defaults", path)
        return default_rules()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(payload, list):
            raise ValueError("rules file must contain a JSON list")
        return [BusinessRule.from_dict(item) for item in payload]
    except (OSError, ValueError, TypeError, KeyError, AttributeError) as exc:
        logger.warning("Failed to parse rules from %s (%s); using defaults", path, exc)
        return default_rules()


def save_rules(path: Path, rules: Sequence[BusinessRule]) -> Path:
    return write_json(path, [rule.to_dict() for rule in rules])
