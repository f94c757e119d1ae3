"""AI-assisted repair — prompts, the oracle client, and response sniffing.

The validation engine never reads anything produced here. Suggestions are
returned to the caller for review; applying one goes through a normal session
mutation, which revalidates.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, NamedTuple

import requests

from roster_rescue.models import BusinessRule, Row, ValidationIssue
from roster_rescue.rules import active_rules

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.5-flash-lite"
DEFAULT_TIMEOUT = 60.0
MAX_CHOICES = 3

CHOICES_INSTRUCTION = (
    "You are a helpful data cleaning assistant. When asked for suggestions, ALWAYS return "
    "a JSON object with a 'choices' key, whose value is an array of 1-3 objects. Each object "
    "must have a 'label' (string, for display) and a 'value' (string, to be used as the cell "
    'value). Example: { "choices": [ { "label": "value1", "value": "value1" } ] }. '
    "Do not explain, do not return anything except this JSON object.\n\n"
    "Special rule: If the field is 'AttributesJSON' and the value is vague, plain text, or "
    "not a valid JSON object, return a suggestion where 'label' is a pretty-printed JSON "
    'object (e.g. {"message": "the original value"}) and \'value\' is the stringified '
    "version of that object."
)
ROW_INSTRUCTION = (
    "You are a helpful data cleaning assistant. When asked to fix a row, ALWAYS return a "
    "single JSON object with exactly the same keys as the input row. Do not explain, do "
    "not return anything except this JSON object."
)
BULK_INSTRUCTION = (
    "You are a helpful data cleaning assistant. When asked for a bulk fix, ALWAYS return a "
    "JSON array of rows, with the same number of rows and columns as the input. Do not "
    "explain, do not return anything except this JSON array."
)

_FIX_GUIDELINES = """\
- If a value is missing, fill it with a plausible guess.
- If a value is malformed (e.g. not a number, invalid JSON), fix the format.
- If an ID is duplicated, make it unique by appending a suffix.
- If a reference is unknown, try to match it to the closest valid value or remove it.
- If a value is out of range, bring it into the valid range.
- If a JSON field is broken, repair the JSON."""

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_ARRAY_RE = re.compile(r"\[.*\]", re.DOTALL)


class OracleError(RuntimeError):
    """The AI oracle could not be reached or answered with an error status."""


class Suggestion(NamedTuple):
    label: str
    value: str


# ── Prompts ──────────────────────────────────────────────────────


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def _issue_payload(issues: Sequence[ValidationIssue]) -> list[dict[str, Any]]:
    return [
        {"rowIndex": i.row_index, "field": i.field, "message": i.message} for i in issues
    ]


def rules_section(rules: Sequence[BusinessRule], entity: str) -> str:
    selected = active_rules(rules, entity)
    if not selected:
        return ""
    lines = ["", "Apply these business rules (highest priority first):"]
    for n, rule in enumerate(selected, start=1):
        scope = f"[{rule.field}] " if rule.field else ""
        lines.append(f"{n}. {scope}{rule.rule} (priority {rule.priority})")
    return "\n".join(lines)


def build_bulk_fix_prompt(
    entity: str,
    rows: Sequence[Mapping[str, Any]],
    issues: Sequence[ValidationIssue],
    rules: Sequence[BusinessRule] = (),
) -> str:
    return (
        f"You are a data cleaning assistant. Your job is to fix errors in a {entity} table.\n\n"
        f"Here is the table data (as JSON array):\n{_dump([dict(r) for r in rows])}\n\n"
        "Here are the validation errors (with row numbers and fields):\n"
        f"{_dump(_issue_payload(issues))}\n\n"
        "For each row with errors, suggest a corrected version.\n"
        f"{_FIX_GUIDELINES}\n"
        f"{rules_section(rules, entity)}\n\n"
        "Return ONLY the corrected table as a JSON array, with the same number of rows "
        "and columns as the input."
    )


def build_row_fix_prompt(
    entity: str,
    row: Mapping[str, Any],
    issues: Sequence[ValidationIssue],
    rules: Sequence[BusinessRule] = (),
) -> str:
    return (
        f"You are a data cleaning assistant. Fix this {entity} row:\n{_dump(dict(row))}\n\n"
        f"Validation errors for this row:\n{_dump(_issue_payload(issues))}\n\n"
        f"{_FIX_GUIDELINES}\n"
        f"{rules_section(rules, entity)}\n\n"
        "Return ONLY the corrected row as a JSON object with the same keys."
    )


def build_cell_prompt(
    entity: str,
    row: Mapping[str, Any],
    field: str,
    issues: Sequence[ValidationIssue],
    rules: Sequence[BusinessRule] = (),
) -> str:
    messages = "; ".join(i.message for i in issues if i.field == field) or "none reported"
    field_rules = [r for r in rules if r.field in (None, field)]
    return (
        f"Suggest up to {MAX_CHOICES} corrected values for the field '{field}' of this "
        f"{entity} row.\n\nRow:\n{_dump(dict(row))}\n\n"
        f"Current value: {json.dumps(row.get(field), ensure_ascii=False, default=str)}\n"
        f"Problems: {messages}\n"
        f"{rules_section(field_rules, entity)}"
    )


# ── Response sniffing ────────────────────────────────────────────


def parse_loose_json(text: str, *, prefer: str = "object") -> Any:
    """Best-effort JSON from model text, or ``None``.

    Tries the whole text, then a fenced block, then the widest ``{...}`` or
    ``[...]`` span (in *prefer* order).
    """
    candidates = [text]
    candidates.extend(_FENCE_RE.findall(text))
    patterns = (_OBJECT_RE, _ARRAY_RE) if prefer == "object" else (_ARRAY_RE, _OBJECT_RE)
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            candidates.append(match.group(0))
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except ValueError:
            continue
    return None


def _as_suggestion(item: Any) -> Suggestion | None:
    if isinstance(item, Mapping):
        label, value = item.get("label"), item.get("value")
        if isinstance(value, str):
            return Suggestion(label if isinstance(label, str) else value, value)
        return None
    if isinstance(item, str):
        return Suggestion(item, item)
    if isinstance(item, (int, float)) and not isinstance(item, bool):
        return Suggestion(str(item), str(item))
    return None


def extract_choices(payload: Any) -> list[Suggestion]:
    """Pull 1-3 suggestions out of whatever shape the oracle returned."""
    if isinstance(payload, str):
        payload = parse_loose_json(payload, prefer="object")
        if payload is None:
            return []
    if isinstance(payload, Mapping):
        if isinstance(payload.get("choices"), list):
            items: list[Any] = payload["choices"]
        elif "value" in payload:
            items = [payload]
        else:
            return []
    elif isinstance(payload, list):
        items = payload
    else:
        items = [payload]
    choices = [s for s in (_as_suggestion(item) for item in items) if s is not None]
    return choices[:MAX_CHOICES]


def extract_rows(payload: Any, expected: int | None = None) -> list[Row]:
    """Rows from a bulk-fix answer; ``[]`` when unusable or the count is off."""
    if isinstance(payload, str):
        payload = parse_loose_json(payload, prefer="array")
    if isinstance(payload, Mapping) and isinstance(payload.get("rows"), list):
        payload = payload["rows"]
    if not isinstance(payload, list) or not all(isinstance(r, Mapping) for r in payload):
        return []
    if expected is not None and len(payload) != expected:
        logger.warning("Discarding bulk fix: expected %d rows, got %d", expected, len(payload))
        return []
    return [dict(r) for r in payload]


def extract_row(payload: Any) -> Row | None:
    if isinstance(payload, str):
        payload = parse_loose_json(payload, prefer="object")
    if isinstance(payload, Mapping) and isinstance(payload.get("row"), Mapping):
        payload = payload["row"]
    if isinstance(payload, list) and len(payload) == 1:
        payload = payload[0]
    if isinstance(payload, Mapping) and "choices" not in payload and "rows" not in payload:
        return dict(payload)
    return None


def diff_rows(
    before: Sequence[Mapping[str, Any]], after: Sequence[Mapping[str, Any]]
) -> list[tuple[int, str, Any, Any]]:
    """Cells that differ, as ``(row_index, field, old, new)``."""
    changes: list[tuple[int, str, Any, Any]] = []
    for idx, (old_row, new_row) in enumerate(zip(before, after)):
        for key in dict.fromkeys([*old_row, *new_row]):
            old, new = old_row.get(key), new_row.get(key)
            if old != new and str(old) != str(new):
                changes.append((idx, key, old, new))
    return changes


# ── Oracle client ────────────────────────────────────────────────


@dataclass
class OracleClient:
    """Minimal client for a Gemini-style ``generateContent`` endpoint."""

    api_key: str
    model: str = DEFAULT_MODEL
    timeout: float = DEFAULT_TIMEOUT
    base_url: str = DEFAULT_BASE_URL

    def generate(self, prompt: str, system_instruction: str) -> str:
        """Return the model's text answer (possibly empty)."""
        if not self.api_key:
            raise OracleError("No API key configured (set GOOGLE_API_KEY)")
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "system_instruction": {"parts": [{"text": system_instruction}]},
            "generationConfig": {"response_mime_type": "application/json"},
        }
        url = f"{self.base_url.rstrip('/')}/models/{self.model}:generateContent"
        try:
            response = requests.post(
                url, params={"key": self.api_key}, json=body, timeout=self.timeout
            )
        except requests.RequestException as exc:
            logger.warning("Oracle request failed: %s", exc)
            raise OracleError(f"Oracle request failed: {exc}") from exc
        if not response.ok:
            logger.warning("Oracle returned HTTP %s: %s", response.status_code, response.text)
            raise OracleError(f"Oracle request failed with HTTP {response.status_code}")
        try:
            data = response.json()
            return str(data["candidates"][0]["content"]["parts"][0]["text"])
        except (ValueError, KeyError, IndexError, TypeError):
            logger.warning("Oracle answer had no text part: %.200s", response.text)
            return ""

    def suggest_cell(
        self,
        entity: str,
        row: Mapping[str, Any],
        field: str,
        issues: Sequence[ValidationIssue] = (),
        rules: Sequence[BusinessRule] = (),
    ) -> list[Suggestion]:
        text = self.generate(
            build_cell_prompt(entity, row, field, issues, rules), CHOICES_INSTRUCTION
        )
        choices = extract_choices(text)
        if not choices:
            logger.warning("No usable cell suggestion in oracle answer: %.200s", text)
        return choices

    def suggest_row(
        self,
        entity: str,
        row: Mapping[str, Any],
        issues: Sequence[ValidationIssue] = (),
        rules: Sequence[BusinessRule] = (),
    ) -> Row | None:
        text = self.generate(build_row_fix_prompt(entity, row, issues, rules), ROW_INSTRUCTION)
        fixed = extract_row(text)
        if fixed is None:
            logger.warning("No usable row fix in oracle answer: %.200s", text)
        return fixed

    def fix_table(
        self,
        entity: str,
        rows: Sequence[Mapping[str, Any]],
        issues: Sequence[ValidationIssue] = (),
        rules: Sequence[BusinessRule] = (),
    ) -> list[Row]:
        text = self.generate(build_bulk_fix_prompt(entity, rows, issues, rules), BULK_INSTRUCTION)
        return extract_rows(text, expected=len(rows))
