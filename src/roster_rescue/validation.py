"""Validation orchestrator — one full, deterministic pass over a dataset."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from roster_rescue.crossref import check_references
from roster_rescue.models import Dataset, ValidationIssue, ValidationReport
from roster_rescue.schema import check_schema
from roster_rescue.structure import check_structure

logger = logging.getLogger(__name__)

CHECKERS = (check_schema, check_references, check_structure)


def validate(dataset: Dataset | Mapping[str, Iterable[Mapping[str, Any]]]) -> list[ValidationIssue]:
    """Recompute every issue for *dataset*.

    Schema issues come first, then cross-reference, then structural; each
    checker's own table/row order is preserved.
    """
    if not isinstance(dataset, Dataset):
        dataset = Dataset.from_mapping(dataset)
    issues: list[ValidationIssue] = []
    for checker in CHECKERS:
        issues.extend(checker(dataset))
    logger.debug("validated %s: %d issue(s)", dataset.counts(), len(issues))
    return issues


def build_report(dataset: Dataset, issues: Sequence[ValidationIssue] | None = None) -> ValidationReport:
    if issues is None:
        issues = validate(dataset)
    return ValidationReport(rows=dataset.counts(), issues=list(issues))


# ── Consumer helpers ────────────────────────────────────────────


def issues_for(issues: Iterable[ValidationIssue], entity: str) -> list[ValidationIssue]:
    return [issue for issue in issues if issue.entity == entity]


def row_issues(issues: Iterable[ValidationIssue], entity: str, row_index: int) -> list[ValidationIssue]:
    return [i for i in issues if i.entity == entity and i.row_index == row_index]


def cell_issues(
    issues: Iterable[ValidationIssue], entity: str, row_index: int, field: str
) -> list[ValidationIssue]:
    return [i for i in row_issues(issues, entity, row_index) if i.field == field]


def rows_with_issues(issues: Iterable[ValidationIssue], entity: str) -> list[int]:
    """Sorted row indexes of *entity* that carry at least one issue."""
    return sorted({issue.row_index for issue in issues if issue.entity == entity})
