"""Host-side session state: every mutation is followed by a full revalidation."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from roster_rescue.classify import ingest
from roster_rescue.models import Dataset, Row, ValidationIssue, check_entity
from roster_rescue.validation import cell_issues, issues_for, row_issues, validate

logger = logging.getLogger(__name__)


class Session:
    """Holds one dataset and its authoritative issue list.

    The checkers themselves are stateless; this class is the state layer that
    calls them synchronously after each change.
    """

    def __init__(self, dataset: Dataset | None = None) -> None:
        self._dataset = dataset if dataset is not None else Dataset()
        self._errors: list[ValidationIssue] = []
        self._revalidate()

    @property
    def dataset(self) -> Dataset:
        """A copy of the current tables; change them through the mutation methods."""
        return Dataset(**self._dataset.to_dict())

    @property
    def errors(self) -> list[ValidationIssue]:
        return list(self._errors)

    def _revalidate(self) -> list[ValidationIssue]:
        self._errors = validate(self._dataset)
        return self.errors

    def _row_index(self, entity: str, row_index: int) -> int:
        rows = self._dataset.rows(entity)
        if not 0 <= row_index < len(rows):
            raise IndexError(f"{entity} row {row_index} out of range (0..{len(rows) - 1})")
        return row_index

    # ── Mutations ────────────────────────────────────────────────

    def load(self, entity: str, rows: Iterable[Mapping[str, Any]]) -> list[ValidationIssue]:
        """Replace *entity*'s table wholesale."""
        self._dataset = self._dataset.replace(check_entity(entity), rows)
        logger.info("loaded %d %s row(s)", len(self._dataset.rows(entity)), entity)
        return self._revalidate()

    def ingest(
        self,
        headers: Sequence[Any],
        rows: Iterable[Mapping[str, Any]],
        filename: str | None = None,
    ) -> str:
        """Classify and load a parsed file; rejected files leave state untouched."""
        entity, admitted = ingest(headers, rows, filename)
        self.load(entity, admitted)
        return entity

    def replace_rows(self, entity: str, rows: Iterable[Mapping[str, Any]]) -> list[ValidationIssue]:
        """Apply a bulk fix: same as :meth:`load`, named for the caller's intent."""
        return self.load(entity, rows)

    def update_cell(self, entity: str, row_index: int, field: str, value: Any) -> list[ValidationIssue]:
        idx = self._row_index(check_entity(entity), row_index)
        rows = [dict(row) for row in self._dataset.rows(entity)]
        rows[idx][field] = value
        self._dataset = self._dataset.replace(entity, rows)
        return self._revalidate()

    def apply_row(self, entity: str, row_index: int, row: Mapping[str, Any]) -> list[ValidationIssue]:
        idx = self._row_index(check_entity(entity), row_index)
        rows: list[Row] = [dict(r) for r in self._dataset.rows(entity)]
        rows[idx] = dict(row)
        self._dataset = self._dataset.replace(entity, rows)
        return self._revalidate()

    # ── Reads ────────────────────────────────────────────────────

    def errors_for(self, entity: str) -> list[ValidationIssue]:
        return issues_for(self._errors, check_entity(entity))

    def row_errors(self, entity: str, row_index: int) -> list[ValidationIssue]:
        return row_issues(self._errors, check_entity(entity), row_index)

    def cell_errors(self, entity: str, row_index: int, field: str) -> list[ValidationIssue]:
        return cell_issues(self._errors, check_entity(entity), row_index, field)
