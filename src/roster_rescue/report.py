"""Excel report writer — produces Validation_Report.xlsx."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, cast

import pandas as pd
from openpyxl import Workbook
from openpyxl.comments import Comment
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo
from openpyxl.worksheet.worksheet import Worksheet

from roster_rescue import ENTITY_TYPES
from roster_rescue.io import row_columns
from roster_rescue.models import Dataset, ValidationIssue, ValidationReport

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

TITLE_FONT = Font(name="Calibri", bold=True, size=14, color="2F5496")
SUBTITLE_FONT = Font(name="Calibri", bold=False, size=10, color="808080")
LABEL_FONT = Font(name="Calibri", bold=True, size=11)
VALUE_FONT = Font(name="Calibri", size=11)
FAIL_FONT = Font(name="Calibri", bold=True, size=11, color="C00000")
PASS_FONT = Font(name="Calibri", bold=True, size=11, color="2E7D32")

ERROR_FILL = PatternFill(start_color="F8CBAD", end_color="F8CBAD", fill_type="solid")
ROW_FILL = PatternFill(start_color="FCE4D6", end_color="FCE4D6", fill_type="solid")
KPI_FILL = PatternFill(start_color="D6E4F0", end_color="D6E4F0", fill_type="solid")

SHEET_TITLES: dict[str, str] = {"clients": "Clients", "workers": "Workers", "tasks": "Tasks"}
ERRORS_COLUMNS = ["entity", "row", "field", "message"]

_AUTO_WIDTH_SAMPLE_ROWS = 300
_EXCEL_FORMULA_PREFIXES = ("=", "+", "-", "@")
_COMMENT_AUTHOR = "roster-rescue"


# ── Helpers ──────────────────────────────────────────────────────


def _style_header(ws: Worksheet, ncols: int) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=1, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN


def _auto_width(ws: Worksheet) -> None:
    max_row = min(ws.max_row, _AUTO_WIDTH_SAMPLE_ROWS + 1)  # include header row
    for c_idx in range(1, ws.max_column + 1):
        letter = get_column_letter(c_idx)
        width = 0
        for row in ws.iter_rows(min_row=1, max_row=max_row, min_col=c_idx, max_col=c_idx):
            cell = row[0]
            width = max(width, len(str(cell.value or "")))
        width += 4
        ws.column_dimensions[letter].width = min(width, 40)


def _sanitize_table_name(name: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9_]", "_", name)
    if not cleaned:
        cleaned = "Table"
    if not re.match(r"^[A-Za-z_]", cleaned):
        cleaned = f"_{cleaned}"
    return cleaned[:255]


def _unique_table_name(ws: Worksheet, base_name: str) -> str:
    parent = ws.parent
    if parent is None:
        return base_name

    existing: set[str] = set()
    for sheet in parent.worksheets:
        existing.update(cast(Iterable[str], sheet.tables.keys()))
    if base_name not in existing:
        return base_name

    suffix = 1
    while True:
        suffix_str = f"_{suffix}"
        candidate = f"{base_name[: 255 - len(suffix_str)]}{suffix_str}"
        if candidate not in existing:
            return candidate
        suffix += 1


def _add_excel_table(ws: Worksheet, name: str, ncols: int, nrows: int) -> None:
    """Turn the data range into a proper Excel Table object."""
    if nrows < 1 or ncols < 1:
        return
    end_col = get_column_letter(ncols)
    ref = f"A1:{end_col}{nrows + 1}"  # +1 for header
    table_name = _unique_table_name(ws, _sanitize_table_name(name))
    table = Table(displayName=table_name, ref=ref)
    table.tableStyleInfo = TableStyleInfo(
        name="TableStyleMedium9", showFirstColumn=False,
        showLastColumn=False, showRowStripes=True, showColumnStripes=False,
    )
    ws.add_table(table)


def excel_value(val: Any) -> Any:
    """Make a cell value safe for Excel (no NA objects, no live formulas)."""
    if isinstance(val, (list, tuple, dict)):
        return str(val)
    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):
        return str(val)

    if isinstance(val, str):
        if val.startswith("'"):
            return val
        stripped = val.lstrip()
        if stripped and stripped[0] in _EXCEL_FORMULA_PREFIXES:
            return f"'{val}"

    return val


def _rows_to_sheet(
    wb: Workbook,
    title: str,
    rows: Sequence[Mapping[str, Any]],
    issues: Sequence[ValidationIssue],
) -> Worksheet:
    """Write one entity table; error cells are filled and carry a comment."""
    ws = wb.create_sheet(title=title)
    columns = row_columns(rows)
    for issue in issues:
        if issue.field not in columns:
            columns.append(issue.field)

    if not columns:
        ws.cell(row=1, column=1, value="No data").font = VALUE_FONT
        ws.column_dimensions["A"].width = 18
        return ws

    for c_idx, name in enumerate(columns, 1):
        ws.cell(row=1, column=c_idx, value=name)
    for r_idx, row in enumerate(rows, 2):
        for c_idx, name in enumerate(columns, 1):
            ws.cell(row=r_idx, column=c_idx, value=excel_value(row.get(name)))

    messages: dict[tuple[int, str], list[str]] = {}
    for issue in issues:
        messages.setdefault((issue.row_index, issue.field), []).append(issue.message)
    bad_rows = {row_index for row_index, _ in messages}
    for row_index in bad_rows:
        for c_idx in range(1, len(columns) + 1):
            ws.cell(row=row_index + 2, column=c_idx).fill = ROW_FILL
    for (row_index, name), texts in messages.items():
        cell = ws.cell(row=row_index + 2, column=columns.index(name) + 1)
        cell.fill = ERROR_FILL
        cell.comment = Comment("\n".join(texts), _COMMENT_AUTHOR)

    _style_header(ws, len(columns))
    ws.freeze_panes = "A2"
    if rows:
        ws.auto_filter.ref = ws.dimensions
    _auto_width(ws)
    return ws


def _write_errors_sheet(wb: Workbook, issues: Sequence[ValidationIssue]) -> Worksheet:
    ws = wb.create_sheet(title="Errors")
    for c_idx, name in enumerate(ERRORS_COLUMNS, 1):
        ws.cell(row=1, column=c_idx, value=name)
    for r_idx, issue in enumerate(issues, 2):
        ws.cell(row=r_idx, column=1, value=issue.entity)
        ws.cell(row=r_idx, column=2, value=issue.row_index + 1)
        ws.cell(row=r_idx, column=3, value=issue.field)
        ws.cell(row=r_idx, column=4, value=excel_value(issue.message))
    _style_header(ws, len(ERRORS_COLUMNS))
    ws.freeze_panes = "A2"
    _auto_width(ws)
    _add_excel_table(ws, "Errors", len(ERRORS_COLUMNS), len(issues))
    return ws


def _write_summary(wb: Workbook, report: ValidationReport) -> None:
    ws = wb.create_sheet(title="Summary")

    ws.cell(row=1, column=1, value="roster-rescue — Validation Summary").font = TITLE_FONT
    ws.merge_cells("A1:D1")
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    ws.cell(row=2, column=1, value=f"Generated {generated}").font = SUBTITLE_FONT
    ws.merge_cells("A2:D2")

    row = 4
    for c_idx, name in enumerate(("Table", "Rows", "Errors", "Rows with errors"), 1):
        cell = ws.cell(row=row, column=c_idx, value=name)
        cell.font = LABEL_FONT
        cell.fill = KPI_FILL
    per_entity = report.errors_by_entity()
    for entity in ENTITY_TYPES:
        row += 1
        bad_rows = len({i.row_index for i in report.issues if i.entity == entity})
        values = (entity, report.rows[entity], per_entity[entity], bad_rows)
        for c_idx, value in enumerate(values, 1):
            ws.cell(row=row, column=c_idx, value=value).font = VALUE_FONT

    row += 2
    ws.cell(row=row, column=1, value="Status").font = LABEL_FONT
    passed = report.status == "clean"
    status_cell = ws.cell(row=row, column=2, value="PASS" if passed else "FAIL")
    status_cell.font = PASS_FONT if passed else FAIL_FONT

    ws.column_dimensions["A"].width = 22
    ws.column_dimensions["B"].width = 14
    ws.column_dimensions["C"].width = 14
    ws.column_dimensions["D"].width = 18


# ── Public API ───────────────────────────────────────────────────


def write_report(out_dir: Path, dataset: Dataset, report: ValidationReport) -> Path:
    """Write ``Validation_Report.xlsx`` and return the path."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    report_path = out_dir / "Validation_Report.xlsx"

    wb = Workbook()
    active_sheet = wb.active
    if active_sheet is not None:
        wb.remove(active_sheet)  # remove default sheet

    _write_summary(wb, report)
    for entity in ENTITY_TYPES:
        rows = dataset.rows(entity)
        if rows:
            entity_issues = [i for i in report.issues if i.entity == entity]
            _rows_to_sheet(wb, SHEET_TITLES[entity], rows, entity_issues)
    _write_errors_sheet(wb, report.issues)

    tmp_path = out_dir / "Validation_Report.tmp.xlsx"
    wb.save(tmp_path)
    tmp_path.replace(report_path)
    return report_path
