"""I/O helpers — load input files into rows, export rows, write JSON artifacts."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Literal, cast

import pandas as pd

from roster_rescue.models import Row

# ── Loading ──────────────────────────────────────────────────────


def load_table(path: Path, delimiter: str | None = None) -> pd.DataFrame:
    """Load a CSV or Excel file and return a raw string DataFrame.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If the extension is not supported, or CSV decoding/parsing fails.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if path.is_dir():
        raise ValueError(f"Input path is not a file: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        if path.stat().st_size == 0:
            return pd.DataFrame()
        last_exc: Exception | None = None
        sep = delimiter if delimiter else None
        engine: Literal["c", "python"] = "c" if delimiter else "python"
        for encoding in ("utf-8-sig", "utf-8", "latin-1"):
            try:
                return pd.read_csv(
                    path,
                    dtype="string",
                    sep=sep,
                    engine=engine,
                    encoding=encoding,
                    encoding_errors="strict",
                    keep_default_na=False,
                    skip_blank_lines=True,
                )
            except pd.errors.EmptyDataError:
                return pd.DataFrame()
            except (UnicodeDecodeError, pd.errors.ParserError) as exc:
                last_exc = exc
        raise ValueError(f"Could not read CSV {path} (decode or parse failed)") from last_exc

    if suffix in (".xlsx", ".xlsm", ".xltx", ".xltm"):
        read_excel = cast(Callable[..., pd.DataFrame], getattr(pd, "read_excel"))
        return read_excel(path, engine="openpyxl", dtype="string", keep_default_na=False)

    if suffix == ".xls":
        try:
            read_excel = cast(Callable[..., pd.DataFrame], getattr(pd, "read_excel"))
            return read_excel(path, engine="xlrd", dtype="string", keep_default_na=False)
        except ImportError as exc:
            raise ValueError(
                "Unsupported .xls input unless 'xlrd' is installed. "
                "Either convert to .xlsx or add dependency: pip install xlrd"
            ) from exc

    raise ValueError(f"Unsupported file type: {suffix!r}. Use .csv, .xlsx, or .xls")


def _cell(value: Any) -> Any:
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        return value
    return value


def frame_to_rows(df: pd.DataFrame) -> tuple[list[str], list[Row]]:
    """Return ``(headers, rows)``; missing cells become empty strings."""
    headers = [str(c) for c in df.columns]
    rows = [
        {header: _cell(value) for header, value in zip(headers, values)}
        for values in df.itertuples(index=False, name=None)
    ]
    return headers, rows


def read_rows(path: Path, delimiter: str | None = None) -> tuple[list[str], list[Row]]:
    return frame_to_rows(load_table(path, delimiter))


# ── Writing ──────────────────────────────────────────────────────


def row_columns(rows: Sequence[Mapping[str, Any]]) -> list[str]:
    """Column order: first row's keys, then keys first seen in later rows."""
    columns: list[str] = []
    seen: set[str] = set()
    for row in rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                columns.append(key)
    return columns


def export_rows(rows: Sequence[Mapping[str, Any]], path: Path) -> Path:
    """Write *rows* to ``.csv`` or ``.xlsx`` (chosen by suffix); return the path."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in (".csv", ".xlsx"):
        raise ValueError(f"Unsupported export type: {suffix!r}. Use .csv or .xlsx")
    path.parent.mkdir(parents=True, exist_ok=True)

    df = pd.DataFrame([dict(row) for row in rows], columns=row_columns(rows))
    tmp_path = path.with_name(f"{path.stem}.tmp{path.suffix}")
    if suffix == ".csv":
        df.to_csv(tmp_path, index=False, encoding="utf-8")
    else:
        df.to_excel(tmp_path, index=False, engine="openpyxl")
    tmp_path.replace(path)
    return path


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path
