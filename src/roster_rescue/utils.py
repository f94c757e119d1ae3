"""Shared helpers — number parsing, list splitting, hashing, timestamps."""

from __future__ import annotations

import hashlib
import math
import re
from datetime import datetime, timezone
from decimal import Decimal
from numbers import Real
from pathlib import Path
from typing import Any

_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
LIST_SPLIT_RE = re.compile(r"[,;]")


def is_number(value: Any) -> bool:
    """True for real numbers of any kind (numpy scalars, Decimal); never bools."""
    return isinstance(value, (Real, Decimal)) and not isinstance(value, bool)


def is_nan(value: Any) -> bool:
    return is_number(value) and value != value


def parse_number(value: Any) -> float | None:
    """Parse a cell value as a finite number, or return ``None``.

    Accepts real numbers (including numpy scalars and ``Decimal``) and decimal
    strings with optional sign and exponent. Booleans, blanks, ``nan``/``inf``
    and anything else are rejected.
    """
    if value is None or isinstance(value, bool):
        return None
    if is_number(value):
        result = float(value)
        return result if math.isfinite(result) else None
    if not isinstance(value, str):
        return None
    token = value.strip()
    if not _NUMBER_RE.fullmatch(token):
        return None
    result = float(token)
    return result if math.isfinite(result) else None


def split_list(value: Any) -> list[str]:
    """Split a comma/semicolon list into trimmed, non-empty tokens."""
    return [token.strip() for token in LIST_SPLIT_RE.split(str(value)) if token.strip()]


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def utcnow_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()
