"""Validation report persistence."""

from __future__ import annotations

from pathlib import Path

from roster_rescue.io import write_json
from roster_rescue.models import ValidationReport


def write_qc_report(out_dir: Path, report: ValidationReport) -> Path:
    """Write ``validation_report.json`` into *out_dir* and return the path."""
    return write_json(out_dir / "validation_report.json", report.to_dict())
