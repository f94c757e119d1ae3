"""CLI entry point for roster-rescue."""

from __future__ import annotations

import re
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import NoReturn

import pandas as pd
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table as RichTable

from roster_rescue import ENTITY_TYPES, REQUIRED_COLUMNS, __version__
from roster_rescue.classify import classify as classify_headers
from roster_rescue.io import export_rows, frame_to_rows, load_table, write_json
from roster_rescue.log import setup_logging
from roster_rescue.models import ClassificationError, IngestionError, RunManifest, ValidationReport
from roster_rescue.qc import write_qc_report
from roster_rescue.repair import DEFAULT_MODEL, DEFAULT_TIMEOUT, OracleClient, OracleError, diff_rows
from roster_rescue.report import write_report
from roster_rescue.rules import active_rules, load_rules
from roster_rescue.session import Session
from roster_rescue.utils import sha256_file, utcnow_iso
from roster_rescue.validation import build_report

app = typer.Typer(
    name="rrescue",
    help="roster-rescue — Validate and repair client/worker/task spreadsheets.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

EXIT_INTERNAL = 1
EXIT_REJECTED = 2
EXIT_INVALID = 3


class EntityOption(str, Enum):
    clients = "clients"
    workers = "workers"
    tasks = "tasks"


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"roster-rescue v{__version__}")
        raise typer.Exit()


def _normalize_column_name(name: object) -> str:
    return re.sub(r"\s+", " ", str(name).strip().lower())


def _parse_column_map(raw: list[str] | None, *, quiet: bool = False) -> dict[str, str]:
    """Parse ``--map Target=Source`` pairs into ``{normalized source: Target}``."""
    if not raw:
        return {}
    mapping: dict[str, str] = {}
    for item in raw:
        if "=" not in item:
            raise ValueError(f"Invalid --map value: {item!r}  (expected Target=Source)")
        target, source = item.split("=", 1)
        target = target.strip()
        source_norm = _normalize_column_name(source)
        if not target or not source_norm:
            raise ValueError("--map entries must have non-empty target and source (Target=Source)")
        if source_norm in mapping and not quiet:
            console.print(f"[yellow]![/yellow] Overriding mapping for source {source_norm!r}")
        mapping[source_norm] = target
    return mapping


def _load_profile_map(profile: Path | None) -> list[str]:
    """Return list of ``Target=Source`` strings from a profile file."""
    if not profile:
        return []
    if not profile.exists():
        raise ValueError(f"Profile not found: {profile} (expected lines like ClientID=Client Id)")
    if profile.is_dir():
        raise ValueError(f"Profile is a directory, not a file: {profile}")
    try:
        text = profile.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read profile {profile}: {exc}") from exc

    lines: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines


def _apply_column_map(df: pd.DataFrame, mapping: dict[str, str]) -> pd.DataFrame:
    """Rename columns whose normalized name appears in *mapping*."""
    if not mapping:
        return df
    rename = {
        col: mapping[_normalize_column_name(col)]
        for col in df.columns
        if _normalize_column_name(col) in mapping
    }
    return df.rename(columns=rename) if rename else df


def _find_duplicate_columns(df: pd.DataFrame) -> list[str]:
    columns = pd.Index([str(c) for c in df.columns])
    return sorted(set(columns[columns.duplicated(keep=False)]))


def _write_manifest(
    out_dir: Path,
    inputs: dict[str, Path],
    run_id: str,
    created_at: str,
    report: ValidationReport,
    *,
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
) -> Path:
    digests: dict[str, str] = {}
    for name, path in inputs.items():
        try:
            digests[name] = sha256_file(path)
        except OSError:
            digests[name] = ""

    manifest = RunManifest(
        version=__version__,
        run_id=run_id,
        inputs={name: str(path.resolve()) for name, path in inputs.items()},
        output_dir=str(out_dir.resolve()),
        created_at_utc=created_at,
        rows=report.rows,
        error_count=report.error_count,
        sha256=digests,
        status=status,
        error_code=error_code,
        error_message=error_message,
    )
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())


def _fail_run(
    out_dir: Path,
    inputs: dict[str, Path],
    run_id: str,
    created_at: str,
    *,
    message: str,
    error_code: int,
) -> NoReturn:
    report = ValidationReport()
    qc_path = write_qc_report(out_dir, report)
    manifest_path = _write_manifest(
        out_dir, inputs, run_id, created_at, report,
        status="failed", error_code=error_code, error_message=message,
    )
    _err(message)
    console.print(f"  Report   -> {qc_path}")
    console.print(f"  Manifest -> {manifest_path}")
    raise typer.Exit(code=error_code)


def _build_session(
    files: list[Path],
    mapping: dict[str, str],
    echo: Callable[..., None],
    delimiter: str | None = None,
) -> tuple[Session, dict[str, Path]]:
    """Load, classify and ingest every file; raise on the first rejected one."""
    session = Session()
    inputs: dict[str, Path] = {}
    for path in files:
        raw_df = load_table(path, delimiter)
        duplicates = _find_duplicate_columns(_apply_column_map(raw_df, mapping))
        if duplicates:
            raise ValueError(f"{path.name}: duplicate columns: {', '.join(duplicates)}")
        headers, rows = frame_to_rows(_apply_column_map(raw_df, mapping))
        entity = session.ingest(headers, rows, filename=path.name)
        if entity in inputs:
            console.print(
                f"[yellow]![/yellow] {path.name} replaces {inputs[entity].name} as {entity}"
            )
        inputs[entity] = path
        echo(f"  {path.name}: {entity} ({len(rows)} rows x {len(headers)} columns)")
    return session, inputs


def _print_summary(report: ValidationReport, max_errors: int) -> None:
    tbl = RichTable(title="Validation Summary", show_lines=True)
    tbl.add_column("Table", style="bold")
    tbl.add_column("Rows", justify="right")
    tbl.add_column("Errors", justify="right")
    per_entity = report.errors_by_entity()
    for entity in ENTITY_TYPES:
        count = per_entity[entity]
        shown = f"[red]{count}[/red]" if count else "[green]0[/green]"
        tbl.add_row(entity, str(report.rows[entity]), shown)
    status = "[green]PASS[/green]" if report.status == "clean" else "[red]FAIL[/red]"
    tbl.add_row("Status", "", status)
    console.print(tbl)

    for issue in report.issues[:max_errors]:
        console.print(f"  [red]*[/red] {issue}")
    if report.error_count > max_errors:
        console.print(f"  … and {report.error_count - max_errors} more")


def _validate_files(
    *,
    files: list[Path],
    out_dir: Path,
    col_map: list[str] | None,
    profile: Path | None,
    no_fail: bool,
    max_errors: int,
    quiet: bool,
    xlsx: bool,
    delimiter: str | None = None,
) -> None:
    echo = _printer(quiet)
    created_at = utcnow_iso()
    run_id = created_at
    out_dir.mkdir(parents=True, exist_ok=True)
    named_inputs = {path.name: path for path in files}
    try:
        mapping = _parse_column_map(_load_profile_map(profile) + (col_map or []), quiet=quiet)
    except ValueError as exc:
        _fail_run(out_dir, named_inputs, run_id, created_at, message=str(exc),
                  error_code=EXIT_REJECTED)

    if not quiet:
        console.print(Panel(
            f"[bold]roster-rescue[/bold] v{__version__}\n"
            f"Inputs: {', '.join(str(f) for f in files)}\nOutput: {out_dir}",
            title="Validate", border_style="cyan",
        ))
        if profile:
            console.print(f"  Using profile: {profile}")
        if mapping:
            console.print(f"  Column map: {mapping}")

    # ── Load + classify ──────────────────────────────────────────
    try:
        session, inputs = _build_session(files, mapping, echo, delimiter)
    except IngestionError as exc:
        console.print(f"  Expected: {', '.join(REQUIRED_COLUMNS[exc.entity])}")
        console.print("  Hint: use --map Target=Source to rename headers")
        _fail_run(out_dir, named_inputs, run_id, created_at, message=str(exc),
                  error_code=EXIT_REJECTED)
    except (FileNotFoundError, ValueError, OSError) as exc:
        _fail_run(out_dir, named_inputs, run_id, created_at, message=str(exc),
                  error_code=EXIT_REJECTED)

    try:
        report = build_report(session.dataset, session.errors)
        qc_path = write_qc_report(out_dir, report)
        status = "success" if report.status == "clean" else "failed"
        error_code = None if report.status == "clean" else EXIT_INVALID
        manifest_path = _write_manifest(
            out_dir, inputs, run_id, created_at, report,
            status=status, error_code=error_code,
            error_message="" if error_code is None else f"{report.error_count} validation error(s)",
        )
        report_path = write_report(out_dir, session.dataset, report) if xlsx else None

        if not quiet:
            _print_summary(report, max_errors)
        console.print(f"  Report   -> {qc_path}")
        console.print(f"  Manifest -> {manifest_path}")
        if report_path is not None:
            console.print(f"  Workbook -> {report_path}")
    except Exception as exc:
        _fail_run(out_dir, inputs, run_id, created_at,
                  message=f"Unexpected internal error: {exc}", error_code=EXIT_INTERNAL)

    if report.error_count and not no_fail:
        raise typer.Exit(code=EXIT_INVALID)


_FILES_ARG = typer.Argument(..., help="CSV or XLSX files (one per table).", exists=True,
                            readable=True, dir_okay=False)
_OUT_DIR_OPT = typer.Option(Path("output"), "--out-dir", "-o", help="Output directory.")
_MAP_OPT = typer.Option(
    None, "--map", "-m",
    help="Column mapping: Target=Source (rename Source->Target). E.g. --map ClientID='Client Id'",
)
_PROFILE_OPT = typer.Option(
    None, "--profile", help="Profile file containing column mappings (Target=Source lines).",
)
_QUIET_OPT = typer.Option(False, "--quiet", "-q", help="Suppress informational output.")
_DELIMITER_OPT = typer.Option(
    None, "--delimiter", "-d", help="CSV delimiter (default: auto-detect).",
)


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """roster-rescue CLI."""
    setup_logging(verbose, console=console)


# ── classify command ─────────────────────────────────────────────


@app.command()
def classify(
    files: list[Path] = _FILES_ARG,
    delimiter: str | None = _DELIMITER_OPT,
) -> None:
    """Print which table each file holds."""
    failed = False
    for path in files:
        try:
            headers, _rows = frame_to_rows(load_table(path, delimiter))
            entity = classify_headers(headers, path.name)
        except (ClassificationError, FileNotFoundError, ValueError, OSError) as exc:
            _err(f"{path.name}: {exc}")
            failed = True
            continue
        console.print(f"{path.name}: [bold]{entity}[/bold]")
    if failed:
        raise typer.Exit(code=EXIT_REJECTED)


# ── validate / report commands ───────────────────────────────────


@app.command()
def validate(
    files: list[Path] = _FILES_ARG,
    out_dir: Path = _OUT_DIR_OPT,
    col_map: list[str] | None = _MAP_OPT,
    profile: Path | None = _PROFILE_OPT,
    no_fail: bool = typer.Option(False, "--no-fail", help="Exit 0 even when errors are found."),
    max_errors: int = typer.Option(20, "--max-errors", min=0, help="Errors to print."),
    quiet: bool = _QUIET_OPT,
    delimiter: str | None = _DELIMITER_OPT,
) -> None:
    """Validate the tables and write validation_report.json + run_manifest.json.

    Exit 0 = clean, 2 = input rejected, 3 = validation errors found.
    """
    _validate_files(files=files, out_dir=out_dir, col_map=col_map, profile=profile,
                    no_fail=no_fail, max_errors=max_errors, quiet=quiet, xlsx=False,
                    delimiter=delimiter)


@app.command()
def report(
    files: list[Path] = _FILES_ARG,
    out_dir: Path = _OUT_DIR_OPT,
    col_map: list[str] | None = _MAP_OPT,
    profile: Path | None = _PROFILE_OPT,
    no_fail: bool = typer.Option(False, "--no-fail", help="Exit 0 even when errors are found."),
    max_errors: int = typer.Option(20, "--max-errors", min=0, help="Errors to print."),
    quiet: bool = _QUIET_OPT,
    delimiter: str | None = _DELIMITER_OPT,
) -> None:
    """Validate and also write Validation_Report.xlsx with highlighted errors."""
    _validate_files(files=files, out_dir=out_dir, col_map=col_map, profile=profile,
                    no_fail=no_fail, max_errors=max_errors, quiet=quiet, xlsx=True,
                    delimiter=delimiter)


# ── fix command ──────────────────────────────────────────────────


@app.command()
def fix(
    files: list[Path] = _FILES_ARG,
    entity: EntityOption = typer.Option(..., "--entity", "-e", help="Table to repair."),
    out_dir: Path = _OUT_DIR_OPT,
    col_map: list[str] | None = _MAP_OPT,
    profile: Path | None = _PROFILE_OPT,
    rules_file: Path | None = typer.Option(None, "--rules", help="Business rules JSON file."),
    apply: bool = typer.Option(False, "--apply", help="Write the corrected table."),
    api_key: str = typer.Option("", "--api-key", envvar="GOOGLE_API_KEY", help="Oracle API key."),
    model: str = typer.Option(DEFAULT_MODEL, "--model", envvar="RRESCUE_MODEL"),
    timeout: float = typer.Option(DEFAULT_TIMEOUT, "--timeout", envvar="RRESCUE_TIMEOUT"),
    quiet: bool = _QUIET_OPT,
    delimiter: str | None = _DELIMITER_OPT,
) -> None:
    """Ask the AI oracle to fix one table; review the changes, optionally apply."""
    echo = _printer(quiet)
    try:
        mapping = _parse_column_map(_load_profile_map(profile) + (col_map or []), quiet=quiet)
        session, inputs = _build_session(files, mapping, echo, delimiter)
    except (FileNotFoundError, ValueError, OSError) as exc:
        _err(str(exc))
        raise typer.Exit(code=EXIT_REJECTED)

    name = entity.value
    rows = session.dataset.rows(name)
    issues = session.errors_for(name)
    if not issues:
        console.print(f"[green]No errors in {name}; nothing to fix.[/green]")
        return

    echo(f"[blue]>[/blue] Asking the oracle to fix {len(issues)} error(s) in {name} …")
    client = OracleClient(api_key=api_key, model=model, timeout=timeout)
    try:
        fixed = client.fix_table(name, rows, issues, load_rules(rules_file))
    except OracleError as exc:
        _err(str(exc))
        raise typer.Exit(code=EXIT_INTERNAL)
    if not fixed:
        _err("The oracle returned no usable fix.")
        raise typer.Exit(code=EXIT_INTERNAL)

    changes = diff_rows(rows, fixed)
    tbl = RichTable(title=f"Suggested changes ({name})")
    tbl.add_column("Row", justify="right")
    tbl.add_column("Field", style="bold")
    tbl.add_column("Old")
    tbl.add_column("New", style="green")
    for row_index, field, old, new in changes:
        tbl.add_row(str(row_index + 1), field, str(old), str(new))
    console.print(tbl)

    if not apply:
        console.print("  Re-run with --apply to write the corrected table.")
        return

    remaining = session.replace_rows(name, fixed)
    source = inputs.get(name)
    suffix = source.suffix.lower() if source and source.suffix.lower() == ".xlsx" else ".csv"
    out_path = export_rows(session.dataset.rows(name), out_dir / f"{name}_fixed{suffix}")
    left = len([i for i in remaining if i.entity == name])
    console.print(f"  Fixed table -> {out_path}")
    console.print(f"  Errors in {name}: {len(issues)} -> {left}")


# ── rules command ────────────────────────────────────────────────


@app.command("rules")
def list_rules(
    rules_file: Path | None = typer.Option(None, "--rules", help="Business rules JSON file."),
    entity: EntityOption | None = typer.Option(None, "--entity", "-e"),
) -> None:
    """List active business rules, highest priority first."""
    selected = active_rules(load_rules(rules_file), entity.value if entity else None)
    tbl = RichTable(title="Active Business Rules")
    tbl.add_column("Priority", justify="right")
    tbl.add_column("Scope", style="bold")
    tbl.add_column("Name")
    tbl.add_column("Rule")
    for rule in selected:
        scope = rule.entity_type + (f".{rule.field}" if rule.field else "")
        tbl.add_row(str(rule.priority), scope, rule.name, rule.rule)
    console.print(tbl)
