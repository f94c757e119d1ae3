"""CLI integration smoke tests for roster-rescue."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from openpyxl import load_workbook
from typer.testing import CliRunner

from roster_rescue import __version__
from roster_rescue.cli import EXIT_INTERNAL, EXIT_INVALID, EXIT_REJECTED, app
from roster_rescue.repair import OracleClient, OracleError

runner = CliRunner()

CLIENTS_OK = "ClientID,ClientName,PriorityLevel,RequestedTaskIDs\nC1,Acme,3,T1\n"
WORKERS_OK = (
    "WorkerID,WorkerName,Skills,AvailableSlots,MaxLoadPerPhase\n"
    'W1,Ada,coding,"[1,2,3]",2\n'
)
TASKS_OK = "TaskID,TaskName,Duration,RequiredSkills,MaxConcurrent\nT1,Build,2,coding,1\n"


def _write_csv(tmp_path: Path, name: str, rows: str) -> Path:
    path = tmp_path / name
    path.write_text(rows, encoding="utf-8")
    return path


def _clean_inputs(tmp_path: Path) -> list[str]:
    return [
        str(_write_csv(tmp_path, "clients.csv", CLIENTS_OK)),
        str(_write_csv(tmp_path, "workers.csv", WORKERS_OK)),
        str(_write_csv(tmp_path, "tasks.csv", TASKS_OK)),
    ]


def _read_json(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_validate_clean_writes_artifacts(tmp_path: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["validate", *_clean_inputs(tmp_path), "-o", str(out_dir), "-q"])

    assert result.exit_code == 0, result.output
    report = _read_json(out_dir / "validation_report.json")
    manifest = _read_json(out_dir / "run_manifest.json")
    assert report["status"] == "clean"
    assert report["entities"]["workers"] == {"rows": 1, "errors": 0}
    assert manifest["status"] == "success"
    assert manifest["rows"] == {"clients": 1, "workers": 1, "tasks": 1}
    assert set(manifest["sha256"]) == {"clients", "workers", "tasks"}
    assert not (out_dir / "Validation_Report.xlsx").exists()


def test_validate_errors_exit_code_and_report(tmp_path: Path) -> None:
    clients = _write_csv(
        tmp_path, "clients.csv",
        "ClientID,ClientName,PriorityLevel,RequestedTaskIDs\nC1,Acme,7,T1;T9\nC1,Beta,2,\n",
    )
    tasks = _write_csv(tmp_path, "tasks.csv", TASKS_OK)
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["validate", str(clients), str(tasks), "-o", str(out_dir), "-q"])

    assert result.exit_code == EXIT_INVALID
    report = _read_json(out_dir / "validation_report.json")
    messages = {(e["row_index"], e["field"], e["message"]) for e in report["errors"]}
    assert (0, "PriorityLevel", "Number must be less than or equal to 5") in messages
    assert (0, "RequestedTaskIDs", "Unknown TaskID 'T9'") in messages
    assert (1, "ClientID", "Duplicate ClientID 'C1'") in messages
    assert report["status"] == "failed"
    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["error_code"] == EXIT_INVALID
    assert manifest["error_count"] == report["error_count"]


def test_validate_no_fail_exits_zero_with_errors(tmp_path: Path) -> None:
    tasks = _write_csv(tmp_path, "tasks.csv", TASKS_OK.replace(",2,", ",0,"))
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["validate", str(tasks), "-o", str(out_dir), "--no-fail", "-q"])

    assert result.exit_code == 0
    assert _read_json(out_dir / "validation_report.json")["error_count"] == 1


def test_validate_prints_summary_and_issues(tmp_path: Path) -> None:
    tasks = _write_csv(tmp_path, "tasks.csv", TASKS_OK.replace(",2,", ",x,"))

    result = runner.invoke(app, ["validate", str(tasks), "-o", str(tmp_path / "out")])

    assert result.exit_code == EXIT_INVALID
    assert "Validation Summary" in result.output
    assert "Expected number" in result.output


def test_validate_unclassifiable_file_is_rejected(tmp_path: Path) -> None:
    mystery = _write_csv(tmp_path, "mystery.csv", "a,b\n1,2\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["validate", str(mystery), "-o", str(out_dir), "-q"])

    assert result.exit_code == EXIT_REJECTED
    assert "Could not determine entity type" in result.output
    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["status"] == "failed"
    assert manifest["error_code"] == EXIT_REJECTED
    assert _read_json(out_dir / "validation_report.json")["error_count"] == 0


def test_validate_missing_required_column_is_rejected(tmp_path: Path) -> None:
    clients = _write_csv(tmp_path, "clients.csv", "ClientID,ClientName\nC1,Acme\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["validate", str(clients), "-o", str(out_dir)])

    assert result.exit_code == EXIT_REJECTED
    assert "PriorityLevel" in result.output
    assert "--map" in result.output
    assert "PriorityLevel" in _read_json(out_dir / "run_manifest.json")["error_message"]


def test_validate_column_map_renames_headers(tmp_path: Path) -> None:
    data = _write_csv(
        tmp_path, "data.csv", "Client Id,ClientName,Priority,RequestedTaskIDs\nC1,Acme,2,\n"
    )
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "validate", str(data), "-o", str(out_dir), "-q",
            "--map", "ClientID=client id", "--map", "PriorityLevel=Priority",
        ],
    )

    assert result.exit_code == 0, result.output
    assert _read_json(out_dir / "validation_report.json")["entities"]["clients"]["rows"] == 1


def test_validate_profile_file_supplies_map(tmp_path: Path) -> None:
    data = _write_csv(tmp_path, "clients.csv", "Id,ClientName,PriorityLevel\nC1,Acme,2\n")
    profile = tmp_path / "profile.txt"
    profile.write_text("# roster headers\nClientID=Id\n\n", encoding="utf-8")

    result = runner.invoke(
        app, ["validate", str(data), "--profile", str(profile), "-o", str(tmp_path / "o"), "-q"]
    )

    assert result.exit_code == 0, result.output


def test_validate_bad_map_value_is_rejected(tmp_path: Path) -> None:
    data = _write_csv(tmp_path, "clients.csv", CLIENTS_OK)

    result = runner.invoke(
        app, ["validate", str(data), "--map", "nonsense", "-o", str(tmp_path / "o"), "-q"]
    )

    assert result.exit_code == EXIT_REJECTED
    assert "Invalid --map value" in result.output


def test_validate_duplicate_columns_after_map_are_rejected(tmp_path: Path) -> None:
    data = _write_csv(tmp_path, "clients.csv", "ClientID,Id,ClientName,PriorityLevel\nC1,C2,A,1\n")

    result = runner.invoke(
        app, ["validate", str(data), "--map", "ClientID=Id", "-o", str(tmp_path / "o"), "-q"]
    )

    assert result.exit_code == EXIT_REJECTED
    assert "duplicate columns" in result.output


def test_validate_explicit_delimiter(tmp_path: Path) -> None:
    tasks = _write_csv(tmp_path, "tasks.csv", TASKS_OK.replace(",", "|"))
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["validate", str(tasks), "--delimiter", "|", "-o", str(out_dir), "-q"]
    )

    assert result.exit_code == 0, result.output
    assert _read_json(out_dir / "validation_report.json")["entities"]["tasks"]["rows"] == 1


def test_classify_command_with_delimiter(tmp_path: Path) -> None:
    clients = _write_csv(tmp_path, "data.csv", CLIENTS_OK.replace(",", ";"))

    result = runner.invoke(app, ["classify", str(clients), "-d", ";"])

    assert result.exit_code == 0, result.output
    assert "data.csv: clients" in result.output


def test_report_writes_workbook(tmp_path: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["report", *_clean_inputs(tmp_path), "-o", str(out_dir), "-q"])

    assert result.exit_code == 0, result.output
    wb = load_workbook(out_dir / "Validation_Report.xlsx")
    assert wb.sheetnames == ["Summary", "Clients", "Workers", "Tasks", "Errors"]


def test_classify_command(tmp_path: Path) -> None:
    workers = _write_csv(tmp_path, "staff.csv", WORKERS_OK)
    by_name = _write_csv(tmp_path, "task_list.csv", "TaskName,Priority\nBuild,1\n")

    result = runner.invoke(app, ["classify", str(workers), str(by_name)])

    assert result.exit_code == 0, result.output
    assert "staff.csv: workers" in result.output
    assert "task_list.csv: tasks" in result.output


def test_classify_command_rejects_unknown(tmp_path: Path) -> None:
    mystery = _write_csv(tmp_path, "mystery.csv", "a,b\n1,2\n")

    result = runner.invoke(app, ["classify", str(mystery)])

    assert result.exit_code == EXIT_REJECTED


def test_rules_command_lists_defaults() -> None:
    result = runner.invoke(app, ["rules"])

    assert result.exit_code == 0
    assert "Active Business Rules" in result.output


def test_rules_command_reads_rules_file(tmp_path: Path) -> None:
    rules_file = tmp_path / "rules.json"
    rules_file.write_text(
        json.dumps([{"id": "x", "name": "Caps", "rule": "Uppercase IDs", "entityType": "tasks",
                     "priority": 9}]),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["rules", "--rules", str(rules_file), "--entity", "tasks"])

    assert result.exit_code == 0
    assert "Caps" in result.output
    assert "Duration" not in result.output


def _broken_tasks(tmp_path: Path) -> Path:
    return _write_csv(tmp_path, "tasks.csv", TASKS_OK.replace(",2,", ",0,"))


def test_fix_previews_without_writing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, object] = {}

    def _fake_fix(self, entity, rows, issues, rules):
        seen.update(entity=entity, issues=list(issues), rules=list(rules))
        return [{**rows[0], "Duration": "1"}]

    monkeypatch.setattr(OracleClient, "fix_table", _fake_fix)
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["fix", str(_broken_tasks(tmp_path)), "--entity", "tasks", "--api-key", "k",
              "-o", str(out_dir)],
    )

    assert result.exit_code == 0, result.output
    assert "--apply" in result.output
    assert seen["entity"] == "tasks"
    assert len(seen["issues"]) == 1  # type: ignore[arg-type]
    assert seen["rules"]
    assert not (out_dir / "tasks_fixed.csv").exists()


def test_fix_apply_writes_corrected_table(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        OracleClient, "fix_table", lambda self, entity, rows, issues, rules: [
            {**rows[0], "Duration": "1"}
        ],
    )
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["fix", str(_broken_tasks(tmp_path)), "-e", "tasks", "--api-key", "k",
              "--apply", "-o", str(out_dir)],
    )

    assert result.exit_code == 0, result.output
    fixed = (out_dir / "tasks_fixed.csv").read_text(encoding="utf-8").splitlines()
    assert fixed[0] == "TaskID,TaskName,Duration,RequiredSkills,MaxConcurrent"
    assert fixed[1] == "T1,Build,1,coding,1"
    assert "1 -> 0" in result.output


def test_fix_nothing_to_do(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def _unexpected(*_args: object, **_kwargs: object) -> list:
        raise AssertionError("oracle must not be called")

    monkeypatch.setattr(OracleClient, "fix_table", _unexpected)
    tasks = _write_csv(tmp_path, "tasks.csv", TASKS_OK)

    result = runner.invoke(app, ["fix", str(tasks), "-e", "tasks", "--api-key", "k"])

    assert result.exit_code == 0
    assert "nothing to fix" in result.output


def test_fix_oracle_failure_exits_internal(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def _down(*_args: object, **_kwargs: object) -> list:
        raise OracleError("Oracle request failed with HTTP 503")

    monkeypatch.setattr(OracleClient, "fix_table", _down)

    result = runner.invoke(app, ["fix", str(_broken_tasks(tmp_path)), "-e", "tasks", "--api-key", "k"])

    assert result.exit_code == EXIT_INTERNAL
    assert "503" in result.output


def test_fix_unusable_answer_exits_internal(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(OracleClient, "fix_table", lambda *a, **k: [])

    result = runner.invoke(app, ["fix", str(_broken_tasks(tmp_path)), "-e", "tasks", "--api-key", "k"])

    assert result.exit_code == EXIT_INTERNAL
    assert "no usable fix" in result.output


def test_fix_rejected_input(tmp_path: Path) -> None:
    mystery = _write_csv(tmp_path, "mystery.csv", "a,b\n1,2\n")

    result = runner.invoke(app, ["fix", str(mystery), "-e", "tasks"])

    assert result.exit_code == EXIT_REJECTED
