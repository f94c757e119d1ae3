from __future__ import annotations

from conftest import client, task, worker
from roster_rescue.models import Dataset
from roster_rescue.validation import (
    build_report,
    cell_issues,
    issues_for,
    row_issues,
    rows_with_issues,
    validate,
)


def _messy_dataset() -> Dataset:
    return Dataset(
        clients=[
            client(PriorityLevel="7", RequestedTaskIDs="T1,T8", AttributesJSON="{"),
            client(ClientName="", RequestedTaskIDs="T5"),
        ],
        workers=[
            worker(AvailableSlots="[1]", MaxLoadPerPhase="4"),
            worker(WorkerID="W2", AvailableSlots="oops"),
        ],
        tasks=[task(), task(TaskID="T2", Duration="x")],
    )


def test_clean_dataset_has_no_issues(clean_dataset: Dataset) -> None:
    assert validate(clean_dataset) == []


def test_empty_dataset_has_no_issues() -> None:
    assert validate(Dataset()) == []


def test_validate_is_deterministic() -> None:
    dataset = _messy_dataset()

    assert validate(dataset) == validate(dataset)


def test_checkers_run_in_fixed_order() -> None:
    issues = validate(_messy_dataset())

    assert [(i.entity, i.row_index, i.field) for i in issues] == [
        # schema
        ("clients", 0, "PriorityLevel"),
        ("clients", 1, "ClientName"),
        ("tasks", 1, "Duration"),
        # cross-reference
        ("clients", 0, "ClientID"),
        ("clients", 1, "ClientID"),
        ("clients", 0, "RequestedTaskIDs"),
        ("clients", 1, "RequestedTaskIDs"),
        # structure
        ("clients", 0, "AttributesJSON"),
        ("workers", 0, "MaxLoadPerPhase"),
        ("workers", 1, "AvailableSlots"),
    ]


def test_end_to_end_scenario() -> None:
    dataset = Dataset(
        clients=[
            {
                "ClientID": "C1",
                "ClientName": "Acme",
                "PriorityLevel": "9",
                "RequestedTaskIDs": "T1,T9",
            }
        ],
        tasks=[{"TaskID": "T1", "TaskName": "X", "Duration": "2", "MaxConcurrent": "1"}],
    )

    issues = validate(dataset)

    assert [(i.field, i.message) for i in issues] == [
        ("PriorityLevel", "Number must be less than or equal to 5"),
        ("RequestedTaskIDs", "Unknown TaskID 'T9'"),
    ]


def test_validate_accepts_plain_mapping() -> None:
    issues = validate({"clients": [client(PriorityLevel="0")]})

    assert [i.field for i in issues] == ["PriorityLevel", "RequestedTaskIDs"]


def test_consumer_helpers_filter_issues() -> None:
    issues = validate(_messy_dataset())

    assert len(issues_for(issues, "workers")) == 2
    assert [i.field for i in row_issues(issues, "clients", 1)] == ["ClientName", "ClientID", "RequestedTaskIDs"]
    assert len(cell_issues(issues, "clients", 0, "RequestedTaskIDs")) == 1
    assert rows_with_issues(issues, "tasks") == [1]


def test_build_report_counts_rows_and_errors() -> None:
    dataset = _messy_dataset()

    report = build_report(dataset)

    assert report.rows == {"clients": 2, "workers": 2, "tasks": 2}
    assert report.errors_by_entity() == {"clients": 7, "workers": 2, "tasks": 1}
    assert report.status == "failed"
