from __future__ import annotations

from typing import Any

import pytest

from roster_rescue.models import Dataset


def client(**overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "ClientID": "C1",
        "ClientName": "Acme",
        "PriorityLevel": "3",
        "RequestedTaskIDs": "T1",
    }
    row.update(overrides)
    return row


def worker(**overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "WorkerID": "W1",
        "WorkerName": "Ada",
        "Skills": "coding",
        "AvailableSlots": "[1,2,3]",
        "MaxLoadPerPhase": "2",
    }
    row.update(overrides)
    return row


def task(**overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "TaskID": "T1",
        "TaskName": "Build",
        "Duration": "2",
        "RequiredSkills": "coding",
        "MaxConcurrent": "1",
    }
    row.update(overrides)
    return row


@pytest.fixture
def clean_dataset() -> Dataset:
    return Dataset(clients=[client()], workers=[worker()], tasks=[task()])
