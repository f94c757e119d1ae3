"""roster-rescue — Validate and repair client/worker/task spreadsheets."""

__version__ = "0.2.0"

ENTITY_TYPES: tuple[str, ...] = ("clients", "workers", "tasks")

KEY_FIELDS: dict[str, str] = {
    "clients": "ClientID",
    "workers": "WorkerID",
    "tasks": "TaskID",
}

REQUIRED_COLUMNS: dict[str, list[str]] = {
    "clients": ["ClientID", "ClientName", "PriorityLevel"],
    "workers": ["WorkerID", "WorkerName", "Skills", "AvailableSlots", "MaxLoadPerPhase"],
    "tasks": ["TaskID", "TaskName", "Duration", "RequiredSkills", "MaxConcurrent"],
}
