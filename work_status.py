from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Optional


class WorkStatus(str, Enum):
    NOT_READY = "NOT_READY"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


_STATUS_LABELS = {
    WorkStatus.NOT_READY: "Not Ready",
    WorkStatus.IN_PROGRESS: "In Progress",
    WorkStatus.COMPLETED: "Completed",
}

_STATUS_COLORS = {
    WorkStatus.NOT_READY: "gray",
    WorkStatus.IN_PROGRESS: "blue",
    WorkStatus.COMPLETED: "green",
}


def _field(detail, name: str):
    if isinstance(detail, Mapping):
        return detail.get(name)
    return getattr(detail, name, None)


def _is_set(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def derive_work_status(detail) -> WorkStatus:
    """Return the execution status of a work detail from its actual dates.

    ``detail`` may be a model instance or a mapping; absent, ``None`` and
    blank values all count as "not set".
    """

    if _is_set(_field(detail, "actual_close_date")):
        return WorkStatus.COMPLETED
    if _is_set(_field(detail, "actual_start_date")):
        return WorkStatus.IN_PROGRESS
    return WorkStatus.NOT_READY


def _normalize_status(status: Optional[object]) -> Optional[WorkStatus]:
    if status is None:
        return None
    if isinstance(status, WorkStatus):
        return status
    code = str(status).strip().upper().replace(" ", "_")
    try:
        return WorkStatus(code)
    except ValueError:
        return None


def get_status_label(status: Optional[object]) -> Optional[str]:
    normalized = _normalize_status(status)
    if normalized is None:
        return None
    return _STATUS_LABELS[normalized]


def get_status_color(status: Optional[object]) -> Optional[str]:
    normalized = _normalize_status(status)
    if normalized is None:
        return None
    return _STATUS_COLORS.get(normalized)


__all__ = [
    "WorkStatus",
    "derive_work_status",
    "get_status_color",
    "get_status_label",
]
