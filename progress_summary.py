"""Reduce accumulated progress reports to a work item's current progress."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional


@dataclass(frozen=True)
class ProgressSummary:
    value: int
    as_of: Optional[date]
    count: int

    @property
    def is_complete(self) -> bool:
        return self.value >= 100


EMPTY_SUMMARY = ProgressSummary(0, None, 0)


def _field(report: Any, *names: str):
    for name in names:
        if isinstance(report, Mapping):
            if name in report:
                return report[name]
        elif hasattr(report, name):
            return getattr(report, name)
    return None


def _as_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def _percentage(report) -> int:
    raw = _field(report, "progress_percentage", "progress")
    try:
        value = int(round(float(raw)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(value, 100))


def _active(reports: Iterable[Any]) -> list[Any]:
    return [report for report in reports or [] if not _field(report, "deleted_at")]


def _sort_key(report) -> tuple:
    report_date = _as_date(_field(report, "report_date"))
    report_id = _field(report, "id")
    # Latest date wins; on a tie the highest id wins and id-less rows lose.
    return (
        report_date is not None,
        report_date or date.min,
        report_id is not None,
        report_id if isinstance(report_id, int) else 0,
    )


def current_progress(reports: Iterable[Any]) -> ProgressSummary:
    active = _active(reports)
    if not active:
        return EMPTY_SUMMARY
    latest = max(active, key=_sort_key)
    return ProgressSummary(
        value=_percentage(latest),
        as_of=_as_date(_field(latest, "report_date")),
        count=len(active),
    )


def progress_history(reports: Iterable[Any]) -> list[dict]:
    """Chronological ``{"date", "progress"}`` points for charting."""

    ordered = sorted(_active(reports), key=_sort_key)
    history = []
    for report in ordered:
        report_date = _as_date(_field(report, "report_date"))
        history.append(
            {
                "date": report_date.isoformat() if report_date else None,
                "progress": _percentage(report),
            }
        )
    return history


def work_order_progress(details: Iterable[Any]) -> int:
    """Average current progress over the non-deleted details of a work order."""

    values = [
        current_progress(_field(detail, "progress_reports") or []).value
        for detail in _active(details)
    ]
    if not values:
        return 0
    return int(round(sum(values) / len(values)))


__all__ = [
    "EMPTY_SUMMARY",
    "ProgressSummary",
    "current_progress",
    "progress_history",
    "work_order_progress",
]
