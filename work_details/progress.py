"""Progress reports attached to a work detail."""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from activity_log import record_activity, snapshot
from document_storage import (
    PROGRESS_EVIDENCE_BUCKET,
    DocumentValidationError,
    get_document_storage,
)
from extensions import db
from form_values import parse_date, parse_int, strip_or_none
from models import ActivityAction, ProgressReport, User, role_has_permission
from progress_summary import ProgressSummary, current_progress, progress_history

from .services import (
    WorkNotFoundError,
    WorkPermissionError,
    WorkValidationError,
    get_work_detail,
)

_AUDIT_FIELDS = ("work_details_id", "progress_percentage", "report_date", "notes", "storage_path")


def _require_progress_permission(user: Optional[User]) -> None:
    role = user.role if user is not None else None
    if not role_has_permission(role, "manage_work_progress"):
        raise WorkPermissionError("You do not have permission to manage progress reports.")


def _parse_report(payload: dict) -> tuple[dict, list[str]]:
    errors: list[str] = []
    values: dict = {}

    try:
        progress = parse_int(payload.get("progress_percentage", payload.get("progress")), "progress")
    except ValueError as exc:
        errors.append(str(exc))
    else:
        if progress is None:
            errors.append("Progress percentage is required")
        elif progress < 0 or progress > 100:
            errors.append("Progress must be between 0 and 100")
        values["progress_percentage"] = progress

    try:
        report_date = parse_date(payload.get("report_date"), "report date")
    except ValueError as exc:
        errors.append(str(exc))
    else:
        if report_date is None:
            errors.append("Report date is required")
        elif report_date > date.today():
            errors.append("Report date cannot be in the future")
        values["report_date"] = report_date

    values["notes"] = strip_or_none(payload.get("notes"))
    return values, errors


def create_progress_report(
    user: Optional[User], detail_id: int, payload: dict, evidence=None
) -> ProgressReport:
    """Record a new progress report, optionally with a photo as evidence.

    Reports accumulate; the latest one by report date is the current
    progress of the work detail.
    """

    _require_progress_permission(user)
    detail = get_work_detail(detail_id)
    values, errors = _parse_report(payload or {})
    if errors:
        raise WorkValidationError(errors)

    storage = get_document_storage()
    evidence_path = None
    if evidence is not None and evidence.filename:
        try:
            evidence_path = storage.upload(
                PROGRESS_EVIDENCE_BUCKET,
                evidence.stream,
                filename=evidence.filename,
                content_type=evidence.mimetype,
            )
        except DocumentValidationError as exc:
            raise WorkValidationError(exc.errors) from exc

    report = ProgressReport(
        work_details_id=detail.id,
        user_id=user.id,
        storage_path=evidence_path,
        **values,
    )
    db.session.add(report)
    try:
        db.session.flush()
        record_activity(
            user,
            ActivityAction.CREATE,
            ProgressReport.__tablename__,
            report.id,
            new_data=snapshot(report, _AUDIT_FIELDS),
            description=f"Reported {report.progress_percentage}% progress",
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        storage.remove_quietly(PROGRESS_EVIDENCE_BUCKET, evidence_path)
        raise
    return report


def get_progress_report(report_id: int) -> ProgressReport:
    report = ProgressReport.get_active(report_id)
    if report is None:
        raise WorkNotFoundError("Progress report not found.")
    return report


def delete_progress_report(user: Optional[User], report_id: int) -> None:
    _require_progress_permission(user)
    report = get_progress_report(report_id)
    old_data = snapshot(report, _AUDIT_FIELDS)
    report.soft_delete()
    record_activity(
        user,
        ActivityAction.DELETE,
        ProgressReport.__tablename__,
        report.id,
        old_data=old_data,
    )
    db.session.commit()


def list_progress_reports(detail_id: int) -> list[ProgressReport]:
    get_work_detail(detail_id)
    return (
        ProgressReport.active()
        .filter(ProgressReport.work_details_id == detail_id)
        .order_by(ProgressReport.report_date.desc(), ProgressReport.id.desc())
        .all()
    )


def progress_overview(detail_id: int) -> tuple[ProgressSummary, list[dict], list[ProgressReport]]:
    reports = list_progress_reports(detail_id)
    return current_progress(reports), progress_history(reports), reports
