"""Service layer for work details."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from activity_log import record_activity, snapshot
from document_storage import (
    WORK_PERMIT_BUCKET,
    DocumentValidationError,
    get_document_storage,
)
from extensions import db
from field_access import (
    EXECUTION_FIELDS,
    FIELD_LABELS,
    PLANNING_FIELDS,
    FieldAccess,
    can_create_work_details,
    field_access,
    normalize_field,
    normalize_role,
    partition_changes,
    validate_work_detail,
)
from form_values import parse_bool, parse_date, parse_decimal, parse_int, strip_or_none
from models import (
    BASTP,
    ActivityAction,
    BASTPWorkDetail,
    Location,
    User,
    WorkDetail,
    WorkOrder,
    WorkScope,
    role_has_permission,
)
from work_status import WorkStatus


class WorkValidationError(Exception):
    """Raised when a work-detail payload breaks one or more rules."""

    def __init__(self, errors: list[str]):
        super().__init__(", ".join(errors))
        self.errors = errors


class WorkNotFoundError(LookupError):
    pass


class WorkPermissionError(PermissionError):
    pass


_TEXT_FIELDS = {
    "description",
    "work_location",
    "work_type",
    "uom",
    "period_close_target",
    "pic",
    "spk_number",
    "spkk_number",
    "ptw_number",
    "notes",
}
_DATE_FIELDS = {
    "planned_start_date",
    "target_close_date",
    "actual_start_date",
    "actual_close_date",
}
_ID_FIELDS = {"location_id", "work_scope_id"}

# The permit is attached through an upload, never through a JSON payload.
FORM_FIELDS = tuple(name for name in PLANNING_FIELDS + EXECUTION_FIELDS if name != "work_permit")
AUDIT_FIELDS = FORM_FIELDS + ("storage_path",)


def _parse_value(name: str, value: Any) -> Any:
    label = FIELD_LABELS.get(name, name)
    if name in _TEXT_FIELDS:
        return strip_or_none(value)
    if name in _DATE_FIELDS:
        return parse_date(value, label)
    if name in _ID_FIELDS:
        return parse_int(value, label) or None
    if name == "quantity":
        return parse_decimal(value, label)
    if name == "is_additional_wo_details":
        return parse_bool(value)
    return value


def parse_work_detail_payload(payload: dict) -> tuple[dict[str, Any], list[str]]:
    """Coerce the known form fields of ``payload``; unknown keys are ignored."""

    values: dict[str, Any] = {}
    errors: list[str] = []
    payload = payload or {}
    for key, raw in payload.items():
        name = normalize_field(key)
        if name not in FORM_FIELDS:
            continue
        # Nested objects echoed back from a GET are not form values.
        if key != name and (isinstance(raw, Mapping) or name in payload):
            continue
        try:
            values[name] = _parse_value(name, raw)
        except ValueError as exc:
            errors.append(str(exc))
    return values, errors


def current_values(detail: WorkDetail) -> dict[str, Any]:
    return {name: getattr(detail, name) for name in FORM_FIELDS}


def _reference_errors(values: dict[str, Any], prefix: str = "") -> list[str]:
    errors: list[str] = []
    location_id = values.get("location_id")
    if location_id and Location.get_active(location_id) is None:
        errors.append(f"{prefix}Selected location could not be found")
    work_scope_id = values.get("work_scope_id")
    if work_scope_id and WorkScope.get_active(work_scope_id) is None:
        errors.append(f"{prefix}Selected work scope could not be found")
    return errors


def _user_role(user: Optional[User]):
    return normalize_role(user.role) if user is not None else None


def get_work_detail(detail_id: int) -> WorkDetail:
    detail = (
        WorkDetail.active()
        .options(
            joinedload(WorkDetail.work_order).joinedload(WorkOrder.vessel),
            joinedload(WorkDetail.location),
            joinedload(WorkDetail.work_scope),
        )
        .filter(WorkDetail.id == detail_id)
        .first()
    )
    if detail is None:
        raise WorkNotFoundError("Work detail not found.")
    return detail


def create_work_details(user: Optional[User], work_order_id, rows: Iterable[dict]) -> list[WorkDetail]:
    role = _user_role(user)
    if not can_create_work_details(role):
        raise WorkPermissionError("Only PPIC or MASTER users can create work details.")

    try:
        work_order_id = parse_int(work_order_id, "work order")
    except ValueError as exc:
        raise WorkValidationError([str(exc)]) from exc
    if not work_order_id:
        raise WorkValidationError(["Please select a work order"])
    work_order = WorkOrder.get_active(work_order_id)
    if work_order is None:
        raise WorkNotFoundError("Work order not found.")

    rows = list(rows or [])
    if not rows:
        raise WorkValidationError(["At least one work detail is required"])

    errors: list[str] = []
    parsed_rows: list[dict[str, Any]] = []
    for index, row in enumerate(rows, start=1):
        prefix = f"Row {index}: "
        values, parse_errors = parse_work_detail_payload(row)
        errors.extend(f"{prefix}{message}" for message in parse_errors)
        errors.extend(validate_work_detail(role, values, is_update=False, prefix=prefix))
        errors.extend(_reference_errors(values, prefix))
        parsed_rows.append(values)
    if errors:
        raise WorkValidationError(errors)

    created: list[WorkDetail] = []
    for values in parsed_rows:
        detail = WorkDetail(work_order_id=work_order.id, user_id=user.id, **values)
        db.session.add(detail)
        db.session.flush()
        record_activity(
            user,
            ActivityAction.CREATE,
            WorkDetail.__tablename__,
            detail.id,
            new_data=snapshot(detail, AUDIT_FIELDS),
            description=f"Created work detail for WO {work_order.shipyard_wo_number}",
        )
        created.append(detail)
    db.session.commit()
    return created


def update_work_detail(user: Optional[User], detail_id: int, payload: dict) -> WorkDetail:
    """Apply the fields ``user`` may write; read-only fields must stay unchanged."""

    role = _user_role(user)
    if not role_has_permission(role, "manage_work_details"):
        raise WorkPermissionError("You do not have permission to edit work details.")
    detail = get_work_detail(detail_id)

    changes, errors = parse_work_detail_payload(payload)
    current = current_values(detail)
    writable, access_errors = partition_changes(role, changes, current)
    errors.extend(access_errors)
    merged = {**current, **writable}
    errors.extend(validate_work_detail(role, merged, is_update=True))
    errors.extend(_reference_errors(writable))
    if errors:
        raise WorkValidationError(errors)

    old_data = snapshot(detail, AUDIT_FIELDS)
    for name, value in writable.items():
        setattr(detail, name, value)
    new_data = snapshot(detail, AUDIT_FIELDS)
    if new_data != old_data:
        record_activity(
            user,
            ActivityAction.UPDATE,
            WorkDetail.__tablename__,
            detail.id,
            old_data=old_data,
            new_data=new_data,
        )
    db.session.commit()
    return detail


def attach_work_permit(user: Optional[User], detail_id: int, file) -> WorkDetail:
    """Store a new permit PDF and point the work detail at it.

    The superseded file is removed afterwards on a best-effort basis.
    """

    role = _user_role(user)
    if field_access(role, "work_permit") is not FieldAccess.WRITE:
        raise WorkPermissionError("You do not have permission to upload work permits.")
    detail = get_work_detail(detail_id)
    if file is None:
        raise WorkValidationError(["A work permit file is required"])

    storage = get_document_storage()
    old_path = detail.storage_path

    def persist(new_path: str) -> None:
        detail.storage_path = new_path
        record_activity(
            user,
            ActivityAction.UPDATE,
            WorkDetail.__tablename__,
            detail.id,
            old_data={"storage_path": old_path},
            new_data={"storage_path": new_path},
            description="Uploaded work permit",
        )
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

    try:
        storage.replace(
            WORK_PERMIT_BUCKET,
            old_path,
            file.stream,
            filename=file.filename,
            content_type=file.mimetype,
            persist=persist,
        )
    except DocumentValidationError as exc:
        raise WorkValidationError(exc.errors) from exc
    return detail


def remove_work_permit(user: Optional[User], detail_id: int) -> WorkDetail:
    role = _user_role(user)
    if field_access(role, "work_permit") is not FieldAccess.WRITE:
        raise WorkPermissionError("You do not have permission to remove work permits.")
    detail = get_work_detail(detail_id)
    old_path = detail.storage_path
    if not old_path:
        return detail

    detail.storage_path = None
    record_activity(
        user,
        ActivityAction.UPDATE,
        WorkDetail.__tablename__,
        detail.id,
        old_data={"storage_path": old_path},
        new_data={"storage_path": None},
        description="Removed work permit",
    )
    db.session.commit()
    get_document_storage().remove_quietly(WORK_PERMIT_BUCKET, old_path)
    return detail


def delete_work_detail(user: Optional[User], detail_id: int) -> None:
    if not can_create_work_details(_user_role(user)):
        raise WorkPermissionError("Only PPIC or MASTER users can delete work details.")
    detail = get_work_detail(detail_id)

    link = (
        BASTPWorkDetail.active()
        .join(BASTP, BASTPWorkDetail.bastp_id == BASTP.id)
        .filter(BASTPWorkDetail.work_details_id == detail.id, BASTP.deleted_at.is_(None))
        .first()
    )
    if link is not None:
        raise WorkValidationError([f"Work detail is linked to BASTP {link.bastp.number}"])

    old_data = snapshot(detail, AUDIT_FIELDS)
    detail.soft_delete()
    record_activity(
        user,
        ActivityAction.DELETE,
        WorkDetail.__tablename__,
        detail.id,
        old_data=old_data,
    )
    db.session.commit()
    current_app.logger.info("Work detail %s soft-deleted by user %s", detail.id, user.id)


def _status_clause(status: WorkStatus):
    if status is WorkStatus.COMPLETED:
        return WorkDetail.actual_close_date.isnot(None)
    if status is WorkStatus.IN_PROGRESS:
        return (WorkDetail.actual_close_date.is_(None)) & (WorkDetail.actual_start_date.isnot(None))
    return (WorkDetail.actual_close_date.is_(None)) & (WorkDetail.actual_start_date.is_(None))


def list_work_details(
    *,
    work_order_id: Optional[int] = None,
    vessel_id: Optional[int] = None,
    status: Optional[WorkStatus] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 25,
) -> tuple[list[WorkDetail], int]:
    query = (
        WorkDetail.active()
        .join(WorkOrder, WorkDetail.work_order_id == WorkOrder.id)
        .filter(WorkOrder.deleted_at.is_(None))
        .options(
            joinedload(WorkDetail.work_order).joinedload(WorkOrder.vessel),
            joinedload(WorkDetail.location),
            joinedload(WorkDetail.work_scope),
        )
    )
    if work_order_id:
        query = query.filter(WorkDetail.work_order_id == work_order_id)
    if vessel_id:
        query = query.filter(WorkOrder.vessel_id == vessel_id)
    if status is not None:
        query = query.filter(_status_clause(status))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(
                WorkDetail.description.ilike(like),
                WorkDetail.pic.ilike(like),
                WorkDetail.work_location.ilike(like),
                WorkDetail.spk_number.ilike(like),
                WorkOrder.shipyard_wo_number.ilike(like),
            )
        )

    total = query.count()
    page = max(page, 1)
    page_size = max(1, min(page_size, 200))
    items = (
        query.order_by(WorkDetail.created_at.desc(), WorkDetail.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return items, total
