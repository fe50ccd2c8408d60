"""Service layer for BASTP handover documents."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload, selectinload

from activity_log import record_activity, snapshot
from bastp_status import BASTPState, Transition, TransitionContext, compute_total_days, reconcile
from document_storage import BASTP_BUCKET, DocumentValidationError, get_document_storage
from extensions import db
from form_values import parse_date, parse_decimal, parse_int, strip_or_none
from models import (
    BASTP,
    ActivityAction,
    BASTPStatus,
    BASTPWorkDetail,
    GeneralService,
    GeneralServiceType,
    Invoice,
    User,
    Vessel,
    WorkDetail,
    WorkOrder,
    role_has_permission,
)
from progress_summary import current_progress
from work_details import verified_work_detail_ids


class HandoverValidationError(Exception):
    """Raised when a BASTP, invoice or material payload is invalid."""

    def __init__(self, errors: list[str]):
        super().__init__(", ".join(errors))
        self.errors = errors


class HandoverNotFoundError(LookupError):
    pass


class HandoverPermissionError(PermissionError):
    pass


_AUDIT_FIELDS = ("number", "date", "delivery_date", "status", "storage_path", "vessel_id")


def require_permission(user: Optional[User], permission: str, message: str) -> None:
    role = user.role if user is not None else None
    if not role_has_permission(role, permission):
        raise HandoverPermissionError(message)


def _bastp_query():
    return BASTP.active().options(
        joinedload(BASTP.vessel),
        selectinload(BASTP.work_detail_links).joinedload(BASTPWorkDetail.work_detail),
        selectinload(BASTP.general_services).joinedload(GeneralService.service_type),
    )


def get_bastp(bastp_id: int) -> BASTP:
    bastp = _bastp_query().filter(BASTP.id == bastp_id).first()
    if bastp is None:
        raise HandoverNotFoundError("BASTP not found.")
    return bastp


def _linked_elsewhere(work_detail_ids: Iterable[int], exclude_bastp_id: Optional[int] = None) -> dict[int, str]:
    """Map of work detail id to the number of the other active BASTP holding it."""

    ids = list(work_detail_ids)
    if not ids:
        return {}
    query = (
        db.session.query(BASTPWorkDetail.work_details_id, BASTP.number)
        .join(BASTP, BASTPWorkDetail.bastp_id == BASTP.id)
        .filter(
            BASTPWorkDetail.deleted_at.is_(None),
            BASTP.deleted_at.is_(None),
            BASTPWorkDetail.work_details_id.in_(ids),
        )
    )
    if exclude_bastp_id is not None:
        query = query.filter(BASTP.id != exclude_bastp_id)
    return {detail_id: number for detail_id, number in query.all()}


def available_work_details(vessel_id: int, exclude_bastp_id: Optional[int] = None) -> list[dict]:
    """Completed work of a vessel that no other active BASTP covers yet."""

    details = (
        WorkDetail.active()
        .join(WorkOrder, WorkDetail.work_order_id == WorkOrder.id)
        .filter(WorkOrder.deleted_at.is_(None), WorkOrder.vessel_id == vessel_id)
        .options(selectinload(WorkDetail.progress_reports), joinedload(WorkDetail.work_order))
        .order_by(WorkDetail.id)
        .all()
    )
    taken = _linked_elsewhere([detail.id for detail in details], exclude_bastp_id)
    verified = verified_work_detail_ids([detail.id for detail in details])

    available = []
    for detail in details:
        if detail.id in taken:
            continue
        summary = current_progress(detail.active_progress_reports)
        if not summary.is_complete:
            continue
        available.append(
            {
                "detail": detail,
                "progress": summary.value,
                "is_verified": detail.id in verified,
            }
        )
    return available


def _parse_header(payload: dict, errors: list[str], *, partial: bool = False) -> dict[str, Any]:
    values: dict[str, Any] = {}

    if not partial or "number" in payload:
        number = strip_or_none(payload.get("number"))
        if not number:
            errors.append("BASTP number is required")
        values["number"] = number

    for key, label, required in (
        ("date", "BASTP date", True),
        ("delivery_date", "delivery date", False),
    ):
        if partial and key not in payload:
            continue
        try:
            parsed = parse_date(payload.get(key), label)
        except ValueError as exc:
            errors.append(str(exc))
            continue
        if parsed is None and required:
            errors.append(f"{label[0].upper()}{label[1:]} is required")
        values[key] = parsed
    return values


def _parse_work_detail_ids(raw, errors: list[str]) -> list[int]:
    ids: list[int] = []
    for value in raw or []:
        try:
            parsed = parse_int(value, "work detail")
        except ValueError as exc:
            errors.append(str(exc))
            continue
        if parsed and parsed not in ids:
            ids.append(parsed)
    if not ids:
        errors.append("Select at least one work detail")
    return ids


def _check_work_details(
    vessel_id: int, ids: list[int], errors: list[str], *, exclude_bastp_id: Optional[int] = None
) -> None:
    if not ids:
        return
    details = {
        detail.id: detail
        for detail in WorkDetail.active()
        .filter(WorkDetail.id.in_(ids))
        .options(selectinload(WorkDetail.progress_reports), joinedload(WorkDetail.work_order))
        .all()
    }
    taken = _linked_elsewhere(ids, exclude_bastp_id)
    for detail_id in ids:
        detail = details.get(detail_id)
        if detail is None:
            errors.append(f"Work detail {detail_id} could not be found")
            continue
        if detail.work_order is None or detail.work_order.vessel_id != vessel_id:
            errors.append(f"Work detail {detail_id} does not belong to the selected vessel")
        if not current_progress(detail.active_progress_reports).is_complete:
            errors.append(f"Work detail {detail_id} has not reached 100% progress")
        if detail_id in taken:
            errors.append(f"Work detail {detail_id} is already included in BASTP {taken[detail_id]}")


def _parse_general_services(raw, errors: list[str]) -> list[dict[str, Any]]:
    services: list[dict[str, Any]] = []
    for index, entry in enumerate(raw or [], start=1):
        prefix = f"Service #{index}: "
        entry = entry or {}
        try:
            service_type_id = parse_int(entry.get("service_type_id"), "service type")
        except ValueError as exc:
            errors.append(f"{prefix}{exc}")
            continue
        if not service_type_id:
            errors.append(f"{prefix}Service type is required")
            continue
        if db.session.get(GeneralServiceType, service_type_id) is None:
            errors.append(f"{prefix}Selected service type could not be found")
            continue
        try:
            start_date = parse_date(entry.get("start_date"), "start date")
            close_date = parse_date(entry.get("close_date"), "close date")
            unit_price = parse_decimal(entry.get("unit_price"), "unit price")
            payment_price = parse_decimal(entry.get("payment_price"), "payment price")
        except ValueError as exc:
            errors.append(f"{prefix}{exc}")
            continue
        if start_date and close_date and close_date < start_date:
            errors.append(f"{prefix}Close date must be on or after start date")
        for label, price in (("Unit price", unit_price), ("Payment price", payment_price)):
            if price is not None and price < 0:
                errors.append(f"{prefix}{label} cannot be negative")
        services.append(
            {
                "service_type_id": service_type_id,
                "start_date": start_date,
                "close_date": close_date,
                "total_days": compute_total_days(start_date, close_date),
                "unit_price": unit_price,
                "payment_price": payment_price,
                "remarks": strip_or_none(entry.get("remarks")),
            }
        )
    return services


def _replace_links(bastp: BASTP, ids: list[int]) -> None:
    wanted = set(ids)
    for link in bastp.active_work_detail_links:
        if link.work_details_id in wanted:
            wanted.discard(link.work_details_id)
        else:
            link.soft_delete()
    for detail_id in ids:
        if detail_id in wanted:
            bastp.work_detail_links.append(BASTPWorkDetail(work_details_id=detail_id))


def create_bastp(user: Optional[User], payload: dict) -> BASTP:
    require_permission(user, "manage_bastp", "You do not have permission to create BASTP documents.")
    payload = payload or {}
    errors: list[str] = []
    values = _parse_header(payload, errors)

    try:
        vessel_id = parse_int(payload.get("vessel_id"), "vessel")
    except ValueError as exc:
        errors.append(str(exc))
        vessel_id = None
    else:
        if not vessel_id:
            errors.append("Please select a vessel")
        elif Vessel.get_active(vessel_id) is None:
            errors.append("Selected vessel could not be found")
            vessel_id = None

    ids = _parse_work_detail_ids(payload.get("work_details_ids") or payload.get("work_detail_ids"), errors)
    if vessel_id:
        _check_work_details(vessel_id, ids, errors)
    services = _parse_general_services(payload.get("general_services"), errors)
    if errors:
        raise HandoverValidationError(errors)

    bastp = BASTP(
        vessel_id=vessel_id,
        user_id=user.id,
        status=BASTPStatus.DRAFT.value,
        **values,
    )
    for detail_id in ids:
        bastp.work_detail_links.append(BASTPWorkDetail(work_details_id=detail_id))
    for service in services:
        bastp.general_services.append(GeneralService(**service))
    db.session.add(bastp)
    db.session.flush()
    record_activity(
        user,
        ActivityAction.CREATE,
        BASTP.__tablename__,
        bastp.id,
        new_data={**snapshot(bastp, _AUDIT_FIELDS), "work_details_ids": ids},
        description=f"Created BASTP {bastp.number}",
    )
    db.session.commit()
    return bastp


def update_bastp(user: Optional[User], bastp_id: int, payload: dict) -> BASTP:
    """Edit header fields; the covered work and services may only change while DRAFT."""

    require_permission(user, "manage_bastp", "You do not have permission to edit BASTP documents.")
    bastp = get_bastp(bastp_id)
    payload = payload or {}
    if bastp.status == BASTPStatus.INVOICED.value:
        raise HandoverValidationError(["An invoiced BASTP can no longer be edited"])

    errors: list[str] = []
    values = _parse_header(payload, errors, partial=True)

    ids = None
    raw_ids = payload.get("work_details_ids", payload.get("work_detail_ids"))
    touches_content = raw_ids is not None or "general_services" in payload
    if touches_content and bastp.status != BASTPStatus.DRAFT.value:
        errors.append("Work details and general services can only be changed while the BASTP is DRAFT")
    elif raw_ids is not None:
        ids = _parse_work_detail_ids(raw_ids, errors)
        _check_work_details(bastp.vessel_id, ids, errors, exclude_bastp_id=bastp.id)
    services = None
    if "general_services" in payload and not errors:
        services = _parse_general_services(payload.get("general_services"), errors)
    if errors:
        raise HandoverValidationError(errors)

    old_data = {**snapshot(bastp, _AUDIT_FIELDS), "work_details_ids": bastp.work_detail_ids}
    for name, value in values.items():
        setattr(bastp, name, value)
    if ids is not None:
        _replace_links(bastp, ids)
    if services is not None:
        bastp.general_services = [GeneralService(**service) for service in services]
    db.session.flush()
    db.session.expire(bastp, ["work_detail_links"])
    new_data = {**snapshot(bastp, _AUDIT_FIELDS), "work_details_ids": bastp.work_detail_ids}
    record_activity(
        user,
        ActivityAction.UPDATE,
        BASTP.__tablename__,
        bastp.id,
        old_data=old_data,
        new_data=new_data,
    )
    db.session.commit()
    return bastp


def upload_bastp_document(user: Optional[User], bastp_id: int, file) -> BASTP:
    """Attach the signed handover document, replacing any earlier upload."""

    require_permission(user, "manage_bastp", "You do not have permission to upload BASTP documents.")
    bastp = get_bastp(bastp_id)
    if bastp.status == BASTPStatus.INVOICED.value:
        raise HandoverValidationError(["An invoiced BASTP can no longer be edited"])
    if file is None:
        raise HandoverValidationError(["A BASTP document is required"])

    storage = get_document_storage()
    old_path = bastp.storage_path

    def persist(new_path: str) -> None:
        bastp.storage_path = new_path
        bastp.bastp_upload_date = datetime.utcnow()
        record_activity(
            user,
            ActivityAction.UPDATE,
            BASTP.__tablename__,
            bastp.id,
            old_data={"storage_path": old_path},
            new_data={"storage_path": new_path},
            description=f"Uploaded document for BASTP {bastp.number}",
        )
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

    try:
        storage.replace(
            BASTP_BUCKET,
            old_path,
            file.stream,
            filename=file.filename,
            content_type=file.mimetype,
            persist=persist,
        )
    except DocumentValidationError as exc:
        raise HandoverValidationError(exc.errors) from exc
    return bastp


def delete_bastp(user: Optional[User], bastp_id: int) -> None:
    require_permission(user, "manage_bastp", "You do not have permission to delete BASTP documents.")
    bastp = get_bastp(bastp_id)
    if bastp.status != BASTPStatus.DRAFT.value:
        raise HandoverValidationError([f"Only DRAFT BASTP documents can be deleted (current: {bastp.status})"])

    old_data = {**snapshot(bastp, _AUDIT_FIELDS), "work_details_ids": bastp.work_detail_ids}
    for link in bastp.active_work_detail_links:
        link.soft_delete()
    bastp.soft_delete()
    record_activity(user, ActivityAction.DELETE, BASTP.__tablename__, bastp.id, old_data=old_data)
    db.session.commit()


def invoiced_bastp_ids(bastp_ids: Iterable[int]) -> frozenset:
    ids = list(bastp_ids)
    if not ids:
        return frozenset()
    rows = (
        db.session.query(Invoice.bastp_id)
        .filter(Invoice.deleted_at.is_(None), Invoice.bastp_id.in_(ids))
        .distinct()
        .all()
    )
    return frozenset(row[0] for row in rows)


def sync_bastp_statuses(bastps: Optional[list[BASTP]] = None) -> list[Transition]:
    """Bring stored BASTP statuses up to date with the observed data.

    Every step of every transition is written as its own conditional UPDATE
    so a concurrent writer that already advanced the row is left alone.
    """

    if bastps is None:
        bastps = _bastp_query().all()
    if not bastps:
        return []

    states = [BASTPState.from_record(bastp) for bastp in bastps]
    detail_ids = {detail_id for state in states for detail_id in state.work_detail_ids}
    context = TransitionContext(
        verified_work_detail_ids=verified_work_detail_ids(detail_ids),
        invoiced_bastp_ids=invoiced_bastp_ids(state.id for state in states),
    )
    _, writes = reconcile(states, context)
    if not writes:
        return []

    applied: list[Transition] = []
    for transition in writes:
        updated = (
            BASTP.query.filter(
                BASTP.id == transition.bastp_id,
                BASTP.status == transition.from_status.value,
            ).update(
                {"status": transition.to_status.value, "updated_at": datetime.utcnow()},
                synchronize_session=False,
            )
        )
        if updated:
            applied.append(transition)
            current_app.logger.info(
                "BASTP %s status %s -> %s",
                transition.bastp_id,
                transition.from_status.value,
                transition.to_status.value,
            )
    db.session.commit()
    return applied


def list_bastps(
    *,
    status: Optional[str] = None,
    vessel_id: Optional[int] = None,
    search: Optional[str] = None,
) -> list[BASTP]:
    """All active BASTPs, with statuses reconciled once before filtering."""

    sync_bastp_statuses()

    query = _bastp_query().join(Vessel, BASTP.vessel_id == Vessel.id)
    if status:
        query = query.filter(BASTP.status == str(status).strip().upper())
    if vessel_id:
        query = query.filter(BASTP.vessel_id == vessel_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(BASTP.number.ilike(like), Vessel.name.ilike(like), Vessel.company.ilike(like))
        )
    return query.order_by(BASTP.date.desc(), BASTP.id.desc()).all()


def status_counts(bastps: Iterable[BASTP]) -> dict[str, int]:
    counts = {status.value: 0 for status in BASTPStatus}
    for bastp in bastps:
        counts[bastp.status] = counts.get(bastp.status, 0) + 1
    return counts


def list_general_service_types() -> list[GeneralServiceType]:
    return GeneralServiceType.query.order_by(
        GeneralServiceType.display_order, GeneralServiceType.service_name
    ).all()
