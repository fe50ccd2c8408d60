"""Verification of finished work details."""

from __future__ import annotations

from datetime import date
from typing import Iterable, Optional

from activity_log import record_activity, snapshot
from extensions import db
from form_values import parse_date, strip_or_none
from models import (
    BASTP,
    ActivityAction,
    BASTPStatus,
    BASTPWorkDetail,
    User,
    WorkDetail,
    WorkOrder,
    WorkVerification,
    role_has_permission,
)
from progress_summary import current_progress

from .services import (
    WorkNotFoundError,
    WorkPermissionError,
    WorkValidationError,
    get_work_detail,
)

_AUDIT_FIELDS = ("work_details_id", "work_verification", "verification_date", "notes")


def _require_verify_permission(user: Optional[User]) -> None:
    role = user.role if user is not None else None
    if not role_has_permission(role, "verify_work"):
        raise WorkPermissionError("You do not have permission to verify work.")


def active_verification(detail_id: int) -> Optional[WorkVerification]:
    return (
        WorkVerification.active()
        .filter(
            WorkVerification.work_details_id == detail_id,
            WorkVerification.work_verification.is_(True),
        )
        .first()
    )


def verified_work_detail_ids(detail_ids: Optional[Iterable[int]] = None) -> frozenset:
    query = db.session.query(WorkVerification.work_details_id).filter(
        WorkVerification.deleted_at.is_(None),
        WorkVerification.work_verification.is_(True),
    )
    if detail_ids is not None:
        detail_ids = list(detail_ids)
        if not detail_ids:
            return frozenset()
        query = query.filter(WorkVerification.work_details_id.in_(detail_ids))
    return frozenset(row[0] for row in query.all())


def verify_work_detail(user: Optional[User], detail_id: int, payload: Optional[dict] = None) -> WorkVerification:
    """Mark a work detail as verified once its current progress reaches 100%."""

    _require_verify_permission(user)
    detail = get_work_detail(detail_id)
    payload = payload or {}

    errors: list[str] = []
    if not current_progress(detail.active_progress_reports).is_complete:
        errors.append("Work must reach 100% progress before it can be verified")
    if active_verification(detail.id) is not None:
        errors.append("Work detail is already verified")
    try:
        verification_date = parse_date(payload.get("verification_date"), "verification date") or date.today()
    except ValueError as exc:
        errors.append(str(exc))
        verification_date = None
    if errors:
        raise WorkValidationError(errors)

    verification = WorkVerification(
        work_details_id=detail.id,
        work_verification=True,
        verification_date=verification_date,
        notes=strip_or_none(payload.get("notes")),
        user_id=user.id,
    )
    db.session.add(verification)
    db.session.flush()
    record_activity(
        user,
        ActivityAction.CREATE,
        WorkVerification.__tablename__,
        verification.id,
        new_data=snapshot(verification, _AUDIT_FIELDS),
        description=f"Verified work detail {detail.id}",
    )
    db.session.commit()
    return verification


def delete_verification(user: Optional[User], verification_id: int) -> None:
    _require_verify_permission(user)
    verification = WorkVerification.get_active(verification_id)
    if verification is None:
        raise WorkNotFoundError("Work verification not found.")

    # A BASTP never moves backwards, so its evidence is frozen past DRAFT.
    locked = (
        BASTPWorkDetail.active()
        .join(BASTP, BASTPWorkDetail.bastp_id == BASTP.id)
        .filter(
            BASTPWorkDetail.work_details_id == verification.work_details_id,
            BASTP.deleted_at.is_(None),
            BASTP.status != BASTPStatus.DRAFT.value,
        )
        .first()
    )
    if locked is not None:
        raise WorkValidationError(
            [f"Verification is locked by BASTP {locked.bastp.number} ({locked.bastp.status})"]
        )

    old_data = snapshot(verification, _AUDIT_FIELDS)
    verification.soft_delete()
    record_activity(
        user,
        ActivityAction.DELETE,
        WorkVerification.__tablename__,
        verification.id,
        old_data=old_data,
    )
    db.session.commit()


def list_verifications(
    *, work_details_id: Optional[int] = None, vessel_id: Optional[int] = None
) -> list[WorkVerification]:
    query = (
        WorkVerification.active()
        .join(WorkDetail, WorkVerification.work_details_id == WorkDetail.id)
        .filter(WorkDetail.deleted_at.is_(None))
    )
    if work_details_id:
        query = query.filter(WorkVerification.work_details_id == work_details_id)
    if vessel_id:
        query = query.join(WorkOrder, WorkDetail.work_order_id == WorkOrder.id).filter(
            WorkOrder.vessel_id == vessel_id
        )
    return query.order_by(WorkVerification.verification_date.desc(), WorkVerification.id.desc()).all()
