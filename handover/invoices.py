"""Invoices raised against handed-over BASTP documents."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import or_
from sqlalchemy.orm import joinedload

from activity_log import record_activity, snapshot
from extensions import db
from form_values import parse_bool, parse_date, parse_decimal, parse_int, strip_or_none
from models import BASTP, ActivityAction, BASTPStatus, Invoice, User, Vessel

from .services import (
    HandoverNotFoundError,
    HandoverValidationError,
    get_bastp,
    require_permission,
    sync_bastp_statuses,
)

_DATE_FIELDS = (
    ("wo_document_collection_date", "WO document collection date"),
    ("due_date", "due date"),
    ("delivery_date", "delivery date"),
    ("collection_date", "collection date"),
    ("payment_date", "payment date"),
)
_TEXT_FIELDS = ("invoice_number", "faktur_number", "receiver_name", "remarks")
AUDIT_FIELDS = (
    "bastp_id",
    "invoice_number",
    "faktur_number",
    "wo_document_collection_date",
    "due_date",
    "delivery_date",
    "collection_date",
    "receiver_name",
    "payment_price",
    "payment_status",
    "payment_date",
    "remarks",
)


def _parse_invoice(payload: dict, *, partial: bool) -> tuple[dict[str, Any], list[str]]:
    values: dict[str, Any] = {}
    errors: list[str] = []

    for name in _TEXT_FIELDS:
        if partial and name not in payload:
            continue
        values[name] = strip_or_none(payload.get(name))

    for name, label in _DATE_FIELDS:
        if partial and name not in payload:
            continue
        try:
            values[name] = parse_date(payload.get(name), label)
        except ValueError as exc:
            errors.append(str(exc))

    if not partial or "payment_price" in payload:
        try:
            price = parse_decimal(payload.get("payment_price"), "payment price")
        except ValueError as exc:
            errors.append(str(exc))
        else:
            if price is not None and price < 0:
                errors.append("Payment price cannot be negative")
            values["payment_price"] = price

    if not partial or "payment_status" in payload:
        values["payment_status"] = parse_bool(payload.get("payment_status"))

    if not partial and not values.get("invoice_number"):
        errors.append("Invoice number is required")
    return values, errors


def _normalize_payment(invoice: Invoice) -> None:
    # An unpaid invoice has no payment date.
    if not invoice.payment_status:
        invoice.payment_date = None


def create_invoice(user: Optional[User], payload: dict) -> Invoice:
    """Raise an invoice for a BASTP that is ready for invoicing.

    The BASTP statuses are reconciled before the check so a freshly
    uploaded document counts, and again afterwards so the BASTP moves to
    INVOICED.
    """

    require_permission(user, "manage_invoices", "You do not have permission to create invoices.")
    payload = payload or {}
    try:
        bastp_id = parse_int(payload.get("bastp_id"), "BASTP")
    except ValueError as exc:
        raise HandoverValidationError([str(exc)]) from exc
    if not bastp_id:
        raise HandoverValidationError(["Please select a BASTP"])

    bastp = get_bastp(bastp_id)
    sync_bastp_statuses([bastp])
    bastp = get_bastp(bastp_id)

    values, errors = _parse_invoice(payload, partial=False)
    if bastp.status != BASTPStatus.READY_FOR_INVOICE.value:
        errors.insert(0, f"BASTP {bastp.number} is {bastp.status} and cannot be invoiced")
    if errors:
        raise HandoverValidationError(errors)

    invoice = Invoice(bastp_id=bastp.id, user_id=user.id, **values)
    _normalize_payment(invoice)
    db.session.add(invoice)
    db.session.flush()
    record_activity(
        user,
        ActivityAction.CREATE,
        Invoice.__tablename__,
        invoice.id,
        new_data=snapshot(invoice, AUDIT_FIELDS),
        description=f"Created invoice {invoice.invoice_number} for BASTP {bastp.number}",
    )
    db.session.commit()

    sync_bastp_statuses([bastp])
    return get_invoice(invoice.id)


def get_invoice(invoice_id: int) -> Invoice:
    invoice = (
        Invoice.active()
        .options(joinedload(Invoice.bastp).joinedload(BASTP.vessel))
        .filter(Invoice.id == invoice_id)
        .first()
    )
    if invoice is None:
        raise HandoverNotFoundError("Invoice not found.")
    return invoice


def update_invoice(user: Optional[User], invoice_id: int, payload: dict) -> Invoice:
    require_permission(user, "manage_invoices", "You do not have permission to edit invoices.")
    invoice = get_invoice(invoice_id)
    values, errors = _parse_invoice(payload or {}, partial=True)
    if "invoice_number" in values and not values["invoice_number"]:
        errors.append("Invoice number is required")
    if errors:
        raise HandoverValidationError(errors)

    old_data = snapshot(invoice, AUDIT_FIELDS)
    for name, value in values.items():
        setattr(invoice, name, value)
    _normalize_payment(invoice)
    record_activity(
        user,
        ActivityAction.UPDATE,
        Invoice.__tablename__,
        invoice.id,
        old_data=old_data,
        new_data=snapshot(invoice, AUDIT_FIELDS),
    )
    db.session.commit()
    return invoice


def delete_invoice(user: Optional[User], invoice_id: int) -> None:
    """Soft-delete an invoice. The BASTP stays INVOICED; statuses never move back."""

    require_permission(user, "manage_invoices", "You do not have permission to delete invoices.")
    invoice = get_invoice(invoice_id)
    old_data = snapshot(invoice, AUDIT_FIELDS)
    invoice.soft_delete()
    record_activity(user, ActivityAction.DELETE, Invoice.__tablename__, invoice.id, old_data=old_data)
    db.session.commit()


def list_invoices(
    *,
    payment_status: Optional[bool] = None,
    bastp_id: Optional[int] = None,
    search: Optional[str] = None,
) -> list[Invoice]:
    query = (
        Invoice.active()
        .join(BASTP, Invoice.bastp_id == BASTP.id)
        .join(Vessel, BASTP.vessel_id == Vessel.id)
        .options(joinedload(Invoice.bastp).joinedload(BASTP.vessel))
    )
    if payment_status is not None:
        query = query.filter(Invoice.payment_status.is_(payment_status))
    if bastp_id:
        query = query.filter(Invoice.bastp_id == bastp_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Invoice.invoice_number.ilike(like),
                Invoice.faktur_number.ilike(like),
                BASTP.number.ilike(like),
                Vessel.name.ilike(like),
            )
        )
    return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()


def invoice_totals(invoice: Invoice) -> dict[str, Decimal]:
    """Amounts shown on the printed invoice."""

    services_total = sum(
        (service.payment_price or Decimal("0")) for service in invoice.bastp.general_services
    )
    work_total = invoice.payment_price or Decimal("0")
    return {
        "work_total": work_total,
        "services_total": services_total,
        "grand_total": work_total + services_total,
    }
