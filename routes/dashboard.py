"""Headline numbers for the landing page."""

from __future__ import annotations

from decimal import Decimal

from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required
from sqlalchemy import func
from sqlalchemy.orm import selectinload

from extensions import db
from handover import list_bastps, status_counts
from models import Invoice, Vessel, WorkDetail, WorkOrder, role_has_permission
from progress_summary import current_progress
from routes.auth import current_role
from work_status import WorkStatus, derive_work_status

bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@bp.get("/summary")
@jwt_required()
def summary():
    details = (
        WorkDetail.active()
        .join(WorkOrder, WorkDetail.work_order_id == WorkOrder.id)
        .filter(WorkOrder.deleted_at.is_(None))
        .options(selectinload(WorkDetail.progress_reports))
        .all()
    )
    by_status = {status.value: 0 for status in WorkStatus}
    progress_values = []
    for detail in details:
        by_status[derive_work_status(detail).value] += 1
        progress_values.append(current_progress(detail.progress_reports).value)

    payload = {
        "vessels": Vessel.active().count(),
        "work_orders": WorkOrder.active().count(),
        "work_details": {
            "total": len(details),
            "by_status": by_status,
            "average_progress": round(sum(progress_values) / len(progress_values)) if progress_values else 0,
        },
        "bastp": status_counts(list_bastps()),
    }

    if role_has_permission(current_role(), "view_invoices"):
        rows = (
            db.session.query(Invoice.payment_status, func.count(Invoice.id), func.sum(Invoice.payment_price))
            .filter(Invoice.deleted_at.is_(None))
            .group_by(Invoice.payment_status)
            .all()
        )
        invoices = {"paid": 0, "unpaid": 0, "paid_amount": 0.0, "unpaid_amount": 0.0}
        for paid, count, amount in rows:
            key = "paid" if paid else "unpaid"
            invoices[key] += count
            invoices[f"{key}_amount"] += float(amount or Decimal("0"))
        payload["invoices"] = invoices

    return jsonify(payload)
