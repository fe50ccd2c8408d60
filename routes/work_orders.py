"""Work orders raised against a vessel."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required
from sqlalchemy import or_
from sqlalchemy.orm import joinedload, selectinload

from activity_log import record_activity, snapshot
from extensions import db
from form_values import parse_date, parse_int, strip_or_none
from models import ActivityAction, Vessel, WorkDetail, WorkOrder
from progress_summary import work_order_progress
from routes.auth import current_user, request_payload, require_permission
from schemas import WorkOrderSchema

bp = Blueprint("work_orders", __name__, url_prefix="/api/work-orders")
work_order_schema = WorkOrderSchema()

_FIELDS = (
    "vessel_id",
    "shipyard_wo_number",
    "shipyard_wo_date",
    "customer_wo_number",
    "customer_wo_date",
    "wo_document_delivery_date",
)
_DATE_FIELDS = (
    ("shipyard_wo_date", "shipyard WO date"),
    ("customer_wo_date", "customer WO date"),
    ("wo_document_delivery_date", "WO document delivery date"),
)


def _serialize(work_order: WorkOrder) -> dict:
    data = work_order_schema.dump(work_order)
    details = [detail for detail in work_order.work_details if detail.deleted_at is None]
    data["work_details_count"] = len(details)
    data["progress"] = work_order_progress(details)
    return data


def _parse(data: dict, *, partial: bool) -> tuple[dict, list[str]]:
    values: dict = {}
    errors: list[str] = []

    if not partial or "vessel_id" in data:
        try:
            vessel_id = parse_int(data.get("vessel_id"), "vessel")
        except ValueError as exc:
            errors.append(str(exc))
        else:
            if not vessel_id:
                errors.append("Please select a vessel")
            elif Vessel.get_active(vessel_id) is None:
                errors.append("Selected vessel could not be found")
            values["vessel_id"] = vessel_id

    if not partial or "shipyard_wo_number" in data:
        number = strip_or_none(data.get("shipyard_wo_number"))
        if not number:
            errors.append("Shipyard WO number is required")
        values["shipyard_wo_number"] = number
    if not partial or "customer_wo_number" in data:
        values["customer_wo_number"] = strip_or_none(data.get("customer_wo_number"))

    for name, label in _DATE_FIELDS:
        if partial and name not in data:
            continue
        try:
            values[name] = parse_date(data.get(name), label)
        except ValueError as exc:
            errors.append(str(exc))
    return values, errors


def _load(work_order_id: int):
    return (
        WorkOrder.active()
        .options(joinedload(WorkOrder.vessel), selectinload(WorkOrder.work_details).selectinload(WorkDetail.progress_reports))
        .filter(WorkOrder.id == work_order_id)
        .first()
    )


@bp.get("")
@jwt_required()
def list_work_orders():
    q = (
        WorkOrder.active()
        .join(Vessel, WorkOrder.vessel_id == Vessel.id)
        .options(joinedload(WorkOrder.vessel), selectinload(WorkOrder.work_details).selectinload(WorkDetail.progress_reports))
    )
    vessel_id = request.args.get("vessel_id", type=int)
    if vessel_id:
        q = q.filter(WorkOrder.vessel_id == vessel_id)
    text = request.args.get("q")
    if text:
        like = f"%{text.strip()}%"
        q = q.filter(
            or_(
                WorkOrder.shipyard_wo_number.ilike(like),
                WorkOrder.customer_wo_number.ilike(like),
                Vessel.name.ilike(like),
            )
        )
    work_orders = q.order_by(WorkOrder.created_at.desc(), WorkOrder.id.desc()).all()
    return jsonify([_serialize(work_order) for work_order in work_orders])


@bp.get("/<int:work_order_id>")
@jwt_required()
def get_work_order(work_order_id):
    work_order = _load(work_order_id)
    if work_order is None:
        return jsonify({"msg": "Work order not found."}), 404
    return jsonify(_serialize(work_order))


@bp.post("")
@jwt_required()
def create_work_order():
    error = require_permission("manage_work_orders")
    if error:
        return error
    values, errors = _parse(request_payload(), partial=False)
    if errors:
        return jsonify({"msg": "; ".join(errors), "errors": errors}), 400

    user = current_user()
    work_order = WorkOrder(user_id=user.id if user else None, **values)
    db.session.add(work_order)
    db.session.flush()
    record_activity(
        user,
        ActivityAction.CREATE,
        WorkOrder.__tablename__,
        work_order.id,
        new_data=snapshot(work_order, _FIELDS),
    )
    db.session.commit()
    return jsonify(_serialize(_load(work_order.id))), 201


@bp.patch("/<int:work_order_id>")
@jwt_required()
def update_work_order(work_order_id):
    error = require_permission("manage_work_orders")
    if error:
        return error
    work_order = _load(work_order_id)
    if work_order is None:
        return jsonify({"msg": "Work order not found."}), 404

    values, errors = _parse(request_payload(), partial=True)
    if errors:
        return jsonify({"msg": "; ".join(errors), "errors": errors}), 400

    old_data = snapshot(work_order, _FIELDS)
    for name, value in values.items():
        setattr(work_order, name, value)
    record_activity(
        current_user(),
        ActivityAction.UPDATE,
        WorkOrder.__tablename__,
        work_order.id,
        old_data=old_data,
        new_data=snapshot(work_order, _FIELDS),
    )
    db.session.commit()
    return jsonify(_serialize(_load(work_order.id)))


@bp.delete("/<int:work_order_id>")
@jwt_required()
def delete_work_order(work_order_id):
    error = require_permission("manage_work_orders")
    if error:
        return error
    work_order = WorkOrder.get_active(work_order_id)
    if work_order is None:
        return jsonify({"msg": "Work order not found."}), 404
    if WorkDetail.active().filter(WorkDetail.work_order_id == work_order.id).first() is not None:
        msg = "Delete the work details of this work order first"
        return jsonify({"msg": msg, "errors": [msg]}), 400

    old_data = snapshot(work_order, _FIELDS)
    work_order.soft_delete()
    record_activity(
        current_user(), ActivityAction.DELETE, WorkOrder.__tablename__, work_order.id, old_data=old_data
    )
    db.session.commit()
    return jsonify({"msg": "Work order deleted"})
