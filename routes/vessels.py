from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required
from sqlalchemy import or_

from activity_log import record_activity, snapshot
from extensions import db
from form_values import strip_or_none
from models import BASTP, ActivityAction, Vessel, WorkOrder
from routes.auth import current_user, request_payload, require_permission
from schemas import VesselSchema

bp = Blueprint("vessels", __name__, url_prefix="/api/vessels")
vessel_schema = VesselSchema()
vessels_schema = VesselSchema(many=True)

_FIELDS = ("name", "type", "company")


@bp.get("")
@jwt_required()
def list_vessels():
    q = Vessel.active()
    text = request.args.get("q")
    if text:
        like = f"%{text.strip()}%"
        q = q.filter(or_(Vessel.name.ilike(like), Vessel.company.ilike(like), Vessel.type.ilike(like)))
    return jsonify(vessels_schema.dump(q.order_by(Vessel.name).all()))


@bp.get("/<int:vessel_id>")
@jwt_required()
def get_vessel(vessel_id):
    vessel = Vessel.get_active(vessel_id)
    if vessel is None:
        return jsonify({"msg": "Vessel not found."}), 404
    return jsonify(vessel_schema.dump(vessel))


@bp.post("")
@jwt_required()
def create_vessel():
    error = require_permission("manage_vessels")
    if error:
        return error
    data = request_payload()
    name = strip_or_none(data.get("name"))
    if not name:
        return jsonify({"msg": "Vessel name is required", "errors": ["Vessel name is required"]}), 400

    vessel = Vessel(
        name=name,
        type=strip_or_none(data.get("type")),
        company=strip_or_none(data.get("company")),
    )
    db.session.add(vessel)
    db.session.flush()
    record_activity(
        current_user(),
        ActivityAction.CREATE,
        Vessel.__tablename__,
        vessel.id,
        new_data=snapshot(vessel, _FIELDS),
    )
    db.session.commit()
    return jsonify(vessel_schema.dump(vessel)), 201


@bp.patch("/<int:vessel_id>")
@jwt_required()
def update_vessel(vessel_id):
    error = require_permission("manage_vessels")
    if error:
        return error
    vessel = Vessel.get_active(vessel_id)
    if vessel is None:
        return jsonify({"msg": "Vessel not found."}), 404

    data = request_payload()
    if "name" in data and not strip_or_none(data.get("name")):
        return jsonify({"msg": "Vessel name is required", "errors": ["Vessel name is required"]}), 400

    old_data = snapshot(vessel, _FIELDS)
    for name in _FIELDS:
        if name in data:
            setattr(vessel, name, strip_or_none(data.get(name)))
    record_activity(
        current_user(),
        ActivityAction.UPDATE,
        Vessel.__tablename__,
        vessel.id,
        old_data=old_data,
        new_data=snapshot(vessel, _FIELDS),
    )
    db.session.commit()
    return jsonify(vessel_schema.dump(vessel))


@bp.delete("/<int:vessel_id>")
@jwt_required()
def delete_vessel(vessel_id):
    error = require_permission("manage_vessels")
    if error:
        return error
    vessel = Vessel.get_active(vessel_id)
    if vessel is None:
        return jsonify({"msg": "Vessel not found."}), 404

    in_use = (
        WorkOrder.active().filter(WorkOrder.vessel_id == vessel.id).first()
        or BASTP.active().filter(BASTP.vessel_id == vessel.id).first()
    )
    if in_use is not None:
        msg = "Vessel has work orders or BASTP documents and cannot be deleted"
        return jsonify({"msg": msg, "errors": [msg]}), 400

    old_data = snapshot(vessel, _FIELDS)
    vessel.soft_delete()
    record_activity(current_user(), ActivityAction.DELETE, Vessel.__tablename__, vessel.id, old_data=old_data)
    db.session.commit()
    return jsonify({"msg": "Vessel deleted"})
