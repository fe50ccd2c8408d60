from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from handover import (
    add_material_controls,
    create_material,
    delete_material_control,
    list_material_controls,
    list_materials,
    summarize_materials,
    update_material_control,
)
from routes.auth import DOMAIN_ERRORS, current_user, error_response, request_payload
from schemas import MaterialControlSchema, MaterialListSchema, MaterialSummarySchema

bp = Blueprint("materials", __name__, url_prefix="/api/materials")
material_schema = MaterialListSchema()
materials_schema = MaterialListSchema(many=True)
control_schema = MaterialControlSchema()
controls_schema = MaterialControlSchema(many=True)
summary_schema = MaterialSummarySchema(many=True)


@bp.get("")
@jwt_required()
def list_master():
    return jsonify(materials_schema.dump(list_materials(request.args.get("q"))))


@bp.post("")
@jwt_required()
def create_master():
    try:
        material = create_material(current_user(), request_payload())
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify(material_schema.dump(material)), 201


@bp.get("/bastp/<int:bastp_id>")
@jwt_required()
def list_controls(bastp_id):
    try:
        controls = list_material_controls(bastp_id, request.args.get("work_details_id", type=int))
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify({"items": controls_schema.dump(controls), "summary": summary_schema.dump(summarize_materials(controls))})


@bp.post("/bastp/<int:bastp_id>")
@jwt_required()
def add_controls(bastp_id):
    data = request_payload()
    entries = data.get("materials")
    if entries is None:
        entries = [data]
    try:
        created = add_material_controls(current_user(), bastp_id, data.get("work_details_id"), entries)
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify(controls_schema.dump(created)), 201


@bp.patch("/controls/<int:control_id>")
@jwt_required()
def update_control(control_id):
    try:
        control = update_material_control(current_user(), control_id, request_payload())
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify(control_schema.dump(control))


@bp.delete("/controls/<int:control_id>")
@jwt_required()
def delete_control(control_id):
    try:
        delete_material_control(current_user(), control_id)
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify({"msg": "Material entry deleted"})
