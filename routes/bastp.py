"""BASTP handover endpoints.

Listing reconciles every BASTP status once before the response is built,
so clients always see the settled status.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from document_storage import BASTP_BUCKET
from handover import (
    available_work_details,
    create_bastp,
    delete_bastp,
    get_bastp,
    list_bastps,
    status_counts,
    sync_bastp_statuses,
    update_bastp,
    upload_bastp_document,
)
from routes.auth import DOMAIN_ERRORS, current_user, error_response, request_payload
from routes.work_details import signed_url
from schemas import BASTPSchema, WorkDetailSchema

bp = Blueprint("bastp", __name__, url_prefix="/api/bastp")
bastp_schema = BASTPSchema()
available_schema = WorkDetailSchema(
    only=(
        "id",
        "description",
        "work_location",
        "quantity",
        "uom",
        "pic",
        "actual_close_date",
        "status",
        "work_order",
    )
)


def _serialize(bastp) -> dict:
    data = bastp_schema.dump(bastp)
    data["document_url"] = signed_url(BASTP_BUCKET, bastp.storage_path)
    return data


@bp.get("")
@jwt_required()
def list_all():
    bastps = list_bastps(
        status=request.args.get("status"),
        vessel_id=request.args.get("vessel_id", type=int),
        search=request.args.get("q"),
    )
    return jsonify({"items": [_serialize(bastp) for bastp in bastps], "counts": status_counts(bastps)})


@bp.get("/available-work-details")
@jwt_required()
def list_available_work_details():
    vessel_id = request.args.get("vessel_id", type=int)
    if not vessel_id:
        return jsonify({"msg": "vessel_id is required", "errors": ["Please select a vessel"]}), 400
    items = []
    for entry in available_work_details(vessel_id, exclude_bastp_id=request.args.get("bastp_id", type=int)):
        data = available_schema.dump(entry["detail"])
        data["current_progress"] = entry["progress"]
        data["is_verified"] = entry["is_verified"]
        items.append(data)
    return jsonify(items)


@bp.get("/<int:bastp_id>")
@jwt_required()
def get_one(bastp_id):
    try:
        sync_bastp_statuses([get_bastp(bastp_id)])
        bastp = get_bastp(bastp_id)
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify(_serialize(bastp))


@bp.post("")
@jwt_required()
def create():
    try:
        bastp = create_bastp(current_user(), request_payload())
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify(_serialize(get_bastp(bastp.id))), 201


@bp.patch("/<int:bastp_id>")
@jwt_required()
def update(bastp_id):
    try:
        bastp = update_bastp(current_user(), bastp_id, request_payload())
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify(_serialize(get_bastp(bastp.id)))


@bp.post("/<int:bastp_id>/document")
@jwt_required()
def upload_document(bastp_id):
    try:
        bastp = upload_bastp_document(current_user(), bastp_id, request.files.get("file"))
        sync_bastp_statuses([bastp])
        bastp = get_bastp(bastp_id)
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify(_serialize(bastp))


@bp.delete("/<int:bastp_id>")
@jwt_required()
def delete(bastp_id):
    try:
        delete_bastp(current_user(), bastp_id)
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify({"msg": "BASTP deleted"})
