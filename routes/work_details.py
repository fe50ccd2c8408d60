"""Work detail endpoints with role-scoped field access."""

from __future__ import annotations

from typing import Any, Optional

from flask import Blueprint, jsonify, request, url_for
from flask_jwt_extended import jwt_required

from document_storage import WORK_PERMIT_BUCKET, get_document_storage
from field_access import FieldAccess, field_access_map
from progress_summary import current_progress
from routes.auth import (
    DOMAIN_ERRORS,
    current_role,
    current_user,
    error_response,
    request_payload,
)
from schemas import WorkDetailSchema, WorkVerificationSchema
from work_details import (
    active_verification,
    attach_work_permit,
    create_work_details,
    delete_work_detail,
    get_work_detail,
    list_work_details,
    remove_work_permit,
    update_work_detail,
)
from work_status import WorkStatus

bp = Blueprint("work_details", __name__, url_prefix="/api/work-details")
detail_schema = WorkDetailSchema()
verification_schema = WorkVerificationSchema()

# Response keys that carry the value of an access-controlled field.
_RESPONSE_KEYS = {
    "location_id": ("location_id", "location"),
    "work_scope_id": ("work_scope_id", "work_scope"),
    "work_permit": ("storage_path", "work_permit_url"),
}


def signed_url(bucket: str, storage_path: Optional[str]) -> Optional[str]:
    if not storage_path:
        return None
    token = get_document_storage().sign(bucket, storage_path)
    return url_for("files.download", token=token, _external=False)


def serialize_work_detail(detail, access: dict[str, str]) -> dict[str, Any]:
    data = detail_schema.dump(detail)
    data["work_permit_url"] = signed_url(WORK_PERMIT_BUCKET, detail.storage_path)
    for name, level in access.items():
        if level != FieldAccess.HIDDEN.value:
            continue
        for key in _RESPONSE_KEYS.get(name, (name,)):
            data.pop(key, None)
    return data


def _parse_status(value: Optional[str]) -> Optional[WorkStatus]:
    if not value:
        return None
    try:
        return WorkStatus(value.strip().upper().replace(" ", "_"))
    except ValueError:
        return None


@bp.get("/field-access")
@jwt_required()
def get_field_access():
    role = current_role()
    return jsonify({"role": role.value if role else None, "field_access": field_access_map(role)})


@bp.get("")
@jwt_required()
def list_details():
    status_arg = request.args.get("status")
    status = _parse_status(status_arg)
    if status_arg and status is None:
        return jsonify({"msg": f"Unknown status: {status_arg}"}), 400

    page = request.args.get("page", 1, type=int)
    page_size = request.args.get("page_size", 25, type=int)
    items, total = list_work_details(
        work_order_id=request.args.get("work_order_id", type=int),
        vessel_id=request.args.get("vessel_id", type=int),
        status=status,
        search=request.args.get("q"),
        page=page,
        page_size=page_size,
    )
    access = field_access_map(current_role())
    return jsonify(
        {
            "items": [serialize_work_detail(detail, access) for detail in items],
            "total": total,
            "page": page,
            "page_size": page_size,
            "field_access": access,
        }
    )


@bp.get("/<int:detail_id>")
@jwt_required()
def get_detail(detail_id):
    try:
        detail = get_work_detail(detail_id)
    except DOMAIN_ERRORS as exc:
        return error_response(exc)

    access = field_access_map(current_role())
    data = serialize_work_detail(detail, access)
    summary = current_progress(detail.progress_reports)
    data["progress"] = {
        "value": summary.value,
        "as_of": summary.as_of.isoformat() if summary.as_of else None,
        "count": summary.count,
        "is_complete": summary.is_complete,
    }
    verification = active_verification(detail.id)
    data["verification"] = verification_schema.dump(verification) if verification else None
    data["field_access"] = access
    return jsonify(data)


@bp.post("")
@jwt_required()
def create_details():
    data = request_payload()
    rows = data.get("work_details")
    if rows is None:
        rows = [data]
    try:
        created = create_work_details(current_user(), data.get("work_order_id"), rows)
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    access = field_access_map(current_role())
    return jsonify([serialize_work_detail(detail, access) for detail in created]), 201


@bp.patch("/<int:detail_id>")
@jwt_required()
def update_detail(detail_id):
    try:
        detail = update_work_detail(current_user(), detail_id, request_payload())
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify(serialize_work_detail(detail, field_access_map(current_role())))


@bp.delete("/<int:detail_id>")
@jwt_required()
def delete_detail(detail_id):
    try:
        delete_work_detail(current_user(), detail_id)
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify({"msg": "Work detail deleted"})


@bp.post("/<int:detail_id>/work-permit")
@jwt_required()
def upload_work_permit(detail_id):
    try:
        detail = attach_work_permit(current_user(), detail_id, request.files.get("file"))
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify(serialize_work_detail(detail, field_access_map(current_role())))


@bp.delete("/<int:detail_id>/work-permit")
@jwt_required()
def delete_work_permit(detail_id):
    try:
        detail = remove_work_permit(current_user(), detail_id)
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify(serialize_work_detail(detail, field_access_map(current_role())))
