from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from routes.auth import DOMAIN_ERRORS, current_user, error_response, request_payload
from schemas import WorkVerificationSchema
from work_details import delete_verification, list_verifications, verify_work_detail

bp = Blueprint("work_verification", __name__, url_prefix="/api/work-verification")
verification_schema = WorkVerificationSchema()
verifications_schema = WorkVerificationSchema(many=True)


@bp.get("")
@jwt_required()
def list_all():
    verifications = list_verifications(
        work_details_id=request.args.get("work_details_id", type=int),
        vessel_id=request.args.get("vessel_id", type=int),
    )
    return jsonify(verifications_schema.dump(verifications))


@bp.post("/<int:detail_id>")
@jwt_required()
def verify(detail_id):
    try:
        verification = verify_work_detail(current_user(), detail_id, request_payload())
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify(verification_schema.dump(verification)), 201


@bp.delete("/<int:verification_id>")
@jwt_required()
def unverify(verification_id):
    try:
        delete_verification(current_user(), verification_id)
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify({"msg": "Verification removed"})
