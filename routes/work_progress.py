from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from document_storage import PROGRESS_EVIDENCE_BUCKET
from routes.auth import DOMAIN_ERRORS, current_user, error_response, request_payload
from routes.work_details import signed_url
from schemas import ProgressReportSchema
from work_details import create_progress_report, delete_progress_report, progress_overview

bp = Blueprint("work_progress", __name__, url_prefix="/api/work-details")
report_schema = ProgressReportSchema()


def _serialize(report) -> dict:
    data = report_schema.dump(report)
    data["evidence_url"] = signed_url(PROGRESS_EVIDENCE_BUCKET, report.storage_path)
    return data


@bp.get("/<int:detail_id>/progress")
@jwt_required()
def list_progress(detail_id):
    try:
        summary, history, reports = progress_overview(detail_id)
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify(
        {
            "current_progress": summary.value,
            "as_of": summary.as_of.isoformat() if summary.as_of else None,
            "count": summary.count,
            "history": history,
            "reports": [_serialize(report) for report in reports],
        }
    )


@bp.post("/<int:detail_id>/progress")
@jwt_required()
def create_progress(detail_id):
    try:
        report = create_progress_report(
            current_user(),
            detail_id,
            request_payload(),
            evidence=request.files.get("evidence"),
        )
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify(_serialize(report)), 201


@bp.delete("/progress/<int:report_id>")
@jwt_required()
def delete_progress(report_id):
    try:
        delete_progress_report(current_user(), report_id)
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify({"msg": "Progress report deleted"})
