from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from activity_log import list_activity_logs
from form_values import parse_date
from routes.auth import require_permission
from schemas import ActivityLogSchema

bp = Blueprint("activity_logs", __name__, url_prefix="/api/activity-logs")
logs_schema = ActivityLogSchema(many=True)


@bp.get("")
@jwt_required()
def list_logs():
    error = require_permission("view_activity_logs", "Only MASTER or ADMIN users can view activity logs.")
    if error:
        return error

    try:
        start_date = parse_date(request.args.get("start_date"), "start date")
        end_date = parse_date(request.args.get("end_date"), "end date")
    except ValueError as exc:
        return jsonify({"msg": str(exc), "errors": [str(exc)]}), 400

    page = request.args.get("page", 1, type=int)
    page_size = request.args.get("page_size", 50, type=int)
    items, total = list_activity_logs(
        page,
        page_size,
        user_id=request.args.get("user_id", type=int),
        table_name=request.args.get("table_name"),
        record_id=request.args.get("record_id", type=int),
        action=request.args.get("action"),
        start_date=start_date,
        end_date=end_date,
    )
    return jsonify({"items": logs_schema.dump(items), "total": total, "page": page, "page_size": page_size})
