"""Audit trail of create/update/delete actions."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

from flask import current_app, has_request_context, request

from extensions import db
from models import ActivityAction, ActivityLog, User


def _json_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        return value.value
    return value


def snapshot(record: Any, fields: Iterable[str]) -> dict[str, Any]:
    """JSON-friendly copy of ``fields`` on ``record``."""

    return {name: _json_value(getattr(record, name, None)) for name in fields}


def diff(old_data: Optional[dict], new_data: Optional[dict]) -> Optional[dict]:
    if not old_data or not new_data:
        return None
    changes = {}
    for key, new_value in new_data.items():
        old_value = old_data.get(key)
        if old_value != new_value:
            changes[key] = {"old": old_value, "new": new_value}
    return changes


def record_activity(
    user: Optional[User],
    action: ActivityAction,
    table_name: str,
    record_id: int,
    *,
    old_data: Optional[dict] = None,
    new_data: Optional[dict] = None,
    description: Optional[str] = None,
) -> Optional[ActivityLog]:
    """Stage an activity log row in the current session.

    The row is committed together with the change it describes. Nothing is
    recorded for anonymous actors or when logging is disabled.
    """

    if user is None or not current_app.config.get("ACTIVITY_LOG_ENABLED", True):
        return None

    ip_address = None
    user_agent = None
    if has_request_context():
        ip_address = request.headers.get("X-Forwarded-For", request.remote_addr)
        if ip_address:
            ip_address = ip_address.split(",")[0].strip()
        user_agent = request.user_agent.string or None

    entry = ActivityLog(
        user_id=user.id,
        user_name=user.name,
        user_email=user.email,
        action=ActivityAction(action).value,
        table_name=table_name,
        record_id=record_id,
        old_data=old_data,
        new_data=new_data,
        changes=diff(old_data, new_data),
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        description=description,
    )
    db.session.add(entry)
    return entry


def list_activity_logs(
    page: int = 1,
    page_size: int = 50,
    *,
    user_id: Optional[int] = None,
    table_name: Optional[str] = None,
    record_id: Optional[int] = None,
    action: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> tuple[list[ActivityLog], int]:
    query = ActivityLog.query
    if user_id:
        query = query.filter(ActivityLog.user_id == user_id)
    if table_name:
        query = query.filter(ActivityLog.table_name == table_name)
    if record_id:
        query = query.filter(ActivityLog.record_id == record_id)
    if action:
        query = query.filter(ActivityLog.action == action)
    if start_date:
        query = query.filter(ActivityLog.created_at >= datetime.combine(start_date, datetime.min.time()))
    if end_date:
        query = query.filter(ActivityLog.created_at <= datetime.combine(end_date, datetime.max.time()))

    total = query.count()
    page = max(page, 1)
    page_size = max(1, min(page_size, 200))
    items = (
        query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return items, total
