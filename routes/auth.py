from typing import Any, Optional

from flask import Blueprint, jsonify, request
from flask_jwt_extended import (
    create_access_token,
    get_jwt,
    get_jwt_identity,
    jwt_required,
    set_access_cookies,
    unset_jwt_cookies,
)
from sqlalchemy import func

from document_storage import DocumentValidationError
from extensions import db
from field_access import normalize_role
from handover import HandoverNotFoundError, HandoverPermissionError, HandoverValidationError
from models import RoleEnum, User, role_has_permission
from schemas import UserSchema
from work_details import WorkNotFoundError, WorkPermissionError, WorkValidationError

bp = Blueprint("auth", __name__, url_prefix="/api/auth")

user_schema = UserSchema()

VALIDATION_ERRORS = (WorkValidationError, HandoverValidationError, DocumentValidationError)
NOT_FOUND_ERRORS = (WorkNotFoundError, HandoverNotFoundError)
PERMISSION_ERRORS = (WorkPermissionError, HandoverPermissionError)
DOMAIN_ERRORS = VALIDATION_ERRORS + NOT_FOUND_ERRORS + PERMISSION_ERRORS


def current_role() -> Optional[RoleEnum]:
    return normalize_role(get_jwt().get("role"))


def current_user() -> Optional[User]:
    try:
        user_id = int(get_jwt_identity())
    except (TypeError, ValueError):
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.active:
        return None
    return user


def require_permission(permission: str, msg: str = "You do not have permission to perform this action."):
    """Return a 403 response unless the token's role grants ``permission``."""

    if not role_has_permission(current_role(), permission):
        return jsonify({"msg": msg}), 403
    return None


def error_response(exc: Exception):
    if isinstance(exc, VALIDATION_ERRORS):
        return jsonify({"msg": "; ".join(exc.errors), "errors": exc.errors}), 400
    if isinstance(exc, NOT_FOUND_ERRORS):
        return jsonify({"msg": str(exc)}), 404
    if isinstance(exc, PERMISSION_ERRORS):
        return jsonify({"msg": str(exc)}), 403
    raise exc


def request_payload() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        payload = request.form.to_dict() if request.form else {}
    return payload if isinstance(payload, dict) else {}


@bp.post("/register")
@jwt_required()
def register():
    error = require_permission("manage_users", "Only MASTER or ADMIN users can register accounts.")
    if error:
        return error

    data = request.get_json() or {}
    email = (data.get("email") or "").strip().lower()
    name = (data.get("name") or "").strip()
    role = data.get("role")
    password = data.get("password")
    company = (data.get("company") or "").strip() or None

    if not email or not name or not role or not password:
        return jsonify({"msg": "Name, email, role, and password are required"}), 400

    role_enum = normalize_role(role)
    if role_enum is None:
        return jsonify({"msg": "Invalid role"}), 400
    # Only a MASTER may create another MASTER.
    if role_enum == RoleEnum.master and current_role() != RoleEnum.master:
        return jsonify({"msg": "Only MASTER users can create MASTER accounts"}), 403

    if User.query.filter(func.lower(User.email) == email).first():
        return jsonify({"msg": "Email is already registered"}), 409

    u = User(name=name, email=email, role=role_enum, company=company)
    u.set_password(password)
    db.session.add(u)
    db.session.commit()
    return jsonify({"id": u.id}), 201


@bp.post("/login")
def login():
    payload = request_payload()

    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not email or not password:
        return jsonify({"msg": "Email and password are required"}), 400

    u = User.query.filter(func.lower(User.email) == email).first()
    if not u or not u.check_password(password) or not u.active:
        return jsonify({"msg": "Invalid email or password"}), 401

    token = create_access_token(identity=str(u.id), additional_claims={"role": u.role.value})
    response = jsonify(access_token=token, user=user_schema.dump(u))
    set_access_cookies(response, token)
    return response


@bp.get("/me")
@jwt_required()
def me():
    user = current_user()
    if user is None:
        return jsonify({"msg": "User not found."}), 404
    return jsonify(user_schema.dump(user))


@bp.post("/logout")
def logout():
    response = jsonify({"msg": "Logged out"})
    unset_jwt_cookies(response)
    return response
