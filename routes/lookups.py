from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required

from extensions import db
from form_values import strip_or_none
from handover import list_general_service_types
from models import Location, WorkScope
from routes.auth import request_payload, require_permission
from schemas import GeneralServiceTypeSchema, LocationSchema, WorkScopeSchema

bp = Blueprint("lookups", __name__, url_prefix="/api/lookups")
locations_schema = LocationSchema(many=True)
work_scopes_schema = WorkScopeSchema(many=True)
service_types_schema = GeneralServiceTypeSchema(many=True)


@bp.get("/locations")
@jwt_required()
def list_locations():
    return jsonify(locations_schema.dump(Location.active().order_by(Location.location).all()))


@bp.post("/locations")
@jwt_required()
def create_location():
    error = require_permission("manage_work_details")
    if error:
        return error
    name = strip_or_none(request_payload().get("location"))
    if not name:
        return jsonify({"msg": "Location is required", "errors": ["Location is required"]}), 400
    location = Location(location=name)
    db.session.add(location)
    db.session.commit()
    return jsonify(LocationSchema().dump(location)), 201


@bp.get("/work-scopes")
@jwt_required()
def list_work_scopes():
    return jsonify(work_scopes_schema.dump(WorkScope.active().order_by(WorkScope.work_scope).all()))


@bp.post("/work-scopes")
@jwt_required()
def create_work_scope():
    error = require_permission("manage_work_details")
    if error:
        return error
    name = strip_or_none(request_payload().get("work_scope"))
    if not name:
        return jsonify({"msg": "Work scope is required", "errors": ["Work scope is required"]}), 400
    scope = WorkScope(work_scope=name)
    db.session.add(scope)
    db.session.commit()
    return jsonify(WorkScopeSchema().dump(scope)), 201


@bp.get("/general-service-types")
@jwt_required()
def list_service_types():
    return jsonify(service_types_schema.dump(list_general_service_types()))
