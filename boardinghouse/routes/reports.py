from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..security import STAFF_ROLES, require_role
from ..services.reports import submit_report, update_report_status

bp = Blueprint("reports", __name__)


@bp.post("/reports")
@jwt_required()
@require_role(STAFF_ROLES)
def create():
    """File a report on behalf of a tenant"""
    data = request.get_json(silent=True) or {}
    if data.get("tenant_id") is None:
        return jsonify({"error": "validation_error", "message": "tenant_id is required"}), 400

    report = submit_report(
        tenant_id=data["tenant_id"],
        type=data.get("type", "maintenance"),
        title=data.get("title"),
        description=data.get("description"),
        room_id=data.get("room_id"),
    )
    return jsonify(report.serialize()), 201


@bp.patch("/reports/<int:report_id>/status")
@jwt_required()
@require_role(STAFF_ROLES)
def change_status(report_id):
    data = request.get_json(silent=True) or {}
    report = update_report_status(report_id, data.get("status"))
    return jsonify(report.serialize()), 200
