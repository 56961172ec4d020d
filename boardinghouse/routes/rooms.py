from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..extensions import db
from ..models import Room
from ..security import STAFF_ROLES, current_actor_id, require_role
from ..services.occupancy import LeaseTerms, assign_tenant, remove_tenant

bp = Blueprint("rooms", __name__)


@bp.get("/rooms/<int:room_id>")
@jwt_required()
@require_role(STAFF_ROLES)
def get_room(room_id):
    room = db.get_or_404(Room, room_id)
    return jsonify(room.serialize()), 200


@bp.post("/rooms/<int:room_id>/assign-tenant")
@jwt_required()
@require_role(STAFF_ROLES)
def assign_tenant_to_room(room_id):
    """Assign a tenant to a room and open their deposit charge"""
    data = request.get_json(silent=True) or {}
    tenant_id = data.get("tenant_id")
    if tenant_id is None:
        return jsonify({
            "error": "validation_error",
            "message": "tenant_id is required"
        }), 400

    room = assign_tenant(room_id, tenant_id, LeaseTerms.from_dict(data), actor_id=current_actor_id())
    return jsonify({
        "message": "Tenant assigned to room successfully",
        "room": room.serialize()
    }), 200


@bp.delete("/rooms/<int:room_id>/remove-tenant/<int:tenant_id>")
@jwt_required()
@require_role(STAFF_ROLES)
def remove_tenant_from_room(room_id, tenant_id):
    room = remove_tenant(room_id, tenant_id)
    return jsonify({
        "message": "Tenant removed from room successfully",
        "room": room.serialize()
    }), 200
