from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required

from ..security import STAFF_ROLES, require_role
from ..services.occupancy import archive_tenant, unarchive_tenant

bp = Blueprint("tenants", __name__)


@bp.delete("/tenants/<int:tenant_id>/archive")
@jwt_required()
@require_role(STAFF_ROLES)
def archive(tenant_id):
    """Archive a tenant; they leave their room in the same write"""
    tenant = archive_tenant(tenant_id)
    return jsonify({"message": "Tenant archived successfully", "tenant": tenant.serialize()}), 200


@bp.patch("/tenants/<int:tenant_id>/unarchive")
@jwt_required()
@require_role(STAFF_ROLES)
def unarchive(tenant_id):
    tenant = unarchive_tenant(tenant_id)
    return jsonify({"message": "Tenant restored successfully", "tenant": tenant.serialize()}), 200
