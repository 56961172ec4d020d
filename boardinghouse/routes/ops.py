from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..extensions import db
from ..models import Announcement
from ..security import current_actor_id, require_role
from ..services.notifications import build_system_announcement, dispatch
from ..services.occupancy import verify_room_tenant_integrity
from ..services.scheduler import get_scheduler

bp = Blueprint("ops", __name__)

AUDIENCES = ("all", "tenants", "staff")

SWEEPS = {
    "monthly-rent": "trigger_monthly_rent",
    "overdue": "trigger_overdue_and_reminders",
    "lease-expiry": "trigger_lease_expiry",
    "archival": "trigger_archival",
    "reconciliation": "trigger_reconciliation",
}


@bp.post("/ops/sweeps/<name>")
@jwt_required()
@require_role(['admin'])
def run_sweep(name):
    """Run one scheduler job now and return its summary"""
    trigger = SWEEPS.get(name)
    if trigger is None:
        return jsonify({
            "error": "validation_error",
            "message": f"Unknown sweep. Use one of: {', '.join(sorted(SWEEPS))}"
        }), 400
    result = getattr(get_scheduler(), trigger)()
    return jsonify({"sweep": name, "result": result}), 200


@bp.get("/ops/integrity")
@jwt_required()
@require_role(['admin', 'staff'])
def integrity():
    issues = verify_room_tenant_integrity()
    return jsonify({"count": len(issues), "issues": issues}), 200


@bp.post("/ops/announcements")
@jwt_required()
@require_role(['admin'])
def announce():
    """Publish an announcement and notify every active account"""
    data = request.get_json(silent=True) or {}
    title, content = data.get("title"), data.get("content")
    if not title or not content:
        return jsonify({"error": "validation_error", "message": "title and content are required"}), 400
    audience = data.get("audience", "all")
    if audience not in AUDIENCES:
        return jsonify({"error": "validation_error", "message": "audience must be one of: all, tenants, staff"}), 400

    announcement = Announcement(
        title=title,
        content=content,
        audience=audience,
        created_by_id=current_actor_id(),
    )
    db.session.add(announcement)
    db.session.commit()

    delivered = dispatch(build_system_announcement(title, content, audience=announcement.audience))
    return jsonify({"announcement": announcement.serialize(), "notified": delivered}), 201
