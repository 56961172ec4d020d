from datetime import datetime

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..errors import ValidationError
from ..security import STAFF_ROLES, current_actor_id, require_role
from ..services.deposits import backfill_deposits
from ..services.payments import (
    create_payment,
    create_room_split_payments,
    get_overdue_payments,
    get_payment,
    mark_payment_paid,
    payment_stats,
    tenant_payments,
)
from ..services.scheduler import get_scheduler
from ..utils.money import parse_month

bp = Blueprint("payments", __name__)


def _parse_date(value, field, required=False):
    if value in (None, ""):
        if required:
            raise ValidationError(f"{field} is required", {"field": field})
        return None
    try:
        return datetime.strptime(str(value)[:10], "%Y-%m-%d")
    except ValueError:
        raise ValidationError(f"Invalid {field}. Use YYYY-MM-DD", {"field": field})


@bp.post("/payments")
@jwt_required()
@require_role(STAFF_ROLES)
def create():
    """Create a manual payment record"""
    data = request.get_json(silent=True) or {}

    for field in ("tenant_id", "amount", "payment_type"):
        if data.get(field) is None:
            return jsonify({
                "error": "validation_error",
                "message": f"{field} is required"
            }), 400

    period = data.get("period_covered") or {}
    period_start = _parse_date(period.get("start_date"), "period_covered.start_date")
    period_end = _parse_date(period.get("end_date"), "period_covered.end_date")

    payment = create_payment(
        tenant_id=data["tenant_id"],
        amount=data["amount"],
        payment_type=data["payment_type"],
        due_date=_parse_date(data.get("due_date"), "due_date", required=True),
        room_id=data.get("room_id"),
        payment_method=data.get("payment_method", "cash"),
        status=data.get("status", "pending"),
        period_start=period_start.date() if period_start else None,
        period_end=period_end.date() if period_end else None,
        transaction_reference=data.get("transaction_reference"),
        description=data.get("description"),
        notes=data.get("notes"),
        late_fee=data.get("late_fee"),
        actor_id=current_actor_id(),
    )
    return jsonify(payment.serialize()), 201


@bp.post("/payments/split")
@jwt_required()
@require_role(STAFF_ROLES)
def split():
    """Bill every tenant of a room an even share"""
    data = request.get_json(silent=True) or {}
    if data.get("room_id") is None:
        return jsonify({
            "error": "validation_error",
            "message": "room_id is required"
        }), 400

    payments = create_room_split_payments(
        room_id=data["room_id"],
        total=data.get("total"),
        payment_type=data.get("payment_type", "rent"),
        due_date=_parse_date(data.get("due_date"), "due_date"),
        description=data.get("description"),
        actor_id=current_actor_id(),
    )
    return jsonify({
        "count": len(payments),
        "payments": [p.serialize() for p in payments]
    }), 201


@bp.get("/payments/overdue")
@jwt_required()
@require_role(STAFF_ROLES)
def overdue():
    payments = get_overdue_payments()
    return jsonify({
        "count": len(payments),
        "overdue_payments": [p.serialize() for p in payments]
    }), 200


@bp.get("/payments/stats")
@jwt_required()
@require_role(STAFF_ROLES)
def stats():
    """Totals by status, type and method, optionally for ?year=YYYY[&month=M]"""
    year = request.args.get("year", type=int)
    month = request.args.get("month", type=int)
    return jsonify(payment_stats(year=year, month=month)), 200


@bp.get("/payments/tenant/<int:tenant_id>")
@jwt_required()
@require_role(STAFF_ROLES)
def tenant_history(tenant_id):
    limit = max(1, min(request.args.get("limit", 10, type=int), 200))
    offset = max(0, request.args.get("offset", 0, type=int))
    result = tenant_payments(
        tenant_id,
        payment_type=request.args.get("payment_type"),
        status=request.args.get("status"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "tenant": result["tenant"].serialize(brief=True),
        "total": result["total"],
        "summary": result["summary"],
        "payments": [p.serialize() for p in result["payments"]]
    }), 200


@bp.get("/payments/<int:payment_id>")
@jwt_required()
@require_role(STAFF_ROLES)
def detail(payment_id):
    return jsonify(get_payment(payment_id).serialize()), 200


@bp.put("/payments/<int:payment_id>/mark-paid")
@jwt_required()
@require_role(STAFF_ROLES)
def mark_paid(payment_id):
    data = request.get_json(silent=True) or {}
    payment = mark_payment_paid(
        payment_id,
        actor_id=current_actor_id(),
        transaction_ref=data.get("transaction_reference"),
        notes=data.get("notes"),
    )
    return jsonify({
        "message": "Payment marked as paid successfully",
        "payment": payment.serialize()
    }), 200


@bp.post("/payments/generate-monthly")
@jwt_required()
@require_role(STAFF_ROLES)
def generate_monthly():
    """Generate this month's (or ?month=YYYY-MM) rent for all billable tenants"""
    data = request.get_json(silent=True) or {}
    month = data.get("month") or request.args.get("month")
    target = None
    if month:
        try:
            target = parse_month(month)
        except ValueError:
            return jsonify({
                "error": "validation_error",
                "message": "Invalid month format. Use YYYY-MM"
            }), 400

    result = get_scheduler().trigger_monthly_rent(target=target, actor_id=current_actor_id())
    return jsonify(result), 200


@bp.post("/payments/backfill-deposits")
@jwt_required()
@require_role(STAFF_ROLES)
def backfill():
    return jsonify(backfill_deposits(actor_id=current_actor_id())), 200
