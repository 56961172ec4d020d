"""
Payment status transitions, receipt numbers, manual payment creation and
the read-side summaries built on them.

A payment starts ``pending``. It becomes ``overdue`` lazily when it is loaded
or saved past its due date, and ``paid`` only through ``mark_payment_paid``.
Nothing leaves ``paid`` and a receipt number is never reassigned.
"""
import logging
import random
from datetime import date, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from boardinghouse.errors import ConflictError, NotFoundError, ValidationError
from boardinghouse.extensions import db
from boardinghouse.models import Payment, Room, Tenant
from boardinghouse.models.payment import PAYMENT_METHODS, PAYMENT_STATUSES, PAYMENT_TYPES
from boardinghouse.utils.money import (
    Period,
    as_datetime,
    current_time,
    month_bounds,
    split_evenly,
    to_money,
)
from .notifications import build_payment_due, build_payment_received, dispatch

logger = logging.getLogger(__name__)

RECEIPT_ATTEMPTS = 50


def refresh_status(payment, now=None):
    """Flip a lapsed pending payment to overdue. Returns True when it changed."""
    now = now or current_time()
    if payment.status == 'pending' and payment.due_date is not None and as_datetime(payment.due_date) < now:
        payment.status = 'overdue'
        return True
    return False


def get_payment(payment_id, now=None):
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError("Payment not found", {"payment_id": payment_id})
    if refresh_status(payment, now):
        db.session.commit()
    return payment


def save_payment(payment, now=None):
    refresh_status(payment, now)
    db.session.add(payment)
    db.session.commit()
    return payment


def rent_exists(tenant_id, period):
    return db.session.query(
        Payment.query.filter(
            Payment.tenant_id == tenant_id,
            Payment.payment_type == 'rent',
            Payment.period_start == period.start_date,
            Payment.period_end == period.end_date,
        ).exists()
    ).scalar()


def generate_receipt_number(now=None, prefix=None):
    """``RCP-YYYYMMDD-NNNN`` with a random suffix, redrawn until unused."""
    now = now or current_time()
    prefix = prefix or current_app.config.get('RECEIPT_PREFIX', 'RCP')
    stamp = now.strftime('%Y%m%d')
    for _ in range(RECEIPT_ATTEMPTS):
        candidate = f"{prefix}-{stamp}-{random.randint(0, 9999):04d}"
        if Payment.query.filter_by(receipt_number=candidate).first() is None:
            return candidate
    raise ConflictError("Could not allocate a unique receipt number", {"date": stamp})


def mark_payment_paid(payment_id, actor_id=None, transaction_ref=None, notes=None, now=None):
    now = now or current_time()
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError("Payment not found", {"payment_id": payment_id})
    if payment.status == 'paid':
        raise ConflictError("Payment is already marked as paid",
                            {"payment_id": payment.id, "receipt_number": payment.receipt_number})

    payment.status = 'paid'
    if payment.payment_date is None:
        payment.payment_date = now
    if actor_id is not None:
        payment.recorded_by_id = actor_id
    if transaction_ref:
        payment.transaction_reference = transaction_ref
    if notes:
        payment.notes = notes
    if not payment.receipt_number:
        payment.receipt_number = generate_receipt_number(now)
    db.session.commit()

    logger.info("payment %s marked paid, receipt %s", payment.id, payment.receipt_number)
    dispatch(build_payment_received(payment))

    if payment.payment_type == 'deposit':
        _generate_rent_after_deposit(payment, actor_id, now)

    return payment


def _generate_rent_after_deposit(payment, actor_id, now):
    # deposit is already committed; a missed charge is retried by the monthly run
    from .rent import generate_rent_for_tenant

    tenant = payment.tenant
    try:
        outcome = generate_rent_for_tenant(tenant, target=now, actor_id=actor_id, now=now)
    except Exception:
        db.session.rollback()
        logger.exception("rent generation after deposit failed for tenant %s", payment.tenant_id)
        return None
    if outcome.reason:
        logger.info("no rent generated for tenant %s after deposit: %s", tenant.id, outcome.reason)
    return outcome


def _choice(value, allowed, field_name):
    if value not in allowed:
        raise ValidationError(f"{field_name} must be one of: {', '.join(allowed)}",
                              {"field": field_name, "value": value})
    return value


def _amount(value, field_name='amount'):
    try:
        amount = to_money(value)
    except ValueError:
        raise ValidationError(f"{field_name} must be a number", {"field": field_name})
    if amount < 0:
        raise ValidationError(f"{field_name} cannot be negative", {"field": field_name})
    return amount


def create_payment(tenant_id, amount, payment_type, due_date, room_id=None, payment_method='cash',
                   status='pending', period_start=None, period_end=None, transaction_reference=None,
                   description=None, notes=None, late_fee=None, actor_id=None, now=None):
    """Record a payment of any type. Rent is limited to one per tenant per month."""
    now = now or current_time()
    _choice(payment_type, PAYMENT_TYPES, 'payment_type')
    _choice(payment_method, PAYMENT_METHODS, 'payment_method')
    _choice(status, PAYMENT_STATUSES, 'status')
    amount = _amount(amount)
    if due_date is None:
        raise ValidationError("due_date is required", {"field": "due_date"})
    due_date = as_datetime(due_date)

    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found", {"tenant_id": tenant_id})
    room_id = room_id or tenant.room_id
    if room_id is None:
        raise ValidationError("room is required for a tenant without a room", {"field": "room_id"})
    if db.session.get(Room, room_id) is None:
        raise NotFoundError("Room not found", {"room_id": room_id})

    if payment_type == 'rent':
        if period_start is None or period_end is None:
            period_start, period_end = month_bounds(due_date)
        if period_end < period_start:
            raise ValidationError("Period end must be after period start")
        if rent_exists(tenant.id, Period(period_start, period_end)):
            raise ConflictError("Rent already exists for this period",
                                {"tenant_id": tenant.id, "period_start": period_start.isoformat()})

    late_fee = late_fee or {}
    payment = Payment(
        tenant_id=tenant.id,
        room_id=room_id,
        amount=amount,
        payment_type=payment_type,
        payment_method=payment_method,
        status=status,
        due_date=due_date,
        period_start=period_start,
        period_end=period_end,
        transaction_reference=transaction_reference,
        description=description,
        notes=notes,
        recorded_by_id=actor_id,
        late_fee_amount=_amount(late_fee.get('amount', 0), 'late_fee.amount'),
        late_fee_reason=late_fee.get('reason'),
        is_late_payment=bool(late_fee.get('is_late_payment', False)),
    )
    if status == 'paid':
        payment.payment_date = now
        payment.receipt_number = generate_receipt_number(now)
    save_payment(payment, now)

    logger.info("payment %s created for tenant %s (%s %s)", payment.id, tenant.id, payment_type, amount)
    if payment.status in ('pending', 'overdue'):
        dispatch(build_payment_due(payment, now))
    else:
        dispatch(build_payment_received(payment))
    return payment


def create_room_split_payments(room_id, total=None, payment_type='rent', due_date=None,
                               description=None, actor_id=None, now=None):
    """One payment per tenant in the room, each an even share of ``total``."""
    now = now or current_time()
    _choice(payment_type, PAYMENT_TYPES, 'payment_type')
    room = db.session.get(Room, room_id)
    if room is None:
        raise NotFoundError("Room not found", {"room_id": room_id})
    tenants = list(room.tenants)
    if not tenants:
        raise ConflictError("Room has no tenants to bill", {"room_id": room.id})

    total = _amount(total if total is not None else room.monthly_rent, 'total')
    share = split_evenly(total, len(tenants))
    due_date = as_datetime(due_date) if due_date is not None else now
    period = month_bounds(due_date) if payment_type == 'rent' else None

    if period is not None:
        billed = [t.id for t in tenants if rent_exists(t.id, period)]
        if billed:
            raise ConflictError("Rent already exists for this period",
                                {"tenant_ids": billed, "month": period.label})

    payments = []
    for tenant in tenants:
        payment = Payment(
            tenant_id=tenant.id,
            room_id=room.id,
            amount=share,
            payment_type=payment_type,
            payment_method='cash',
            status='pending',
            due_date=due_date,
            period_start=period.start_date if period else None,
            period_end=period.end_date if period else None,
            description=description or f"Room {room.room_number} {payment_type} share",
            recorded_by_id=actor_id,
            late_fee_amount=Decimal('0'),
        )
        refresh_status(payment, now)
        db.session.add(payment)
        payments.append(payment)
    db.session.commit()

    logger.info("split %s across %d tenants of room %s", total, len(payments), room.room_number)
    for payment in payments:
        dispatch(build_payment_due(payment, now))
    return payments


def sweep_overdue(now=None) -> dict:
    """Actively flip every lapsed pending payment to overdue."""
    now = now or current_time()
    lapsed = Payment.query.filter(Payment.status == 'pending', Payment.due_date < now).all()
    for payment in lapsed:
        refresh_status(payment, now)
    db.session.commit()
    logger.info("marked %d payments overdue", len(lapsed))
    return {"marked_overdue": len(lapsed)}


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

REPORTED_STATUSES = ('paid', 'pending', 'overdue')


def _grouped(query, column):
    rows = (query.with_entities(column, func.count(Payment.id), func.sum(Payment.amount))
            .group_by(column)
            .order_by(column)
            .all())
    return [(key, count, to_money(total or 0)) for key, count, total in rows]


def _as_totals(rows):
    return {key: {"count": count, "total_amount": float(total)} for key, count, total in rows}


def get_overdue_payments(now=None):
    """Pending or overdue payments whose due date has passed, oldest first."""
    now = now or current_time()
    return (Payment.query
            .filter(Payment.status.in_(('pending', 'overdue')), Payment.due_date < now)
            .order_by(Payment.due_date, Payment.id)
            .all())


def tenant_payment_summary(tenant_id) -> dict:
    """Count and total amount per status for one tenant."""
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found", {"tenant_id": tenant_id})
    return _as_totals(_grouped(Payment.query.filter(Payment.tenant_id == tenant.id), Payment.status))


def tenant_payments(tenant_id, payment_type=None, status=None, limit=10, offset=0) -> dict:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found", {"tenant_id": tenant_id})

    query = Payment.query.filter(Payment.tenant_id == tenant.id)
    if payment_type:
        query = query.filter(Payment.payment_type == payment_type)
    if status:
        query = query.filter(Payment.status == status)

    total = query.count()
    payments = query.order_by(Payment.due_date.desc(), Payment.id.desc()).limit(limit).offset(offset).all()
    return {
        "tenant": tenant,
        "payments": payments,
        "total": total,
        "summary": tenant_payment_summary(tenant.id),
    }


def payment_stats(year=None, month=None) -> dict:
    """
    Counts and amounts by status, type and method.

    With ``year`` (and optionally ``month``) only payments whose payment date
    falls in that window are counted, so unpaid charges without a payment date
    drop out of a dated report.
    """
    query = Payment.query
    if month is not None and year is None:
        raise ValidationError("year is required when month is given", {"field": "year"})
    if year is not None:
        if month is not None and not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12", {"field": "month"})
        if month is not None:
            start, end = month_bounds(date(year, month, 1))
        else:
            start, end = date(year, 1, 1), date(year, 12, 31)
        query = query.filter(Payment.payment_date >= as_datetime(start),
                             Payment.payment_date < as_datetime(end) + timedelta(days=1))

    by_status = _grouped(query, Payment.status)
    summary = {
        "total_payments": sum(count for _, count, _ in by_status),
        "total_amount": float(sum((total for _, _, total in by_status), Decimal('0'))),
    }
    counted = {key: (count, total) for key, count, total in by_status}
    for status in REPORTED_STATUSES:
        count, total = counted.get(status, (0, Decimal('0')))
        summary[f"{status}_count"] = count
        summary[f"{status}_amount"] = float(total)

    return {
        "summary": summary,
        "by_type": _as_totals(_grouped(query, Payment.payment_type)),
        "by_method": _as_totals(_grouped(query, Payment.payment_method)),
    }
