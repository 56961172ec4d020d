import logging
from decimal import Decimal

from boardinghouse.extensions import db
from boardinghouse.models import Payment, Tenant
from boardinghouse.utils.money import as_datetime, current_time, to_money
from .notifications import build_payment_due, dispatch

logger = logging.getLogger(__name__)


def has_deposit_paid(tenant_id) -> bool:
    """Rent is only generated for tenants with a paid security deposit."""
    return db.session.query(
        Payment.query.filter_by(tenant_id=tenant_id, payment_type='deposit', status='paid').exists()
    ).scalar()


def has_deposit_record(tenant_id) -> bool:
    return db.session.query(
        Payment.query.filter_by(tenant_id=tenant_id, payment_type='deposit').exists()
    ).scalar()


def resolve_deposit_amount(tenant, room=None) -> Decimal:
    """Tenant override first, then the room default, else zero."""
    if tenant.security_deposit is not None:
        return to_money(tenant.security_deposit)
    room = room or tenant.room
    if room is not None and room.security_deposit is not None:
        return to_money(room.security_deposit)
    return Decimal('0.00')


def ensure_deposit_payment(tenant, room, due_date=None, actor_id=None, now=None):
    """
    Stage a pending deposit payment for ``tenant`` unless one already exists.

    Any existing deposit record counts, whatever its status. Nothing is
    created when the resolved amount is zero. The caller commits.
    """
    if has_deposit_record(tenant.id):
        return None
    amount = resolve_deposit_amount(tenant, room)
    if amount <= 0:
        return None

    now = now or current_time()
    payment = Payment(
        tenant_id=tenant.id,
        room_id=room.id,
        amount=amount,
        payment_type='deposit',
        payment_method='cash',
        status='pending',
        due_date=as_datetime(due_date or now),
        description='Security deposit',
        recorded_by_id=actor_id,
        late_fee_amount=Decimal('0'),
    )
    db.session.add(payment)
    return payment


def backfill_deposits(now=None, actor_id=None) -> dict:
    """Create the missing deposit for every active, housed tenant that has none."""
    now = now or current_time()
    tenants = (Tenant.query
               .filter(Tenant.is_archived.is_(False),
                       Tenant.tenant_status == 'active',
                       Tenant.room_id.isnot(None))
               .order_by(Tenant.id)
               .all())

    created, skipped, failed = 0, [], []
    for tenant in tenants:
        tenant_id = tenant.id
        try:
            due = tenant.lease_start_date or now
            payment = ensure_deposit_payment(tenant, tenant.room, due_date=due, actor_id=actor_id, now=now)
            if payment is None:
                skipped.append({"tenant_id": tenant_id})
                continue
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.exception("deposit backfill failed for tenant %s", tenant_id)
            failed.append({"tenant_id": tenant_id, "error": str(e)})
            continue
        created += 1
        dispatch(build_payment_due(payment, now))

    logger.info("deposit backfill created %d, skipped %d, failed %d", created, len(skipped), len(failed))
    return {"created": created, "checked": len(tenants), "skipped": skipped, "failed": failed}
