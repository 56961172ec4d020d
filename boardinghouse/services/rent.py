"""
Monthly rent generation.

One rent charge per tenant per calendar month, gated on a paid deposit, an
active tenancy with a room, and a lease that overlaps the month. Uniqueness is
checked with a query before insert; re-running a month only fills gaps.
"""
import logging
from decimal import Decimal
from typing import NamedTuple, Optional

from sqlalchemy import or_

from boardinghouse.errors import ValidationError
from boardinghouse.extensions import db
from boardinghouse.models import Payment, Tenant
from boardinghouse.utils.money import (
    as_datetime,
    clamp_due_day,
    current_time,
    month_bounds,
    parse_month,
    to_money,
)
from .deposits import has_deposit_paid
from .notifications import build_payment_due, dispatch
from .payments import rent_exists

logger = logging.getLogger(__name__)

DEPOSIT_NOT_PAID = "Deposit not paid"
TENANT_NOT_ACTIVE = "Tenant is not active"
NO_ROOM = "Tenant has no room"
LEASE_NOT_COVERING = "Lease does not cover target month"
NO_RENT_AMOUNT = "No rent amount configured"
RENT_EXISTS = "Rent already exists for this period"


class RentOutcome(NamedTuple):
    payment: Optional[Payment]
    reason: Optional[str]

    @property
    def created(self) -> bool:
        return self.payment is not None and self.reason is None


def resolve_rent_amount(tenant) -> Decimal:
    if tenant.monthly_rent is not None and tenant.monthly_rent > 0:
        return to_money(tenant.monthly_rent)
    if tenant.room is not None and tenant.room.monthly_rent is not None:
        return to_money(tenant.room.monthly_rent)
    return Decimal('0.00')


def _target_date(target, now):
    if target is None:
        return now
    if isinstance(target, str):
        try:
            return parse_month(target)
        except ValueError:
            raise ValidationError("Invalid month format. Use YYYY-MM", {"field": "target_month"})
    return target


def generate_rent_for_tenant(tenant, target=None, actor_id=None, now=None) -> RentOutcome:
    now = now or current_time()
    period = month_bounds(_target_date(target, now))

    if not has_deposit_paid(tenant.id):
        return RentOutcome(None, DEPOSIT_NOT_PAID)
    if tenant.is_archived or tenant.tenant_status != 'active':
        return RentOutcome(None, TENANT_NOT_ACTIVE)
    if tenant.room_id is None or tenant.room is None:
        return RentOutcome(None, NO_ROOM)
    if not tenant.lease_covers(period.start_date, period.end_date):
        return RentOutcome(None, LEASE_NOT_COVERING)

    amount = resolve_rent_amount(tenant)
    if amount <= 0:
        return RentOutcome(None, NO_RENT_AMOUNT)

    if rent_exists(tenant.id, period):
        existing = Payment.query.filter_by(
            tenant_id=tenant.id, payment_type='rent',
            period_start=period.start_date, period_end=period.end_date,
        ).first()
        return RentOutcome(existing, RENT_EXISTS)

    payment = Payment(
        tenant_id=tenant.id,
        room_id=tenant.room_id,
        amount=amount,
        payment_type='rent',
        payment_method='cash',
        status='pending',
        due_date=as_datetime(clamp_due_day(period.start_date)),
        period_start=period.start_date,
        period_end=period.end_date,
        description=f"Monthly rent {period.label}",
        recorded_by_id=actor_id,
        late_fee_amount=Decimal('0'),
        is_late_payment=False,
    )
    db.session.add(payment)
    db.session.commit()

    logger.info("rent %s generated for tenant %s (%s)", period.label, tenant.id, amount)
    dispatch(build_payment_due(payment, now))
    return RentOutcome(payment, None)


def run_monthly_rent_generation(target_month=None, actor_id=None, now=None) -> dict:
    """
    Generate rent for every billable tenant whose lease overlaps the month.

    ``target_month`` is a date in the month or a ``YYYY-MM`` string and
    defaults to the current month. Tenants are processed one at a time; a
    failure is rolled back, logged and reported under ``failed``.
    """
    now = now or current_time()
    period = month_bounds(_target_date(target_month, now))

    tenants = (Tenant.query
               .filter(Tenant.is_archived.is_(False),
                       Tenant.tenant_status == 'active',
                       Tenant.lease_start_date <= period.end_date,
                       or_(Tenant.lease_end_date.is_(None),
                           Tenant.lease_end_date >= period.start_date))
               .order_by(Tenant.id)
               .all())

    created = 0
    skipped, failed = [], []
    for tenant in tenants:
        tenant_id = tenant.id
        try:
            outcome = generate_rent_for_tenant(tenant, period.start_date, actor_id=actor_id, now=now)
        except Exception as e:
            db.session.rollback()
            logger.exception("rent generation failed for tenant %s", tenant_id)
            failed.append({"tenant_id": tenant_id, "error": str(e)})
            continue
        if outcome.created:
            created += 1
        else:
            skipped.append({"tenant_id": tenant_id, "reason": outcome.reason})

    logger.info("monthly rent %s: created %d, skipped %d, failed %d",
                period.label, created, len(skipped), len(failed))
    return {"created": created, "month": period.label, "skipped": skipped, "failed": failed}
