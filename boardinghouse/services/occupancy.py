"""
Room/tenant consistency.

The room's tenant list and the tenant's ``room_id`` are stored separately.
Every mutation here writes both sides and commits once; the reconciliation
helpers at the bottom repair drift left by writes that went around them.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import NamedTuple, Optional

from boardinghouse.errors import ConflictError, NotFoundError, ValidationError
from boardinghouse.extensions import db
from boardinghouse.models import Room, Tenant
from boardinghouse.utils.money import current_time, to_money
from .deposits import ensure_deposit_payment
from .notifications import build_payment_due, dispatch

logger = logging.getLogger(__name__)


class LeaseTerms(NamedTuple):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    monthly_rent: Optional[Decimal] = None
    security_deposit: Optional[Decimal] = None

    @classmethod
    def from_dict(cls, data):
        def _date(key):
            value = data.get(key)
            if value in (None, ''):
                return None
            if isinstance(value, date):
                return value
            try:
                return date.fromisoformat(str(value)[:10])
            except ValueError:
                raise ValidationError(f"{key} must be a date (YYYY-MM-DD)", {"field": key})

        def _money(key):
            value = data.get(key)
            if value is None:
                return None
            try:
                amount = to_money(value)
            except ValueError:
                raise ValidationError(f"{key} must be a number", {"field": key})
            if amount < 0:
                raise ValidationError(f"{key} cannot be negative", {"field": key})
            return amount

        return cls(
            start_date=_date('lease_start_date'),
            end_date=_date('lease_end_date'),
            monthly_rent=_money('monthly_rent'),
            security_deposit=_money('security_deposit'),
        )


def recompute_occupancy(room):
    """Derive occupancy and status from the tenant list."""
    room.occupancy_current = len(room.tenants)
    room.status = 'available' if room.occupancy_current == 0 else 'occupied'
    return room


def capacity_status(room) -> dict:
    remaining = max(0, room.capacity - room.occupancy_current)
    rate = (room.occupancy_current / room.capacity) * 100 if room.capacity else 0
    return {
        "current": room.occupancy_current,
        "capacity": room.capacity,
        "remaining": remaining,
        "occupancy_rate": round(rate, 2),
        "is_full": remaining == 0,
        "is_empty": room.occupancy_current == 0,
        "is_partially_occupied": room.occupancy_current > 0 and remaining > 0,
    }


def room_revenue(room) -> Decimal:
    """Expected monthly revenue: each tenant's rent override, else the room rent."""
    total = Decimal('0.00')
    for tenant in room.tenants:
        rent = tenant.monthly_rent if tenant.monthly_rent else room.monthly_rent
        total += to_money(rent or 0)
    return total


def _get_room(room_id):
    room = db.session.get(Room, room_id)
    if room is None or not room.is_active:
        raise NotFoundError("Room not found or inactive", {"room_id": room_id})
    return room


def assign_tenant(room_id, tenant_id, lease_terms=None, actor_id=None, now=None):
    now = now or current_time()
    lease_terms = lease_terms or LeaseTerms()
    room = _get_room(room_id)
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None or tenant.is_archived:
        raise NotFoundError("Tenant not found or archived", {"tenant_id": tenant_id})

    if tenant.room_id is not None:
        raise ConflictError("Tenant is already assigned to another room",
                            {"tenant_id": tenant.id, "room_id": tenant.room_id})
    if room.has_tenant(tenant.id):
        raise ConflictError("Tenant is already assigned to this room", {"tenant_id": tenant.id})
    if len(room.tenants) >= room.capacity:
        raise ConflictError("Room is at full capacity",
                            {"room_id": room.id, "capacity": room.capacity})
    if room.status in ('maintenance', 'unavailable'):
        raise ConflictError(f"Room is currently {room.status}", {"room_id": room.id})

    start = lease_terms.start_date or now.date()
    if lease_terms.end_date is not None and lease_terms.end_date <= start:
        raise ValidationError("Lease end date must be after lease start date")

    room.tenants.append(tenant)
    recompute_occupancy(room)

    tenant.room_id = room.id
    tenant.lease_start_date = start
    tenant.lease_end_date = lease_terms.end_date
    if lease_terms.monthly_rent is not None:
        tenant.monthly_rent = lease_terms.monthly_rent
    if lease_terms.security_deposit is not None:
        tenant.security_deposit = lease_terms.security_deposit
    tenant.tenant_status = 'active'

    deposit = ensure_deposit_payment(tenant, room, due_date=start, actor_id=actor_id, now=now)
    db.session.commit()

    logger.info("tenant %s assigned to room %s (%d/%d)",
                tenant.id, room.room_number, room.occupancy_current, room.capacity)
    if deposit is not None:
        dispatch(build_payment_due(deposit, now))
    return room


def remove_tenant(room_id, tenant_id):
    room = _get_room(room_id)
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found", {"tenant_id": tenant_id})
    if not room.has_tenant(tenant.id):
        raise ConflictError("Tenant is not assigned to this room",
                            {"room_id": room.id, "tenant_id": tenant_id})

    room.tenants.remove(tenant)
    recompute_occupancy(room)
    tenant.clear_tenancy()
    db.session.commit()

    logger.info("tenant %s removed from room %s", tenant.id, room.room_number)
    return room


def _rooms_listing(tenant):
    return Room.query.filter(Room.tenants.any(Tenant.id == tenant.id)).all()


def archive_tenant(tenant_id):
    """Archive a tenant and take them out of their room in the same commit."""
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found", {"tenant_id": tenant_id})
    if tenant.is_archived:
        raise ConflictError("Tenant is already archived", {"tenant_id": tenant.id})

    for room in _rooms_listing(tenant):
        room.tenants.remove(tenant)
        recompute_occupancy(room)
        logger.info("archived tenant %s removed from room %s", tenant.id, room.room_number)

    tenant.room_id = None
    tenant.is_archived = True
    tenant.tenant_status = 'inactive'
    db.session.commit()
    return tenant


def unarchive_tenant(tenant_id):
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found", {"tenant_id": tenant_id})
    if not tenant.is_archived:
        raise ConflictError("Tenant is not archived", {"tenant_id": tenant.id})

    tenant.is_archived = False
    tenant.tenant_status = 'active'
    db.session.commit()
    return tenant


def remove_archived_tenants() -> dict:
    """Strip archived tenants from every room that still lists them."""
    rooms = Room.query.filter(Room.tenants.any(Tenant.is_archived.is_(True))).all()
    removed = 0
    for room in rooms:
        stale = [t for t in room.tenants if t.is_archived]
        for tenant in stale:
            room.tenants.remove(tenant)
        removed += len(stale)
        recompute_occupancy(room)
    db.session.commit()

    if removed:
        logger.info("removed %d archived tenants from %d rooms", removed, len(rooms))
    return {"removed_count": removed, "rooms_updated": len(rooms)}


def cleanup_archived_tenants() -> dict:
    """Detach archived tenants that still carry a room, then sweep all rooms."""
    stragglers = (Tenant.query
                  .filter(Tenant.is_archived.is_(True), Tenant.room_id.isnot(None))
                  .all())
    logger.info("found %d archived tenants still assigned to rooms", len(stragglers))

    cleaned = 0
    for tenant in stragglers:
        tenant_id = tenant.id
        try:
            room = tenant.room
            if room is not None and room.has_tenant(tenant.id):
                room.tenants.remove(tenant)
                recompute_occupancy(room)
            tenant.room_id = None
            db.session.commit()
            cleaned += 1
        except Exception:
            db.session.rollback()
            logger.exception("could not detach archived tenant %s from its room", tenant_id)

    result = remove_archived_tenants()
    return {"manually_removed": cleaned, "room_cleanup_result": result}


def verify_room_tenant_integrity() -> list:
    """Report drift between room tenant lists and tenant room references. Read-only."""
    issues = []
    for room in Room.query.order_by(Room.id):
        archived = [t for t in room.tenants if t.is_archived]
        if archived:
            issues.append({
                "type": "archived_tenants_in_room",
                "room_id": room.id,
                "room_number": room.room_number,
                "archived_tenants": [{"id": t.id, "name": t.full_name} for t in archived],
            })

    housed = (Tenant.query
              .filter(Tenant.is_archived.is_(False), Tenant.room_id.isnot(None))
              .order_by(Tenant.id))
    for tenant in housed:
        room = tenant.room
        if room is not None and not room.has_tenant(tenant.id):
            issues.append({
                "type": "tenant_not_in_room_array",
                "tenant_id": tenant.id,
                "tenant_name": tenant.full_name,
                "room_id": room.id,
                "room_number": room.room_number,
            })

    logger.info("found %d room/tenant integrity issues", len(issues))
    return issues
