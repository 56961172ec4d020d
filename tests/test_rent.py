from datetime import date, datetime
from decimal import Decimal

import pytest

from boardinghouse.errors import ValidationError
from boardinghouse.models import Payment
from boardinghouse.services import rent as rent_service
from boardinghouse.services.deposits import backfill_deposits, has_deposit_paid
from boardinghouse.services.occupancy import LeaseTerms, assign_tenant
from boardinghouse.services.payments import mark_payment_paid
from boardinghouse.services.rent import (
    DEPOSIT_NOT_PAID,
    LEASE_NOT_COVERING,
    RENT_EXISTS,
    TENANT_NOT_ACTIVE,
    generate_rent_for_tenant,
    run_monthly_rent_generation,
)

NEW_YEAR = datetime(2024, 1, 1)


def _deposit_for(tenant):
    return Payment.query.filter_by(tenant_id=tenant.id, payment_type="deposit").one()


def _rents_for(tenant):
    return Payment.query.filter_by(tenant_id=tenant.id, payment_type="rent").order_by(Payment.period_start).all()


@pytest.fixture
def r101(make_room):
    return make_room("R101", capacity=1, monthly_rent="5000.00", security_deposit="5000.00")


@pytest.fixture
def paid_up_tenant(r101, make_tenant, admin):
    """Assigned to R101 on 2024-01-01 with the deposit paid the same day."""
    tenant = make_tenant()
    assign_tenant(r101.id, tenant.id, LeaseTerms(start_date=date(2024, 1, 1)), now=NEW_YEAR)
    mark_payment_paid(_deposit_for(tenant).id, actor_id=admin.id, now=NEW_YEAR)
    return tenant


class TestDepositScenario:
    def test_assignment_opens_a_pending_deposit(self, r101, make_tenant):
        tenant = make_tenant()
        assign_tenant(r101.id, tenant.id, LeaseTerms(start_date=date(2024, 1, 1)), now=NEW_YEAR)

        deposit = _deposit_for(tenant)
        assert deposit.amount == Decimal("5000.00")
        assert deposit.status == "pending"
        assert deposit.due_date == NEW_YEAR
        assert not has_deposit_paid(tenant.id)

    def test_paying_the_deposit_generates_the_current_month(self, paid_up_tenant, admin):
        rents = _rents_for(paid_up_tenant)

        assert len(rents) == 1
        rent = rents[0]
        assert rent.amount == Decimal("5000.00")
        assert rent.status == "pending"
        assert rent.period_start == date(2024, 1, 1)
        assert rent.period_end == date(2024, 1, 31)
        assert rent.due_date == datetime(2024, 1, 1)
        assert rent.payment_method == "cash"
        assert rent.late_fee_amount == Decimal("0")
        assert rent.recorded_by_id == admin.id

    def test_unpaid_deposit_blocks_february(self, r101, make_tenant):
        tenant = make_tenant()
        assign_tenant(r101.id, tenant.id, LeaseTerms(start_date=date(2024, 1, 1)), now=NEW_YEAR)

        result = run_monthly_rent_generation("2024-02", now=datetime(2024, 2, 1, 8, 0))

        assert result["created"] == 0
        assert result["month"] == "2024-02"
        assert result["skipped"] == [{"tenant_id": tenant.id, "reason": DEPOSIT_NOT_PAID}]
        assert _rents_for(tenant) == []


class TestMonthlyGeneration:
    def test_rerunning_a_month_is_idempotent(self, paid_up_tenant):
        first = run_monthly_rent_generation(date(2024, 2, 1), now=datetime(2024, 2, 1, 8))
        second = run_monthly_rent_generation(date(2024, 2, 1), now=datetime(2024, 2, 1, 8))

        assert first["created"] == 1
        assert second["created"] == 0
        assert second["skipped"] == [{"tenant_id": paid_up_tenant.id, "reason": RENT_EXISTS}]
        assert [r.period_start for r in _rents_for(paid_up_tenant)] == [date(2024, 1, 1), date(2024, 2, 1)]

    def test_target_defaults_to_the_current_month(self, paid_up_tenant):
        result = run_monthly_rent_generation(now=datetime(2024, 3, 1, 8))
        assert result == {"created": 1, "month": "2024-03", "skipped": [], "failed": []}

    def test_tenants_outside_the_lease_window_are_not_considered(self, paid_up_tenant, db):
        paid_up_tenant.lease_end_date = date(2024, 1, 31)
        db.session.commit()

        result = run_monthly_rent_generation("2024-02", now=datetime(2024, 2, 1))
        assert result["created"] == 0
        assert result["skipped"] == []

    def test_malformed_month_is_a_validation_error(self, paid_up_tenant):
        with pytest.raises(ValidationError) as excinfo:
            run_monthly_rent_generation("2024-13", now=datetime(2024, 2, 1))
        assert excinfo.value.details == {"field": "target_month"}
        assert len(_rents_for(paid_up_tenant)) == 1

    def test_tenant_rent_override_wins(self, make_room, make_tenant):
        room = make_room("R102", monthly_rent="5000.00", security_deposit="1000.00")
        tenant = make_tenant()
        assign_tenant(room.id, tenant.id, LeaseTerms(start_date=date(2024, 1, 1), monthly_rent=Decimal("4200")),
                      now=NEW_YEAR)
        mark_payment_paid(_deposit_for(tenant).id, now=NEW_YEAR)

        assert _rents_for(tenant)[0].amount == Decimal("4200.00")

    def test_one_failure_does_not_stop_the_batch(self, make_room, make_tenant, monkeypatch):
        tenants = []
        for number in ("R110", "R111"):
            room = make_room(number)
            tenant = make_tenant()
            assign_tenant(room.id, tenant.id, LeaseTerms(start_date=date(2024, 1, 1)), now=NEW_YEAR)
            mark_payment_paid(_deposit_for(tenant).id, now=NEW_YEAR)
            tenants.append(tenant)
        broken_id = tenants[0].id

        real = rent_service.generate_rent_for_tenant

        def flaky(tenant, *args, **kwargs):
            if tenant.id == broken_id:
                raise RuntimeError("database went away")
            return real(tenant, *args, **kwargs)

        monkeypatch.setattr(rent_service, "generate_rent_for_tenant", flaky)
        result = run_monthly_rent_generation("2024-02", now=datetime(2024, 2, 1))

        assert result["created"] == 1
        assert result["failed"] == [{"tenant_id": broken_id, "error": "database went away"}]


class TestGenerateForTenant:
    def test_archived_tenant(self, paid_up_tenant, db):
        paid_up_tenant.is_archived = True
        db.session.commit()

        outcome = generate_rent_for_tenant(paid_up_tenant, date(2024, 2, 1), now=datetime(2024, 2, 1))
        assert outcome.payment is None
        assert outcome.reason == TENANT_NOT_ACTIVE
        assert not outcome.created

    def test_lease_must_cover_the_month(self, paid_up_tenant):
        outcome = generate_rent_for_tenant(paid_up_tenant, date(2023, 12, 1), now=NEW_YEAR)
        assert outcome.reason == LEASE_NOT_COVERING

    def test_existing_rent_is_returned(self, paid_up_tenant):
        outcome = generate_rent_for_tenant(paid_up_tenant, "2024-01", now=NEW_YEAR)
        assert outcome.reason == RENT_EXISTS
        assert outcome.payment.period_start == date(2024, 1, 1)

    def test_due_date_is_the_first_of_the_month(self, paid_up_tenant):
        outcome = generate_rent_for_tenant(paid_up_tenant, date(2024, 5, 17), now=datetime(2024, 5, 17))
        assert outcome.created
        assert outcome.payment.due_date == datetime(2024, 5, 1)


class TestBackfillDeposits:
    def test_missing_deposits_are_created_once(self, db, r101, make_tenant):
        tenant = make_tenant(room_id=r101.id, tenant_status="active", lease_start_date=date(2024, 1, 1))
        r101.tenants.append(tenant)
        db.session.commit()

        first = backfill_deposits(now=NEW_YEAR)
        second = backfill_deposits(now=NEW_YEAR)

        assert first["created"] == 1
        assert second["created"] == 0
        assert _deposit_for(tenant).amount == Decimal("5000.00")

    def test_zero_deposit_is_skipped(self, db, make_room, make_tenant):
        room = make_room("R900", security_deposit="0")
        make_tenant(room_id=room.id, tenant_status="active")

        result = backfill_deposits(now=NEW_YEAR)
        assert result["created"] == 0
        assert len(result["skipped"]) == 1


class FailingSink:
    def __init__(self):
        self.calls = 0

    def notify(self, *args, **kwargs):
        self.calls += 1
        raise RuntimeError("notification gateway unreachable")


class TestDeliveryFailures:
    def test_billing_completes_when_every_notification_fails(self, app, r101, make_tenant):
        sink = FailingSink()
        app.extensions["notification_sink"] = sink
        tenant = make_tenant()

        assign_tenant(r101.id, tenant.id, LeaseTerms(start_date=date(2024, 1, 1)), now=NEW_YEAR)
        mark_payment_paid(_deposit_for(tenant).id, now=NEW_YEAR)

        assert _deposit_for(tenant).status == "paid"
        [rent] = _rents_for(tenant)
        assert rent.period_start == date(2024, 1, 1)
        assert rent.amount == Decimal("5000.00")
        assert r101.occupancy_current == 1
        assert sink.calls >= 3
