from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from boardinghouse.models import Notification, Payment, Tenant
from boardinghouse.services.notifications import (
    DatabaseNotificationSink,
    NotificationPayload,
    NotificationType,
    PaymentUrgency,
    Recipient,
    build_lease_reminder,
    build_payment_due,
    build_system_announcement,
    dispatch,
    lease_expiry_title,
    payment_urgency,
    send_lease_expiry_reminders,
    send_payment_due_reminders,
)
from boardinghouse.services.occupancy import LeaseTerms, assign_tenant

TODAY = datetime(2024, 3, 10, 9, 0)


def _payment(due, **fields):
    values = dict(id=7, tenant_id=3, room_id=2, amount=Decimal("5000.00"), payment_type="rent", due_date=due)
    values.update(fields)
    return Payment(**values)


class TestPaymentUrgency:
    @pytest.mark.parametrize("offset, expected", [
        (timedelta(days=10), None),
        (timedelta(days=7), PaymentUrgency.MEDIUM),
        (timedelta(days=4), PaymentUrgency.MEDIUM),
        (timedelta(days=3), PaymentUrgency.HIGH),
        (timedelta(days=2), PaymentUrgency.HIGH),
        (timedelta(hours=1), PaymentUrgency.HIGH),
        (timedelta(0), PaymentUrgency.URGENT),
        (timedelta(days=-1), PaymentUrgency.URGENT),
    ])
    def test_tiers(self, offset, expected):
        assert payment_urgency(TODAY + offset, TODAY) == expected


class TestPaymentDueBuilder:
    def test_due_soon(self):
        [payload] = build_payment_due(_payment(TODAY + timedelta(days=2)), TODAY)

        assert payload.recipient == Recipient.tenant(3)
        assert payload.type is NotificationType.PAYMENT_DUE
        assert payload.title == "Payment Due Soon"
        assert payload.message == "Your rent payment of $5000.00 is due in 2 day(s) on 03/12/2024."
        assert payload.metadata["urgency"] == "high"
        assert payload.expires_at == TODAY + timedelta(days=32)

    def test_overdue(self):
        [payload] = build_payment_due(_payment(TODAY - timedelta(days=1)), TODAY)
        assert payload.title == "Payment Overdue"
        assert payload.metadata["urgency"] == "urgent"

    def test_far_off_payment_is_silent(self):
        assert build_payment_due(_payment(TODAY + timedelta(days=30)), TODAY) == []


class TestLeaseReminders:
    @pytest.mark.parametrize("days, title", [
        (3, "Lease Expiring Soon"),
        (7, "Lease Expiring Soon"),
        (8, "Lease Renewal Reminder"),
        (30, "Lease Renewal Reminder"),
        (31, None),
    ])
    def test_tiers(self, days, title):
        assert lease_expiry_title(days) == title

    def test_payload_expires_a_week_after_the_lease(self):
        tenant = Tenant(id=5, room_id=1, lease_end_date=date(2024, 3, 15))
        [payload] = build_lease_reminder(tenant, 5)
        assert payload.title == "Lease Expiring Soon"
        assert payload.expires_at == datetime(2024, 3, 22)
        assert payload.metadata["days_until_expiry"] == 5

    def test_open_ended_lease(self):
        assert build_lease_reminder(Tenant(id=5), 5) == []


class TestSystemAnnouncement:
    def test_duplicates_are_dropped(self):
        recipients = [Recipient.staff(1), Recipient.tenant(1), Recipient.staff(1)]
        payloads = build_system_announcement("Water", "Shutoff at noon", recipients)
        assert [p.recipient for p in payloads] == [Recipient.staff(1), Recipient.tenant(1)]
        assert all(p.metadata == {"is_system_announcement": True} for p in payloads)

    def test_default_audience_is_every_active_account(self, admin, staff, make_tenant):
        active = make_tenant()
        make_tenant(is_archived=True)

        payloads = build_system_announcement("Water", "Shutoff at noon")

        assert {p.recipient for p in payloads} == {
            Recipient.staff(admin.id), Recipient.staff(staff.id), Recipient.tenant(active.id),
        }
        tenants_only = build_system_announcement("Water", "Shutoff", audience="tenants")
        assert [p.recipient for p in tenants_only] == [Recipient.tenant(active.id)]


class ExplodingSink:
    def __init__(self):
        self.calls = 0

    def notify(self, *args, **kwargs):
        self.calls += 1
        raise RuntimeError("smtp down")


class TestDispatch:
    def _payloads(self, n):
        return [NotificationPayload(Recipient.tenant(i), NotificationType.OTHER, "Hi", "Hello") for i in range(n)]

    def test_sink_failures_are_contained(self, app, caplog):
        sink = ExplodingSink()
        assert dispatch(self._payloads(2), sink=sink) == 0
        assert sink.calls == 2
        assert "notification delivery failed" in caplog.text

    def test_database_sink_persists_rows(self, db):
        delivered = dispatch(self._payloads(1), sink=DatabaseNotificationSink())

        assert delivered == 1
        row = Notification.query.one()
        assert (row.recipient_kind, row.recipient_id) == ("Tenant", 0)
        assert row.title == "Hi"
        assert row.status == "unread"
        assert row.serialize()["metadata"] == {}


class TestSweeps:
    def test_payment_reminders_cover_the_next_week_and_overdue(self, db, make_room, make_tenant, sink):
        room, tenant = make_room(security_deposit="0"), make_tenant()
        assign_tenant(room.id, tenant.id, LeaseTerms(start_date=date(2024, 1, 1)), now=datetime(2024, 1, 1))
        for due in (TODAY - timedelta(days=2), TODAY + timedelta(days=5), TODAY + timedelta(days=20)):
            db.session.add(_payment(due, id=None, tenant_id=tenant.id, room_id=room.id,
                                   payment_type="utility", status="pending"))
        db.session.commit()
        sink.clear()

        result = send_payment_due_reminders(now=TODAY)

        assert result == {"processed": 2, "notified": 2}
        assert sink.titles == ["Payment Overdue", "Payment Reminder"]

    def test_lease_reminders(self, make_room, make_tenant, sink):
        for number, end in (("R1", date(2024, 3, 14)), ("R2", date(2024, 4, 1)), ("R3", date(2024, 6, 1))):
            room, tenant = make_room(number, security_deposit="0"), make_tenant()
            assign_tenant(room.id, tenant.id, LeaseTerms(date(2024, 1, 1), end), now=datetime(2024, 1, 1))
        sink.clear()

        result = send_lease_expiry_reminders(now=TODAY)

        assert result["processed"] == 2
        assert sorted(sink.titles) == ["Lease Expiring Soon", "Lease Renewal Reminder"]

    def test_lease_that_ended_earlier_today_is_not_reminded(self, make_room, make_tenant, sink):
        room, tenant = make_room(security_deposit="0"), make_tenant()
        assign_tenant(room.id, tenant.id, LeaseTerms(date(2024, 1, 1), date(2024, 3, 10)), now=datetime(2024, 1, 1))
        sink.clear()

        assert send_lease_expiry_reminders(now=TODAY) == {"processed": 0, "notified": 0}
        assert send_lease_expiry_reminders(now=datetime(2024, 3, 10))["processed"] == 1
        assert sink.sent[0]["metadata"]["days_until_expiry"] == 0
