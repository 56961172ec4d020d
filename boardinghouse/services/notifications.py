"""
Notification payload builders and delivery.

Builders are pure: they take domain records and return lists of
``NotificationPayload``. ``dispatch`` hands payloads to the configured sink and
never lets a delivery failure escape, so billing writes are never undone by a
notification problem.
"""
import logging
from dataclasses import dataclass, field
from datetime import time, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app

from boardinghouse.extensions import db
from boardinghouse.models import Notification, Payment, Tenant, User
from boardinghouse.utils.money import as_date, as_datetime, current_time, days_until, to_money

logger = logging.getLogger(__name__)

PAYMENT_NOTIFICATION_TTL = timedelta(days=30)
LEASE_NOTIFICATION_TTL = timedelta(days=7)


class NotificationType(str, Enum):
    PAYMENT_DUE = "payment_due"
    PAYMENT_RECEIVED = "payment_received"
    REPORT_UPDATE = "report_update"
    REPORT_FOLLOWUP = "report_followup"
    SYSTEM_ALERT = "system_alert"
    MAINTENANCE = "maintenance"
    LEASE_REMINDER = "lease_reminder"
    ANNOUNCEMENT = "announcement"
    OTHER = "other"


class PaymentUrgency(str, Enum):
    MEDIUM = "medium"  # reminder
    HIGH = "high"  # due soon
    URGENT = "urgent"  # overdue


@dataclass(frozen=True)
class Recipient:
    kind: str
    id: int

    STAFF = "Staff"
    TENANT = "Tenant"

    @classmethod
    def staff(cls, user_id: int) -> "Recipient":
        return cls(cls.STAFF, user_id)

    @classmethod
    def tenant(cls, tenant_id: int) -> "Recipient":
        return cls(cls.TENANT, tenant_id)

    @property
    def key(self) -> str:
        return f"{self.kind}::{self.id}"


@dataclass
class NotificationPayload:
    recipient: Recipient
    type: NotificationType
    title: str
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    expires_at: Optional[Any] = None


def _fmt_amount(amount) -> str:
    return f"${to_money(amount)}"


def _fmt_date(value) -> str:
    return as_date(value).strftime("%m/%d/%Y")


# ---------------------------------------------------------------------------
# Tiering
# ---------------------------------------------------------------------------

def payment_urgency(due_date, now=None) -> Optional[PaymentUrgency]:
    """Urgency tier for a payment, or None when it is more than a week out."""
    days = days_until(due_date, now)
    if days <= 0:
        return PaymentUrgency.URGENT
    if days <= 3:
        return PaymentUrgency.HIGH
    if days <= 7:
        return PaymentUrgency.MEDIUM
    return None


def lease_expiry_title(days_until_expiry: int) -> Optional[str]:
    if days_until_expiry <= 7:
        return "Lease Expiring Soon"
    if days_until_expiry <= 30:
        return "Lease Renewal Reminder"
    return None


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def build_payment_due(payment: Payment, now=None) -> List[NotificationPayload]:
    if payment.tenant_id is None:
        return []
    urgency = payment_urgency(payment.due_date, now)
    if urgency is None:
        return []

    days = days_until(payment.due_date, now)
    amount = _fmt_amount(payment.amount)
    due = _fmt_date(payment.due_date)
    kind = payment.payment_type
    if urgency is PaymentUrgency.URGENT:
        title = "Payment Overdue"
        message = (f"Your {kind} payment of {amount} was due on {due}. "
                   "Please make payment immediately to avoid late fees.")
    elif urgency is PaymentUrgency.HIGH:
        title = "Payment Due Soon"
        message = f"Your {kind} payment of {amount} is due in {days} day(s) on {due}."
    else:
        title = "Payment Reminder"
        message = f"Reminder: Your {kind} payment of {amount} is due on {due}."

    return [NotificationPayload(
        recipient=Recipient.tenant(payment.tenant_id),
        type=NotificationType.PAYMENT_DUE,
        title=title,
        message=message,
        metadata={
            "payment_id": payment.id,
            "payment_type": kind,
            "amount": float(payment.amount),
            "due_date": as_datetime(payment.due_date).isoformat(),
            "urgency": urgency.value,
            "room_id": payment.room_id,
        },
        expires_at=as_datetime(payment.due_date) + PAYMENT_NOTIFICATION_TTL,
    )]


def build_payment_received(payment: Payment) -> List[NotificationPayload]:
    return [NotificationPayload(
        recipient=Recipient.tenant(payment.tenant_id),
        type=NotificationType.PAYMENT_RECEIVED,
        title="Payment Received",
        message=(f"Your {payment.payment_type} payment of {_fmt_amount(payment.amount)} "
                 f"has been received. Receipt number: {payment.receipt_number}."),
        metadata={
            "payment_id": payment.id,
            "payment_type": payment.payment_type,
            "amount": float(payment.amount),
            "receipt_number": payment.receipt_number,
            "room_id": payment.room_id,
        },
    )]


def build_lease_reminder(tenant: Tenant, days_until_expiry: int) -> List[NotificationPayload]:
    if tenant.lease_end_date is None:
        return []
    title = lease_expiry_title(days_until_expiry)
    if title is None:
        return []

    end = _fmt_date(tenant.lease_end_date)
    if days_until_expiry <= 7:
        message = (f"Your lease expires in {days_until_expiry} day(s) on {end}. "
                   "Please contact management regarding lease renewal.")
    else:
        message = (f"Your lease expires on {end}. "
                   "Please consider renewing your lease before it expires.")

    return [NotificationPayload(
        recipient=Recipient.tenant(tenant.id),
        type=NotificationType.LEASE_REMINDER,
        title=title,
        message=message,
        metadata={
            "tenant_id": tenant.id,
            "lease_end_date": tenant.lease_end_date.isoformat(),
            "room_id": tenant.room_id,
            "days_until_expiry": days_until_expiry,
        },
        expires_at=as_datetime(tenant.lease_end_date) + LEASE_NOTIFICATION_TTL,
    )]


def build_report_created(report, staff_users: Iterable[User]) -> List[NotificationPayload]:
    meta = {
        "report_id": report.id,
        "report_type": report.type,
        "report_status": report.status,
        "room_id": report.room_id,
    }
    payloads = [NotificationPayload(
        recipient=Recipient.tenant(report.tenant_id),
        type=NotificationType.REPORT_UPDATE,
        title="Report Submitted Successfully",
        message=(f'Your {report.type} report "{report.title}" has been submitted '
                 "and is now pending review by management."),
        metadata=dict(meta),
    )]
    for user in staff_users:
        payloads.append(NotificationPayload(
            recipient=Recipient.staff(user.id),
            type=NotificationType.REPORT_UPDATE,
            title="New Report Submitted",
            message=(f'A new {report.type} report "{report.title}" has been submitted '
                     "by a tenant and requires attention."),
            metadata=dict(meta, tenant_id=report.tenant_id),
        ))
    return payloads


REPORT_STATUS_PHRASES = {
    "in-progress": "is now being worked on",
    "resolved": "has been resolved",
    "rejected": "has been rejected",
}


def build_report_status_changed(report, old_status: str) -> List[NotificationPayload]:
    phrase = REPORT_STATUS_PHRASES.get(report.status, f"status has been updated to {report.status}")
    return [NotificationPayload(
        recipient=Recipient.tenant(report.tenant_id),
        type=NotificationType.REPORT_UPDATE,
        title="Report Status Updated",
        message=f'Your {report.type} report "{report.title}" {phrase}.',
        metadata={
            "report_id": report.id,
            "report_type": report.type,
            "old_status": old_status,
            "new_status": report.status,
            "room_id": report.room_id,
        },
    )]


def build_system_announcement(title, message, recipients=None, expires_at=None,
                              audience="all") -> List[NotificationPayload]:
    """
    Fan an announcement out to every active account.

    With no explicit ``recipients`` the audience is every non-archived staff
    user and/or every non-archived tenant, per ``audience`` (all, staff,
    tenants). Duplicate recipients are dropped, keeping the first occurrence.
    """
    if recipients is None:
        recipients = []
        if audience in ("all", "staff"):
            recipients += [Recipient.staff(u.id) for u in User.query.filter(User.is_archived.is_(False))]
        if audience in ("all", "tenants"):
            recipients += [Recipient.tenant(t.id) for t in Tenant.query.filter(Tenant.is_archived.is_(False))]

    seen = set()
    payloads = []
    for recipient in recipients:
        if recipient.key in seen:
            continue
        seen.add(recipient.key)
        payloads.append(NotificationPayload(
            recipient=recipient,
            type=NotificationType.ANNOUNCEMENT,
            title=title,
            message=message,
            metadata={"is_system_announcement": True},
            expires_at=expires_at,
        ))
    return payloads


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------

class DatabaseNotificationSink:
    """Default sink: one ``Notification`` row per payload."""

    def notify(self, recipient, type, message, metadata=None, expires_at=None, title=None):
        type_value = type.value if isinstance(type, Enum) else type
        notification = Notification(
            recipient_kind=recipient.kind,
            recipient_id=recipient.id,
            type=type_value,
            title=title or type_value.replace("_", " ").title(),
            message=message,
            meta=metadata or {},
            expires_at=expires_at,
        )
        db.session.add(notification)
        db.session.commit()
        return notification


def get_sink():
    sink = current_app.extensions.get("notification_sink")
    if sink is None:
        sink = DatabaseNotificationSink()
        current_app.extensions["notification_sink"] = sink
    return sink


def dispatch(payloads: Iterable[NotificationPayload], sink=None) -> int:
    """Deliver payloads one at a time. Returns how many were accepted."""
    sink = sink or get_sink()
    delivered = 0
    for payload in payloads:
        try:
            sink.notify(
                payload.recipient,
                payload.type,
                payload.message,
                payload.metadata,
                expires_at=payload.expires_at,
                title=payload.title,
            )
            delivered += 1
        except Exception:
            db.session.rollback()
            logger.exception("notification delivery failed for %s (%s)",
                             payload.recipient.key, payload.type.value)
    return delivered


# ---------------------------------------------------------------------------
# Sweeps
# ---------------------------------------------------------------------------

def send_payment_due_reminders(now=None, window_days=None) -> dict:
    now = now or current_time()
    if window_days is None:
        window_days = current_app.config.get("PAYMENT_REMINDER_WINDOW_DAYS", 7)
    horizon = now + timedelta(days=window_days)

    payments = (Payment.query
                .filter(Payment.status.in_(("pending", "overdue")),
                        Payment.due_date <= horizon)
                .order_by(Payment.due_date)
                .all())

    notified = 0
    for payment in payments:
        notified += dispatch(build_payment_due(payment, now))

    logger.info("processed %d payment due reminders", len(payments))
    return {"processed": len(payments), "notified": notified}


def send_lease_expiry_reminders(now=None, window_days=None) -> dict:
    now = now or current_time()
    if window_days is None:
        window_days = current_app.config.get("LEASE_REMINDER_WINDOW_DAYS", 30)
    horizon = (now + timedelta(days=window_days)).date()
    # a lease ending on day d ends at midnight opening d
    earliest = now.date() if now.time() == time.min else now.date() + timedelta(days=1)

    tenants = (Tenant.query
               .filter(Tenant.lease_end_date.isnot(None),
                       Tenant.lease_end_date >= earliest,
                       Tenant.lease_end_date <= horizon,
                       Tenant.tenant_status == "active",
                       Tenant.is_archived.is_(False))
               .all())

    notified = 0
    for tenant in tenants:
        notified += dispatch(build_lease_reminder(tenant, days_until(tenant.lease_end_date, now)))

    logger.info("processed %d lease expiry reminders", len(tenants))
    return {"processed": len(tenants), "notified": notified}


def run_overdue_and_reminder_sweep(now=None) -> dict:
    """Mark lapsed payments overdue, then remind tenants of upcoming and overdue charges."""
    from .payments import sweep_overdue

    now = now or current_time()
    overdue = sweep_overdue(now=now)
    reminders = send_payment_due_reminders(now=now)
    return {"overdue": overdue, "reminders": reminders}


def run_lease_expiry_sweep(now=None) -> dict:
    return send_lease_expiry_reminders(now=now)
