import logging

from boardinghouse.errors import NotFoundError, ValidationError
from boardinghouse.extensions import db
from boardinghouse.models import Report, Tenant, User
from boardinghouse.models.report import REPORT_STATUSES, REPORT_TYPES
from .notifications import build_report_created, build_report_status_changed, dispatch

logger = logging.getLogger(__name__)


def submit_report(tenant_id, type, title, description, room_id=None):
    """File a maintenance request or complaint and notify the tenant and staff."""
    if type not in REPORT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(REPORT_TYPES)}", {"field": "type"})
    if not title or not description:
        raise ValidationError("title and description are required")

    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None or tenant.is_archived:
        raise NotFoundError("Tenant not found or archived", {"tenant_id": tenant_id})

    report = Report(
        tenant_id=tenant.id,
        room_id=room_id or tenant.room_id,
        type=type,
        title=title,
        description=description,
        status='pending',
    )
    db.session.add(report)
    db.session.commit()

    logger.info("report %s submitted by tenant %s", report.id, tenant.id)
    dispatch(build_report_created(report, User.active_staff()))
    return report


def update_report_status(report_id, status):
    if status not in REPORT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(REPORT_STATUSES)}", {"field": "status"})
    report = db.session.get(Report, report_id)
    if report is None:
        raise NotFoundError("Report not found", {"report_id": report_id})

    old_status = report.status
    if old_status == status:
        return report
    report.status = status
    db.session.commit()

    dispatch(build_report_status_changed(report, old_status))
    return report
