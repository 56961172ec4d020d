import logging
from datetime import timedelta

from flask import current_app

from boardinghouse.extensions import db
from boardinghouse.models import Announcement, Notification
from boardinghouse.utils.money import current_time

logger = logging.getLogger(__name__)


def run_archival_sweep(now=None, days=None) -> dict:
    """
    Archive notifications and announcements older than ``days`` and delete
    notifications whose expiry has passed.
    """
    now = now or current_time()
    if days is None:
        days = current_app.config.get('NOTIFICATION_ARCHIVE_DAYS', 30)
    cutoff = now - timedelta(days=days)

    notifications_archived = (Notification.query
                              .filter(Notification.is_archived.is_(False),
                                      Notification.created_at <= cutoff)
                              .update({Notification.is_archived: True}, synchronize_session=False))
    announcements_archived = (Announcement.query
                              .filter(Announcement.is_archived.is_(False),
                                      Announcement.publish_date <= cutoff)
                              .update({Announcement.is_archived: True}, synchronize_session=False))
    notifications_deleted = (Notification.query
                             .filter(Notification.expires_at.isnot(None),
                                     Notification.expires_at < now)
                             .delete(synchronize_session=False))
    db.session.commit()

    result = {
        "notifications_archived": notifications_archived,
        "announcements_archived": announcements_archived,
        "notifications_deleted": notifications_deleted,
    }
    logger.info("archival sweep: %s", result)
    return result
