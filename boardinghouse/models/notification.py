from . import db
from boardinghouse.utils.money import current_time

NOTIFICATION_TYPES = ('payment_due', 'payment_received', 'report_update', 'report_followup',
                      'system_alert', 'maintenance', 'lease_reminder', 'announcement', 'other')
RECIPIENT_KINDS = ('Staff', 'Tenant')


class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    recipient_kind = db.Column(db.String(10), nullable=False)  # Staff, Tenant
    recipient_id = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(30), nullable=False, default='other')
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(10), nullable=False, default='unread', index=True)  # unread, read
    meta = db.Column('metadata', db.JSON, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=True, index=True)
    is_archived = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_at = db.Column(db.DateTime, default=current_time, index=True)

    __table_args__ = (
        db.Index('ix_notifications_recipient', 'recipient_kind', 'recipient_id', 'status'),
    )

    def __repr__(self):
        return f'<Notification {self.id}: {self.type} -> {self.recipient_kind}:{self.recipient_id}>'

    def serialize(self):
        return {
            'id': self.id,
            'recipient': {'kind': self.recipient_kind, 'id': self.recipient_id},
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'status': self.status,
            'metadata': self.meta or {},
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'is_archived': self.is_archived,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Announcement(db.Model):
    __tablename__ = 'announcements'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    audience = db.Column(db.String(10), nullable=False, default='all')  # all, tenants, staff
    publish_date = db.Column(db.DateTime, default=current_time, index=True)
    is_archived = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=current_time)

    def serialize(self):
        return {
            'id': self.id,
            'title': self.title,
            'content': self.content,
            'audience': self.audience,
            'publish_date': self.publish_date.isoformat() if self.publish_date else None,
            'is_archived': self.is_archived,
        }
