from . import db
from boardinghouse.utils.money import current_time

REPORT_TYPES = ('maintenance', 'complaint', 'other')
REPORT_STATUSES = ('pending', 'in-progress', 'resolved', 'rejected')


class Report(db.Model):
    """Maintenance request or complaint filed by a tenant."""
    __tablename__ = 'reports'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id'), nullable=True)
    type = db.Column(db.String(20), nullable=False, default='maintenance')
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    submitted_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)

    tenant = db.relationship('Tenant')
    room = db.relationship('Room')

    def serialize(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'room_id': self.room_id,
            'type': self.type,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'submitted_at': self.submitted_at.isoformat() if self.submitted_at else None,
        }
