from . import db
from boardinghouse.utils.money import current_time

TENANT_STATUSES = ('pending', 'active', 'inactive')


class Tenant(db.Model):
    __tablename__ = 'tenants'

    id = db.Column(db.Integer, primary_key=True)

    # Personal Information
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    phone_number = db.Column(db.String(20), nullable=True)

    # Tenancy
    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id'), nullable=True, index=True)
    lease_start_date = db.Column(db.Date, nullable=True)
    lease_end_date = db.Column(db.Date, nullable=True)  # open-ended when null

    # Per-tenant overrides of the room defaults
    monthly_rent = db.Column(db.Numeric(10, 2), nullable=True)
    security_deposit = db.Column(db.Numeric(10, 2), nullable=True)

    # Tenant Status
    tenant_status = db.Column(db.String(20), nullable=False, default='pending', index=True)  # pending, active, inactive
    is_archived = db.Column(db.Boolean, nullable=False, default=False, index=True)

    # Metadata
    created_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)

    # Relationships
    room = db.relationship('Room', foreign_keys=[room_id])
    payments = db.relationship('Payment', backref='tenant', lazy='dynamic')

    def __repr__(self):
        return f'<Tenant {self.id}: {self.first_name} {self.last_name}>'

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    @property
    def is_billable(self):
        return not self.is_archived and self.tenant_status == 'active'

    def lease_covers(self, start_date, end_date):
        """True when the lease window overlaps [start_date, end_date]."""
        if self.lease_start_date is None or self.lease_start_date > end_date:
            return False
        return self.lease_end_date is None or self.lease_end_date >= start_date

    def clear_tenancy(self):
        self.room_id = None
        self.lease_start_date = None
        self.lease_end_date = None
        self.monthly_rent = None
        self.security_deposit = None
        self.tenant_status = 'inactive'

    def serialize(self, brief=False):
        data = {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'full_name': self.full_name,
            'email': self.email,
            'tenant_status': self.tenant_status,
            'lease_start_date': self.lease_start_date.isoformat() if self.lease_start_date else None,
            'lease_end_date': self.lease_end_date.isoformat() if self.lease_end_date else None,
        }
        if brief:
            return data
        data.update({
            'phone_number': self.phone_number,
            'room_id': self.room_id,
            'monthly_rent': float(self.monthly_rent) if self.monthly_rent is not None else None,
            'security_deposit': float(self.security_deposit) if self.security_deposit is not None else None,
            'is_archived': self.is_archived,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        })
        return data
