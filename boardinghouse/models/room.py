from . import db
from boardinghouse.utils.money import current_time

ROOM_TYPES = ('single', 'double', 'triple', 'quad')
ROOM_STATUSES = ('available', 'occupied', 'maintenance', 'unavailable')


# Room side of the room/tenant relation. Tenant.room_id is the other side and
# is written separately, so the two can drift apart.
room_tenants = db.Table('room_tenants',
    db.Column('room_id', db.Integer, db.ForeignKey('rooms.id'), primary_key=True),
    db.Column('tenant_id', db.Integer, db.ForeignKey('tenants.id'), primary_key=True),
    db.Column('assigned_at', db.DateTime, default=current_time)
)


class Room(db.Model):
    __tablename__ = 'rooms'

    id = db.Column(db.Integer, primary_key=True)
    room_number = db.Column(db.String(10), unique=True, nullable=False, index=True)
    room_type = db.Column(db.String(10), nullable=False, default='single')  # single, double, triple, quad
    capacity = db.Column(db.Integer, nullable=False, default=1)  # 1-4
    floor = db.Column(db.Integer, nullable=True)

    # Financial information
    monthly_rent = db.Column(db.Numeric(10, 2), nullable=False)
    security_deposit = db.Column(db.Numeric(10, 2), default=0)

    # Occupancy
    occupancy_current = db.Column(db.Integer, nullable=False, default=0, index=True)
    status = db.Column(db.String(20), nullable=False, default='available', index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Metadata
    created_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)
    notes = db.Column(db.Text, nullable=True)

    # Relationships
    tenants = db.relationship(
        'Tenant',
        secondary=room_tenants,
        order_by=room_tenants.c.assigned_at,
        lazy='select',
    )

    __table_args__ = (
        db.CheckConstraint('capacity >= 1 AND capacity <= 4', name='ck_rooms_capacity'),
    )

    def __repr__(self):
        return f'<Room {self.id}: {self.room_number} ({self.occupancy_current}/{self.capacity})>'

    def has_tenant(self, tenant_id):
        return any(t.id == tenant_id for t in self.tenants)

    def serialize(self, include_tenants=True):
        from boardinghouse.services.occupancy import capacity_status, room_revenue

        data = {
            'id': self.id,
            'room_number': self.room_number,
            'room_type': self.room_type,
            'capacity': self.capacity,
            'floor': self.floor,
            'monthly_rent': float(self.monthly_rent),
            'security_deposit': float(self.security_deposit or 0),
            'occupancy': capacity_status(self),
            'status': self.status,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'notes': self.notes,
        }
        if include_tenants:
            data['tenants'] = [tenant.serialize(brief=True) for tenant in self.tenants]
            data['monthly_revenue'] = float(room_revenue(self))
        return data
