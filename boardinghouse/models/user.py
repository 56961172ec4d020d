from . import db
from boardinghouse.utils.money import current_time

STAFF_ROLES = ('admin', 'staff')


class User(db.Model):
    """Staff/admin account. Tenants are not users."""
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default='staff')  # admin, staff
    is_archived = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_at = db.Column(db.DateTime, default=current_time, nullable=False)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)

    def __repr__(self):
        return f'<User {self.id}: {self.email} ({self.role})>'

    @classmethod
    def active_staff(cls):
        return cls.query.filter(cls.role.in_(STAFF_ROLES), cls.is_archived.is_(False)).all()

    def serialize(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'is_archived': self.is_archived,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
