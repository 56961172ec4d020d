from . import db
from boardinghouse.utils.money import current_time

PAYMENT_TYPES = ('rent', 'deposit', 'utility', 'maintenance', 'penalty', 'other')
PAYMENT_METHODS = ('cash', 'bank_transfer', 'check', 'credit_card', 'debit_card',
                   'digital_wallet', 'money_order')
PAYMENT_STATUSES = ('pending', 'paid', 'overdue')


class Payment(db.Model):
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id'), nullable=False, index=True)

    # Payment details
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    payment_type = db.Column(db.String(20), nullable=False, index=True)  # rent, deposit, utility, maintenance, penalty, other
    payment_method = db.Column(db.String(20), nullable=False, default='cash')
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)  # pending, paid, overdue

    # Dates
    due_date = db.Column(db.DateTime, nullable=False, index=True)
    payment_date = db.Column(db.DateTime, nullable=True)
    period_start = db.Column(db.Date, nullable=True)
    period_end = db.Column(db.Date, nullable=True)

    # References
    receipt_number = db.Column(db.String(32), unique=True, nullable=True)
    transaction_reference = db.Column(db.String(100), nullable=True)
    description = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    recorded_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    # Late fee
    late_fee_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    late_fee_reason = db.Column(db.String(255), nullable=True)
    is_late_payment = db.Column(db.Boolean, nullable=False, default=False)

    # Metadata
    created_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)

    # Relationships
    room = db.relationship('Room')
    recorded_by = db.relationship('User')

    __table_args__ = (
        db.CheckConstraint('amount >= 0', name='ck_payments_amount_non_negative'),
        db.Index('ix_payments_rent_period', 'tenant_id', 'payment_type', 'period_start', 'period_end'),
    )

    def __repr__(self):
        return f'<Payment {self.id}: {self.payment_type} {self.amount} ({self.status})>'

    @property
    def total_amount(self):
        return (self.amount or 0) + (self.late_fee_amount or 0)

    @property
    def period_label(self):
        return self.period_start.strftime('%Y-%m') if self.period_start else None

    def serialize(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'room_id': self.room_id,
            'amount': float(self.amount),
            'payment_type': self.payment_type,
            'payment_method': self.payment_method,
            'status': self.status,
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'payment_date': self.payment_date.isoformat() if self.payment_date else None,
            'period_covered': {
                'start_date': self.period_start.isoformat() if self.period_start else None,
                'end_date': self.period_end.isoformat() if self.period_end else None,
            },
            'receipt_number': self.receipt_number,
            'transaction_reference': self.transaction_reference,
            'description': self.description,
            'notes': self.notes,
            'recorded_by_id': self.recorded_by_id,
            'late_fee': {
                'amount': float(self.late_fee_amount or 0),
                'reason': self.late_fee_reason,
                'is_late_payment': self.is_late_payment,
            },
            'total_amount': float(self.total_amount),
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
