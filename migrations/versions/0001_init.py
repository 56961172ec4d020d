"""init schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('is_archived', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_is_archived', 'users', ['is_archived'])

    op.create_table('rooms',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_number', sa.String(length=10), nullable=False),
        sa.Column('room_type', sa.String(length=10), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('floor', sa.Integer(), nullable=True),
        sa.Column('monthly_rent', sa.Numeric(10, 2), nullable=False),
        sa.Column('security_deposit', sa.Numeric(10, 2), nullable=True),
        sa.Column('occupancy_current', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.CheckConstraint('capacity >= 1 AND capacity <= 4', name='ck_rooms_capacity'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_rooms_room_number', 'rooms', ['room_number'], unique=True)
    op.create_index('ix_rooms_occupancy_current', 'rooms', ['occupancy_current'])
    op.create_index('ix_rooms_status', 'rooms', ['status'])

    op.create_table('tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=50), nullable=False),
        sa.Column('last_name', sa.String(length=50), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone_number', sa.String(length=20), nullable=True),
        sa.Column('room_id', sa.Integer(), nullable=True),
        sa.Column('lease_start_date', sa.Date(), nullable=True),
        sa.Column('lease_end_date', sa.Date(), nullable=True),
        sa.Column('monthly_rent', sa.Numeric(10, 2), nullable=True),
        sa.Column('security_deposit', sa.Numeric(10, 2), nullable=True),
        sa.Column('tenant_status', sa.String(length=20), nullable=False),
        sa.Column('is_archived', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_tenants_email', 'tenants', ['email'], unique=True)
    op.create_index('ix_tenants_room_id', 'tenants', ['room_id'])
    op.create_index('ix_tenants_tenant_status', 'tenants', ['tenant_status'])
    op.create_index('ix_tenants_is_archived', 'tenants', ['is_archived'])

    op.create_table('room_tenants',
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('assigned_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id']),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('room_id', 'tenant_id')
    )

    # No unique constraint on the rent period: duplicates are prevented by a
    # lookup before insert.
    op.create_table('payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('payment_type', sa.String(length=20), nullable=False),
        sa.Column('payment_method', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('due_date', sa.DateTime(), nullable=False),
        sa.Column('payment_date', sa.DateTime(), nullable=True),
        sa.Column('period_start', sa.Date(), nullable=True),
        sa.Column('period_end', sa.Date(), nullable=True),
        sa.Column('receipt_number', sa.String(length=32), nullable=True),
        sa.Column('transaction_reference', sa.String(length=100), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('recorded_by_id', sa.Integer(), nullable=True),
        sa.Column('late_fee_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('late_fee_reason', sa.String(length=255), nullable=True),
        sa.Column('is_late_payment', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('amount >= 0', name='ck_payments_amount_non_negative'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id']),
        sa.ForeignKeyConstraint(['recorded_by_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('receipt_number')
    )
    op.create_index('ix_payments_tenant_id', 'payments', ['tenant_id'])
    op.create_index('ix_payments_room_id', 'payments', ['room_id'])
    op.create_index('ix_payments_payment_type', 'payments', ['payment_type'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('ix_payments_due_date', 'payments', ['due_date'])
    op.create_index('ix_payments_rent_period', 'payments',
                    ['tenant_id', 'payment_type', 'period_start', 'period_end'])

    op.create_table('notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('recipient_kind', sa.String(length=10), nullable=False),
        sa.Column('recipient_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=30), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('is_archived', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_notifications_status', 'notifications', ['status'])
    op.create_index('ix_notifications_expires_at', 'notifications', ['expires_at'])
    op.create_index('ix_notifications_is_archived', 'notifications', ['is_archived'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])
    op.create_index('ix_notifications_recipient', 'notifications',
                    ['recipient_kind', 'recipient_id', 'status'])

    op.create_table('announcements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('audience', sa.String(length=10), nullable=False),
        sa.Column('publish_date', sa.DateTime(), nullable=True),
        sa.Column('is_archived', sa.Boolean(), nullable=False),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_announcements_publish_date', 'announcements', ['publish_date'])
    op.create_index('ix_announcements_is_archived', 'announcements', ['is_archived'])

    op.create_table('reports',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_reports_tenant_id', 'reports', ['tenant_id'])
    op.create_index('ix_reports_status', 'reports', ['status'])


def downgrade():
    op.drop_table('reports')
    op.drop_table('announcements')
    op.drop_table('notifications')
    op.drop_table('payments')
    op.drop_table('room_tenants')
    op.drop_table('tenants')
    op.drop_table('rooms')
    op.drop_table('users')
