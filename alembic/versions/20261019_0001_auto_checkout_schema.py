"""Create auto checkout schema

Revision ID: 20261019_0001
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '20261019_0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

def _has_table(bind, name: str) -> bool:
    try:
        insp = inspect(bind)
        return insp.has_table(name)
    except Exception:
        return False

def upgrade() -> None:
    bind = op.get_bind()

    resourcetype_enum = sa.Enum('room', 'hall', name='resourcetype')
    bookingstatus_enum = sa.Enum('BOOKED', 'PENDING', 'COMPLETED', name='bookingstatus')
    checkoutoutcome_enum = sa.Enum('success', 'failed', name='checkoutoutcome')

    if not _has_table(bind, 'resources'):
        op.create_table('resources',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('display_name', sa.String(length=100), nullable=False),
            sa.Column('custom_name', sa.String(length=100), nullable=True),
            sa.Column('type', resourcetype_enum, server_default='room', nullable=False),
            sa.PrimaryKeyConstraint('id')
        )

    if not _has_table(bind, 'bookings'):
        op.create_table('bookings',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('resource_id', sa.Integer(), nullable=False),
            sa.Column('client_name', sa.String(length=200), nullable=False),
            sa.Column('client_mobile', sa.String(length=20), nullable=True),
            sa.Column('status', bookingstatus_enum, server_default='BOOKED', nullable=False),
            sa.Column('check_in', sa.DateTime(), nullable=False),
            sa.Column('actual_check_in', sa.DateTime(), nullable=True),
            sa.Column('actual_check_out', sa.DateTime(), nullable=True),
            sa.Column('actual_checkout_date', sa.Date(), nullable=True),
            sa.Column('actual_checkout_time', sa.Time(), nullable=True),
            sa.Column('duration_minutes', sa.Integer(), nullable=True),
            sa.Column('total_amount', sa.Numeric(precision=10, scale=2), nullable=True),
            sa.Column('auto_checkout_processed', sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(['resource_id'], ['resources.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_bookings_id'), 'bookings', ['id'], unique=False)
        op.create_index(op.f('ix_bookings_resource_id'), 'bookings', ['resource_id'], unique=False)
        op.create_index(op.f('ix_bookings_check_in'), 'bookings', ['check_in'], unique=False)
        op.create_index('ix_bookings_status_processed', 'bookings', ['status', 'auto_checkout_processed'], unique=False)

    if not _has_table(bind, 'payments'):
        op.create_table('payments',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('booking_id', sa.Integer(), nullable=False),
            sa.Column('resource_id', sa.Integer(), nullable=False),
            sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
            sa.Column('payment_method', sa.String(length=30), nullable=False),
            sa.Column('payment_status', sa.String(length=20), server_default='COMPLETED', nullable=False),
            sa.Column('payment_notes', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ),
            sa.ForeignKeyConstraint(['resource_id'], ['resources.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_payments_booking_id'), 'payments', ['booking_id'], unique=False)
        op.create_index('ix_payments_booking_method', 'payments', ['booking_id', 'payment_method'], unique=False)

    if not _has_table(bind, 'auto_checkout_logs'):
        op.create_table('auto_checkout_logs',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('booking_id', sa.Integer(), nullable=True),
            sa.Column('resource_id', sa.Integer(), nullable=True),
            sa.Column('resource_name', sa.String(length=100), nullable=True),
            sa.Column('guest_name', sa.String(length=200), nullable=True),
            sa.Column('checkout_date', sa.Date(), nullable=False),
            sa.Column('checkout_time', sa.Time(), nullable=False),
            sa.Column('status', checkoutoutcome_enum, nullable=False),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ),
            sa.ForeignKeyConstraint(['resource_id'], ['resources.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_auto_checkout_logs_booking_id'), 'auto_checkout_logs', ['booking_id'], unique=False)
        op.create_index('ix_auto_checkout_logs_date_status', 'auto_checkout_logs', ['checkout_date', 'status'], unique=False)

    if not _has_table(bind, 'system_settings'):
        settings_table = op.create_table('system_settings',
            sa.Column('setting_key', sa.String(length=100), nullable=False),
            sa.Column('setting_value', sa.Text(), nullable=True),
            sa.Column('updated_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint('setting_key')
        )
        op.bulk_insert(settings_table, [
            {'setting_key': 'auto_checkout_enabled', 'setting_value': '1'},
            {'setting_key': 'auto_checkout_time', 'setting_value': '10:00'},
            {'setting_key': 'auto_checkout_grace_minutes', 'setting_value': '30'},
            {'setting_key': 'auto_checkout_room_rate', 'setting_value': '100'},
            {'setting_key': 'auto_checkout_hall_rate', 'setting_value': '500'},
        ])


def downgrade() -> None:
    op.drop_table('system_settings')
    op.drop_table('auto_checkout_logs')
    op.drop_table('payments')
    op.drop_table('bookings')
    op.drop_table('resources')
    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        for name in ('checkoutoutcome', 'bookingstatus', 'resourcetype'):
            op.execute(f'DROP TYPE IF EXISTS {name}')
