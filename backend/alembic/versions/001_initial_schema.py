"""Initial rental marketplace schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

users, listings (with reserved/confirmed date sets and version counter),
bookings (with materialized date_range and version counter), audit_log.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

listing_status = sa.Enum('DRAFT', 'PUBLISHED', 'BOOSTED', 'EXPIRED', name='listingstatus')
booking_status = sa.Enum(
    'HOLD', 'PENDING', 'CONFIRMED', 'ACTIVE', 'COMPLETED', 'CANCELLED', 'REJECTED',
    name='bookingstatus',
)
handover_status = sa.Enum('PENDING', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED', name='handoverstatus')
payment_status = sa.Enum('PENDING', 'COMPLETED', 'FAILED', name='paymentstatus')
audit_action = sa.Enum(
    'LISTING_CREATED', 'LISTING_UPDATED',
    'BOOKING_HELD', 'BOOKING_PAID', 'BOOKING_PAYMENT_FAILED', 'BOOKING_CONFIRMED',
    'BOOKING_REJECTED', 'BOOKING_CANCELLED', 'BOOKING_STATUS_UPDATED', 'HOLD_EXPIRED',
    name='auditaction',
)


def upgrade() -> None:
    # === USERS ===
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('firebase_uid', sa.String(128), unique=True, nullable=False, index=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    # === LISTINGS ===
    op.create_table(
        'listings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_per_day', sa.Numeric(12, 2), nullable=False),
        sa.Column('deposit_amount', sa.Numeric(12, 2), server_default='0'),
        sa.Column('currency', sa.String(3), server_default='PLN'),
        sa.Column('status', listing_status, nullable=False, server_default='PUBLISHED', index=True),
        sa.Column('reserved_dates', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('confirmed_dates', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('available_months', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('available_days_of_week', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('pickup_hours', sa.String(50), nullable=True),
        sa.Column('return_hours', sa.String(50), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    # === BOOKINGS ===
    op.create_table(
        'bookings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('booking_code', sa.String(20), unique=True, nullable=False),
        sa.Column('listing_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('listings.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('renter_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('date_range', postgresql.JSONB(), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('deposit_amount', sa.Numeric(12, 2), server_default='0'),
        sa.Column('currency', sa.String(3), server_default='PLN'),
        sa.Column('status', booking_status, nullable=False, server_default='HOLD', index=True),
        sa.Column('hold_expires_at', sa.DateTime(), nullable=True, index=True),
        sa.Column('pickup_status', handover_status, nullable=False, server_default='PENDING'),
        sa.Column('return_status', handover_status, nullable=False, server_default='PENDING'),
        sa.Column('pickup_completed_at', sa.DateTime(), nullable=True),
        sa.Column('return_completed_at', sa.DateTime(), nullable=True),
        sa.Column('renter_email', sa.String(255), nullable=True),
        sa.Column('renter_phone', sa.String(50), nullable=True),
        sa.Column('special_requests', sa.Text(), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('payment_status', payment_status, nullable=False, server_default='PENDING'),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('payment_url', sa.Text(), nullable=True),
        sa.Column('payment_expires_at', sa.DateTime(), nullable=True),
        sa.Column('payment_id', sa.String(100), nullable=True),
        sa.Column('payment_attempts', sa.Integer(), server_default='0'),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_bookings_listing_status', 'bookings', ['listing_id', 'status'])
    op.create_index('ix_bookings_renter_status', 'bookings', ['renter_id', 'status'])
    op.create_index('ix_bookings_owner_status', 'bookings', ['owner_id', 'status'])
    op.create_index('ix_bookings_dates', 'bookings', ['start_date', 'end_date'])

    # === AUDIT LOG ===
    op.create_table(
        'audit_log',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('action', audit_action, nullable=False, index=True),
        sa.Column('resource_type', sa.String(50), nullable=False),
        sa.Column('resource_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('details', postgresql.JSONB(), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('audit_log')
    op.drop_index('ix_bookings_dates')
    op.drop_index('ix_bookings_owner_status')
    op.drop_index('ix_bookings_renter_status')
    op.drop_index('ix_bookings_listing_status')
    op.drop_table('bookings')
    op.drop_table('listings')
    op.drop_table('users')
    for enum in (audit_action, payment_status, handover_status, booking_status, listing_status):
        enum.drop(op.get_bind(), checkfirst=True)
