"""Buses, trips and bookings for the seat hold handoff

Revision ID: 0001
Revises:
Create Date: 2025-08-02 12:30:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table('buses',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('company_name', sa.String(length=100), nullable=False),
        sa.Column('bus_number', sa.String(length=20), nullable=False),
        sa.Column('total_seats', sa.Integer(), nullable=False),
        sa.Column('seat_layout', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('total_seats > 0', name='ck_bus_total_seats_positive'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('bus_number')
    )

    op.create_table('trips',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('bus_id', sa.String(length=36), nullable=False),
        sa.Column('departure_time', sa.DateTime(), nullable=False),
        sa.Column('arrival_time', sa.DateTime(), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('is_open', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('price >= 0', name='ck_trip_price_non_negative'),
        sa.CheckConstraint('arrival_time > departure_time', name='ck_trip_arrival_after_departure'),
        sa.ForeignKeyConstraint(['bus_id'], ['buses.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_trips_bus_id'), 'trips', ['bus_id'], unique=False)
    op.create_index(op.f('ix_trips_departure_time'), 'trips', ['departure_time'], unique=False)

    op.create_table('bookings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('pnr', sa.String(length=10), nullable=False),
        sa.Column('trip_id', sa.String(length=36), nullable=False),
        sa.Column('holder_id', sa.String(length=128), nullable=False),
        sa.Column('hold_id', sa.String(length=36), nullable=False),
        sa.Column('seat_numbers', sa.JSON(), nullable=False),
        sa.Column('passengers', sa.JSON(), nullable=False),
        sa.Column('base_fare', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('taxes', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('service_fee', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_reference', sa.String(length=100), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('total_amount >= 0', name='ck_booking_total_non_negative'),
        sa.CheckConstraint('length(pnr) = 10', name='ck_booking_pnr_length'),
        sa.CheckConstraint('length(holder_id) > 0', name='ck_booking_holder_not_empty'),
        sa.ForeignKeyConstraint(['trip_id'], ['trips.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bookings_pnr'), 'bookings', ['pnr'], unique=True)
    op.create_index(op.f('ix_bookings_trip_id'), 'bookings', ['trip_id'], unique=False)
    op.create_index(op.f('ix_bookings_holder_id'), 'bookings', ['holder_id'], unique=False)
    op.create_index(op.f('ix_bookings_hold_id'), 'bookings', ['hold_id'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)

    # Confirmed-seat scans filter on both columns
    op.create_index('ix_bookings_trip_id_status', 'bookings', ['trip_id', 'status'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index('ix_bookings_trip_id_status', table_name='bookings')
    op.drop_index(op.f('ix_bookings_status'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_hold_id'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_holder_id'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_trip_id'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_pnr'), table_name='bookings')
    op.drop_table('bookings')

    op.drop_index(op.f('ix_trips_departure_time'), table_name='trips')
    op.drop_index(op.f('ix_trips_bus_id'), table_name='trips')
    op.drop_table('trips')

    op.drop_table('buses')
