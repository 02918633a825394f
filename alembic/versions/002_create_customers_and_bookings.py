"""create customers and bookings

Revision ID: 002
Revises: 001
Create Date: 2026-10-12 09:30:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'customers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('service_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('services.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('service_id', 'email', name='uq_customers_service_email'),
        sa.UniqueConstraint('service_id', 'phone', name='uq_customers_service_phone'),
    )

    op.create_table(
        'bookings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('service_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('services.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('time_slot_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('time_slots.id', ondelete='CASCADE'), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('occurrence_date', sa.Date(), nullable=False),
        sa.Column('status', sa.Enum('pending', 'confirmed', 'cancelled', name='booking_status'), nullable=False),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
    )
    op.create_index('ix_bookings_occurrence', 'bookings', ['time_slot_id', 'occurrence_date'])
    # At most one live booking per (customer, occurrence)
    op.create_index(
        'uq_bookings_live_customer_occurrence',
        'bookings',
        ['customer_id', 'time_slot_id', 'occurrence_date'],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'"),
    )


def downgrade() -> None:
    op.drop_index('uq_bookings_live_customer_occurrence', table_name='bookings')
    op.drop_index('ix_bookings_occurrence', table_name='bookings')
    op.drop_table('bookings')
    op.execute('DROP TYPE booking_status')
    op.drop_table('customers')
