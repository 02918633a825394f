"""create occurrence capacity ledger, booking events outbox and api usage logs

Revision ID: 003
Revises: 002
Create Date: 2026-10-12 10:15:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '003'
down_revision: Union[str, None] = '002'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'occurrence_capacity',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('time_slot_id', UUID(as_uuid=True), sa.ForeignKey('time_slots.id', ondelete='CASCADE'), nullable=False),
        sa.Column('occurrence_date', sa.Date(), nullable=False),
        sa.Column('booked_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('time_slot_id', 'occurrence_date', name='uq_occurrence_capacity_occurrence'),
        sa.CheckConstraint('booked_count >= 0', name='ck_occurrence_capacity_non_negative'),
    )

    op.create_table(
        'booking_events',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('service_id', UUID(as_uuid=True), nullable=False),
        sa.Column('booking_id', UUID(as_uuid=True), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_booking_events_event_type', 'booking_events', ['event_type'])
    op.create_index('ix_booking_events_service_id', 'booking_events', ['service_id'])
    op.create_index('ix_booking_events_status', 'booking_events', ['status'])
    op.create_index('ix_booking_events_created_at', 'booking_events', ['created_at'])

    op.create_table(
        'api_usage_logs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('api_key_id', UUID(as_uuid=True), sa.ForeignKey('api_keys.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider_id', UUID(as_uuid=True), nullable=False),
        sa.Column('method', sa.String(), nullable=False),
        sa.Column('endpoint', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_api_usage_logs_api_key_id', 'api_usage_logs', ['api_key_id'])
    op.create_index('ix_api_usage_logs_provider_id', 'api_usage_logs', ['provider_id'])
    op.create_index('ix_api_usage_logs_created_at', 'api_usage_logs', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_api_usage_logs_created_at', table_name='api_usage_logs')
    op.drop_index('ix_api_usage_logs_provider_id', table_name='api_usage_logs')
    op.drop_index('ix_api_usage_logs_api_key_id', table_name='api_usage_logs')
    op.drop_table('api_usage_logs')
    op.drop_index('ix_booking_events_created_at', table_name='booking_events')
    op.drop_index('ix_booking_events_status', table_name='booking_events')
    op.drop_index('ix_booking_events_service_id', table_name='booking_events')
    op.drop_index('ix_booking_events_event_type', table_name='booking_events')
    op.drop_table('booking_events')
    op.drop_table('occurrence_capacity')
