"""Initial schema - all tables

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, TEXT

revision: str = '0001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    ]


def upgrade() -> None:
    # btree_gist нужен для '=' по trailer_id внутри GiST-ограничения
    op.execute('CREATE EXTENSION IF NOT EXISTS btree_gist')

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('telegram_id', sa.BigInteger(), nullable=False),
        sa.Column('first_name', sa.String(255), nullable=False),
        sa.Column('last_name', sa.String(255), nullable=True),
        sa.Column('username', sa.String(255), nullable=True),
        sa.Column('phone_number', sa.String(32), nullable=True),
        sa.Column('phone_verification_status', sa.String(20), nullable=False, server_default='REQUIRED'),
        sa.Column('verification_status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('verification_comment', sa.String(500), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default='false'),
        *_timestamps(),
    )
    op.create_index('ix_users_telegram_id', 'users', ['telegram_id'], unique=True)

    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('address', sa.String(500), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('opens_at', sa.String(5), nullable=False, server_default='08:00'),
        sa.Column('closes_at', sa.String(5), nullable=False, server_default='22:00'),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )

    op.create_table(
        'trailers',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('capacity_kg', sa.Integer(), nullable=True),
        sa.Column('has_tent', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('axles', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('photos', ARRAY(TEXT), nullable=True),
        sa.Column('location_id', sa.Integer(), sa.ForeignKey('locations.id'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='AVAILABLE'),
        sa.Column('min_hours', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('min_cost', sa.Integer(), nullable=False, server_default='500'),
        sa.Column('hour_price', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('day_price', sa.Integer(), nullable=False, server_default='900'),
        sa.Column('deposit', sa.Integer(), nullable=False, server_default='5000'),
        sa.Column('pickup_price', sa.Integer(), nullable=False, server_default='500'),
        *_timestamps(),
        sa.CheckConstraint(
            'min_hours >= 0 AND min_cost >= 0 AND hour_price >= 0 AND day_price >= 0 '
            'AND deposit >= 0 AND pickup_price >= 0',
            name='ck_trailers_rate_card_non_negative',
        ),
    )

    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('trailer_id', sa.Integer(), sa.ForeignKey('trailers.id'), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('rental_type', sa.String(20), nullable=False),
        sa.Column('pickup', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('base_cost', sa.Integer(), nullable=False),
        sa.Column('additional_cost', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deposit', sa.Integer(), nullable=False),
        sa.Column('total', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING_PAYMENT'),
        *_timestamps(),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('returned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('return_reminder_sent', sa.Boolean(), nullable=False, server_default='false'),
        sa.CheckConstraint('end_time > start_time', name='ck_bookings_interval'),
    )
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'])
    op.create_index('ix_bookings_trailer_id', 'bookings', ['trailer_id'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])

    # Последняя линия защиты от двойной брони: закрытые интервалы одного
    # прицепа не пересекаются, пока бронь не CLOSED/CANCELLED
    op.execute(
        """
        ALTER TABLE bookings
        ADD CONSTRAINT ex_bookings_trailer_interval
        EXCLUDE USING gist (
            trailer_id WITH =,
            tstzrange(start_time, end_time, '[]') WITH &&
        )
        WHERE (status NOT IN ('CLOSED', 'CANCELLED'))
        """
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('booking_id', sa.Integer(), sa.ForeignKey('bookings.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('order_id', sa.String(64), nullable=False, unique=True),
        sa.Column('gateway_payment_id', sa.String(64), nullable=True, unique=True),
        sa.Column('payment_url', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_payments_booking_id', 'payments', ['booking_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])

    op.create_table(
        'support_chats',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('admin_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('subject', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='OPEN'),
        sa.Column('priority', sa.String(20), nullable=False, server_default='MEDIUM'),
        *_timestamps(),
        sa.Column('last_message_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_support_chats_user_id', 'support_chats', ['user_id'])

    op.create_table(
        'support_messages',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('chat_id', sa.Integer(), sa.ForeignKey('support_chats.id'), nullable=False),
        sa.Column('sender_type', sa.String(20), nullable=False),
        sa.Column('sender_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_support_messages_chat_id', 'support_messages', ['chat_id'])


def downgrade() -> None:
    op.drop_table('support_messages')
    op.drop_table('support_chats')
    op.drop_table('payments')
    op.drop_table('bookings')
    op.drop_table('trailers')
    op.drop_table('locations')
    op.drop_table('users')
