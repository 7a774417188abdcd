"""Documents, booking photos, one open payment per type

Revision ID: 0002_documents_photos
Revises: 0001_initial
Create Date: 2026-10-25 00:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = '0002_documents_photos'
down_revision: Union[str, None] = '0001_initial'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'documents',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('file_url', sa.Text(), nullable=False),
        sa.Column('file_name', sa.String(255), nullable=True),
        sa.Column('mime_type', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('reviewed_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('review_comment', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_documents_user_id', 'documents', ['user_id'])
    op.create_index('ix_documents_status', 'documents', ['status'])

    op.create_table(
        'booking_photos',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('booking_id', sa.Integer(), sa.ForeignKey('bookings.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('check_type', sa.String(20), nullable=False),
        sa.Column('side', sa.String(20), nullable=False),
        sa.Column('file_url', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.UniqueConstraint('booking_id', 'check_type', 'side', name='uq_booking_photos_side'),
    )
    op.create_index('ix_booking_photos_booking_id', 'booking_photos', ['booking_id'])

    # Второй платёж того же типа по брони отсекается базой
    op.create_index(
        'uq_payments_booking_type_open',
        'payments',
        ['booking_id', 'type'],
        unique=True,
        postgresql_where=sa.text("status IN ('PENDING', 'PROCESSING', 'COMPLETED')"),
    )


def downgrade() -> None:
    op.drop_index('uq_payments_booking_type_open', table_name='payments')
    op.drop_table('booking_photos')
    op.drop_table('documents')
