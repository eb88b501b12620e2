"""initial schema - create webhook_records

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # status and source stored as VARCHAR, not native enums
    op.create_table(
        'webhook_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(36), nullable=False),
        sa.Column('event_type', sa.String(255), nullable=False),
        sa.Column('source', sa.String(11), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('headers', sa.JSON(), nullable=True),
        sa.Column('signature', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('status', sa.String(8), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='6'),
        sa.Column('backoff_schedule_minutes', sa.JSON(), nullable=False),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('locked_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('response_code', sa.Integer(), nullable=True),
        sa.Column('response_body', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processing_duration_ms', sa.Integer(), nullable=True),
        sa.Column('transaction_id', sa.String(64), nullable=True),
        sa.Column('customer_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('attempts <= max_attempts', name='ck_webhook_records_attempts_ceiling'),
    )

    op.create_index('ix_webhook_records_tenant_id', 'webhook_records', ['tenant_id'])
    op.create_index('ix_webhook_records_transaction_id', 'webhook_records', ['transaction_id'])
    op.create_index('ix_webhook_records_customer_id', 'webhook_records', ['customer_id'])
    op.create_index('ix_webhook_records_tenant_created', 'webhook_records', ['tenant_id', 'created_at'])
    op.create_index(
        'ix_webhook_records_source_event_created', 'webhook_records', ['source', 'event_type', 'created_at']
    )
    op.create_index('ix_webhook_records_status_next_attempt', 'webhook_records', ['status', 'next_attempt_at'])


def downgrade() -> None:
    op.drop_index('ix_webhook_records_status_next_attempt', table_name='webhook_records')
    op.drop_index('ix_webhook_records_source_event_created', table_name='webhook_records')
    op.drop_index('ix_webhook_records_tenant_created', table_name='webhook_records')
    op.drop_index('ix_webhook_records_customer_id', table_name='webhook_records')
    op.drop_index('ix_webhook_records_transaction_id', table_name='webhook_records')
    op.drop_index('ix_webhook_records_tenant_id', table_name='webhook_records')
    op.drop_table('webhook_records')
