"""create_hairstyle_tables

Revision ID: 5a1f3c9d2b7e
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5a1f3c9d2b7e'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


TRANSACTION_TYPES = ('generation', 'refund', 'purchase', 'signup_bonus', 'admin_adjustment')
GENERATION_STATUSES = ('processing', 'completed', 'failed')


def upgrade() -> None:
    """Users, credit ledger and generation history."""
    op.create_table(
        'users',
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('user_id')
    )
    op.create_index('ix_users_user_id', 'users', ['user_id'], unique=False)
    op.create_index('ix_users_email', 'users', ['email'], unique=False)

    op.create_table(
        'credit_balance',
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('balance', sa.Integer(), server_default='0', nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('user_id'),
        sa.CheckConstraint('balance >= 0', name='ck_credit_balance_non_negative')
    )

    op.create_table(
        'credit_transactions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('type', sa.Enum(*TRANSACTION_TYPES, name='credit_transaction_type'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('reference_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_credit_transactions_user_id', 'credit_transactions', ['user_id'], unique=False)
    op.create_index('ix_credit_transactions_reference_id', 'credit_transactions', ['reference_id'], unique=False)
    op.create_index('ix_credit_transactions_created_at', 'credit_transactions', ['created_at'], unique=False)

    # One refund per generation, one signup bonus per user
    op.create_index(
        'uq_credit_transactions_refund_reference',
        'credit_transactions',
        ['reference_id'],
        unique=True,
        postgresql_where=sa.text("type = 'refund'")
    )
    op.create_index(
        'uq_credit_transactions_signup_bonus',
        'credit_transactions',
        ['user_id'],
        unique=True,
        postgresql_where=sa.text("type = 'signup_bonus'")
    )

    op.create_table(
        'generation_history',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('status', sa.Enum(*GENERATION_STATUSES, name='generation_status'), nullable=False),
        sa.Column('provider', sa.String(), nullable=True),
        sa.Column('credit_cost', sa.Integer(), nullable=False),
        sa.Column('processing_time_ms', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_generation_history_user_id', 'generation_history', ['user_id'], unique=False)
    op.create_index('ix_generation_history_created_at', 'generation_history', ['created_at'], unique=False)
    op.create_index('idx_generation_history_status_created', 'generation_history', ['status', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_generation_history_status_created', table_name='generation_history')
    op.drop_index('ix_generation_history_created_at', table_name='generation_history')
    op.drop_index('ix_generation_history_user_id', table_name='generation_history')
    op.drop_table('generation_history')

    op.drop_index('uq_credit_transactions_signup_bonus', table_name='credit_transactions')
    op.drop_index('uq_credit_transactions_refund_reference', table_name='credit_transactions')
    op.drop_index('ix_credit_transactions_created_at', table_name='credit_transactions')
    op.drop_index('ix_credit_transactions_reference_id', table_name='credit_transactions')
    op.drop_index('ix_credit_transactions_user_id', table_name='credit_transactions')
    op.drop_table('credit_transactions')

    op.drop_table('credit_balance')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_user_id', table_name='users')
    op.drop_table('users')

    sa.Enum(name='generation_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='credit_transaction_type').drop(op.get_bind(), checkfirst=True)
