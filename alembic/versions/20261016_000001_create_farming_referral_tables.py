"""Create farming and referral reward tables.

Revision ID: 20261016_000001
Revises:
Create Date: 2026-10-16 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '20261016_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


MONEY = sa.DECIMAL(36, 18)


def upgrade() -> None:
    """Create users, deposits, ledger, edge cache and batch log tables."""

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('telegram_id', sa.BigInteger(), nullable=True),
        sa.Column('username', sa.String(255), nullable=True),
        sa.Column('ref_code', sa.String(32), nullable=False, comment='Public invitation code'),
        sa.Column('parent_ref_code', sa.String(32), nullable=True, comment='Inviter code, immutable once bound'),
        sa.Column('balance_uni', MONEY, nullable=False, server_default='0'),
        sa.Column('balance_ton', MONEY, nullable=False, server_default='0'),
        sa.Column('accumulator_uni', MONEY, nullable=False, server_default='0', comment='Farming yield below the transfer threshold'),
        sa.Column('accumulator_ton', MONEY, nullable=False, server_default='0', comment='Farming yield below the transfer threshold'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('balance_uni >= 0', name='check_user_balance_uni_non_negative'),
        sa.CheckConstraint('balance_ton >= 0', name='check_user_balance_ton_non_negative'),
        sa.CheckConstraint('accumulator_uni >= 0', name='check_user_accumulator_uni_non_negative'),
        sa.CheckConstraint('accumulator_ton >= 0', name='check_user_accumulator_ton_non_negative'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_telegram_id', 'users', ['telegram_id'], unique=True)
    op.create_index('ix_users_username', 'users', ['username'])
    op.create_index('ix_users_ref_code', 'users', ['ref_code'], unique=True)
    op.create_index('ix_users_parent_ref_code', 'users', ['parent_ref_code'])

    op.create_table(
        'farming_deposits',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('currency', sa.String(10), nullable=False, server_default='UNI'),
        sa.Column('rate_per_second', MONEY, nullable=False, comment='amount * daily_rate / 86400'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('last_updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('amount > 0', name='check_farming_deposit_amount_positive'),
        sa.CheckConstraint('rate_per_second >= 0', name='check_farming_deposit_rate_non_negative'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_farming_deposits_user_id', 'farming_deposits', ['user_id'])
    op.create_index('idx_farming_deposit_user_active', 'farming_deposits', ['user_id', 'is_active'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('currency', sa.String(10), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='confirmed'),
        sa.Column('source', sa.String(100), nullable=True),
        sa.Column('category', sa.String(50), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('source_user_id', sa.Integer(), nullable=True),
        sa.Column('referral_level', sa.Integer(), nullable=True),
        sa.Column('batch_id', sa.String(36), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('ix_transactions_source_user_id', 'transactions', ['source_user_id'])
    op.create_index('idx_transactions_user_type', 'transactions', ['user_id', 'type'])
    op.create_index('idx_transactions_batch', 'transactions', ['batch_id'])

    op.create_table(
        'referral_edges',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('participant_id', sa.Integer(), nullable=False),
        sa.Column('inviter_id', sa.Integer(), nullable=True),
        sa.Column('level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ancestor_path', postgresql.JSONB(), nullable=False, server_default='[]', comment='Ancestor ids, nearest first'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('level >= 0 AND level <= 20', name='check_referral_edge_level_range'),
        sa.ForeignKeyConstraint(['participant_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_referral_edges_participant_id', 'referral_edges', ['participant_id'], unique=True)
    op.create_index('ix_referral_edges_inviter_id', 'referral_edges', ['inviter_id'])

    op.create_table(
        'reward_distribution_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('batch_id', sa.String(36), nullable=False),
        sa.Column('source_user_id', sa.Integer(), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('currency', sa.String(10), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='queued'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('levels_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('inviter_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_distributed', MONEY, nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('amount > 0', name='check_reward_batch_amount_positive'),
        sa.CheckConstraint('attempts >= 0', name='check_reward_batch_attempts'),
        sa.ForeignKeyConstraint(['source_user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_reward_distribution_logs_batch_id', 'reward_distribution_logs', ['batch_id'], unique=True)
    op.create_index('ix_reward_distribution_logs_source_user_id', 'reward_distribution_logs', ['source_user_id'])
    op.create_index('idx_reward_batch_status_created', 'reward_distribution_logs', ['status', 'created_at'])


def downgrade() -> None:
    """Drop farming and referral reward tables."""
    op.drop_table('reward_distribution_logs')
    op.drop_table('referral_edges')
    op.drop_table('transactions')
    op.drop_table('farming_deposits')
    op.drop_table('users')
