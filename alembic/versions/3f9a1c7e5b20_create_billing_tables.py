"""create_billing_tables

Revision ID: 3f9a1c7e5b20
Revises:
Create Date: 2026-10-19 10:12:41.518204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a1c7e5b20'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Accounts (email stored normalized; unique)
    op.create_table(
        'accounts',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False, server_default='member'),
        sa.Column('api_key_hash', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_accounts_id'), 'accounts', ['id'], unique=False)
    op.create_index(op.f('ix_accounts_email'), 'accounts', ['email'], unique=True)
    op.create_index(op.f('ix_accounts_api_key_hash'), 'accounts', ['api_key_hash'], unique=True)

    # Subscription aggregate, one per account
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('account_id', sa.BigInteger(), nullable=False),
        sa.Column('plan', sa.String(length=50), nullable=False, server_default='free'),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='inactive'),
        sa.Column('external_subscription_ref', sa.String(length=255), nullable=True),
        sa.Column('external_customer_ref', sa.String(length=255), nullable=True),
        sa.Column('current_period_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('grace_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('canceled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_event_sequence', sa.BigInteger(), nullable=True),
        sa.Column('last_event_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_subscription_ref')
    )
    op.create_index(op.f('ix_subscriptions_id'), 'subscriptions', ['id'], unique=False)
    op.create_index(op.f('ix_subscriptions_account_id'), 'subscriptions', ['account_id'], unique=True)
    op.create_index(op.f('ix_subscriptions_status'), 'subscriptions', ['status'], unique=False)
    op.create_index(op.f('ix_subscriptions_external_customer_ref'), 'subscriptions', ['external_customer_ref'], unique=False)
    op.create_index('idx_subscription_period_end', 'subscriptions', ['current_period_end'], unique=False)

    # Idempotency ledger
    op.create_table(
        'event_ledger',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('event_id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('source', sa.String(length=50), nullable=False, server_default='stripe'),
        sa.Column('account_id', sa.BigInteger(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('applied', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('outcome', sa.String(length=50), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('delivery_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('applied_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_event_ledger_id'), 'event_ledger', ['id'], unique=False)
    op.create_index(op.f('ix_event_ledger_event_id'), 'event_ledger', ['event_id'], unique=True)
    op.create_index(op.f('ix_event_ledger_event_type'), 'event_ledger', ['event_type'], unique=False)
    op.create_index(op.f('ix_event_ledger_account_id'), 'event_ledger', ['account_id'], unique=False)
    op.create_index('idx_ledger_pending', 'event_ledger', ['applied', 'received_at'], unique=False)

    # Per-period usage counters
    op.create_table(
        'usage_counters',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('account_id', sa.BigInteger(), nullable=False),
        sa.Column('operation_class', sa.String(length=100), nullable=False),
        sa.Column('period_key', sa.String(length=7), nullable=False),
        sa.Column('count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'operation_class', 'period_key', name='uq_usage_counter_account_class_period')
    )
    op.create_index(op.f('ix_usage_counters_id'), 'usage_counters', ['id'], unique=False)
    op.create_index(op.f('ix_usage_counters_account_id'), 'usage_counters', ['account_id'], unique=False)

    # Non-resetting trial allowances
    op.create_table(
        'trial_allowances',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('account_id', sa.BigInteger(), nullable=False),
        sa.Column('feature_key', sa.String(length=100), nullable=False),
        sa.Column('used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cap', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'feature_key', name='uq_trial_account_feature')
    )
    op.create_index(op.f('ix_trial_allowances_id'), 'trial_allowances', ['id'], unique=False)
    op.create_index(op.f('ix_trial_allowances_account_id'), 'trial_allowances', ['account_id'], unique=False)

    # Usage audit trail
    op.create_table(
        'usage_events',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('account_id', sa.BigInteger(), nullable=False),
        sa.Column('operation_class', sa.String(length=100), nullable=False),
        sa.Column('source', sa.String(length=50), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('period_key', sa.String(length=7), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_usage_events_id'), 'usage_events', ['id'], unique=False)
    op.create_index(op.f('ix_usage_events_account_id'), 'usage_events', ['account_id'], unique=False)
    op.create_index(op.f('ix_usage_events_operation_class'), 'usage_events', ['operation_class'], unique=False)
    op.create_index(op.f('ix_usage_events_created_at'), 'usage_events', ['created_at'], unique=False)
    op.create_index('idx_usage_account_class_date', 'usage_events', ['account_id', 'operation_class', 'created_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('idx_usage_account_class_date', table_name='usage_events')
    op.drop_index(op.f('ix_usage_events_created_at'), table_name='usage_events')
    op.drop_index(op.f('ix_usage_events_operation_class'), table_name='usage_events')
    op.drop_index(op.f('ix_usage_events_account_id'), table_name='usage_events')
    op.drop_index(op.f('ix_usage_events_id'), table_name='usage_events')
    op.drop_table('usage_events')

    op.drop_index(op.f('ix_trial_allowances_account_id'), table_name='trial_allowances')
    op.drop_index(op.f('ix_trial_allowances_id'), table_name='trial_allowances')
    op.drop_table('trial_allowances')

    op.drop_index(op.f('ix_usage_counters_account_id'), table_name='usage_counters')
    op.drop_index(op.f('ix_usage_counters_id'), table_name='usage_counters')
    op.drop_table('usage_counters')

    op.drop_index('idx_ledger_pending', table_name='event_ledger')
    op.drop_index(op.f('ix_event_ledger_account_id'), table_name='event_ledger')
    op.drop_index(op.f('ix_event_ledger_event_type'), table_name='event_ledger')
    op.drop_index(op.f('ix_event_ledger_event_id'), table_name='event_ledger')
    op.drop_index(op.f('ix_event_ledger_id'), table_name='event_ledger')
    op.drop_table('event_ledger')

    op.drop_index('idx_subscription_period_end', table_name='subscriptions')
    op.drop_index(op.f('ix_subscriptions_external_customer_ref'), table_name='subscriptions')
    op.drop_index(op.f('ix_subscriptions_status'), table_name='subscriptions')
    op.drop_index(op.f('ix_subscriptions_account_id'), table_name='subscriptions')
    op.drop_index(op.f('ix_subscriptions_id'), table_name='subscriptions')
    op.drop_table('subscriptions')

    op.drop_index(op.f('ix_accounts_api_key_hash'), table_name='accounts')
    op.drop_index(op.f('ix_accounts_email'), table_name='accounts')
    op.drop_index(op.f('ix_accounts_id'), table_name='accounts')
    op.drop_table('accounts')
