"""Create workspace, account, transaction and checkpoint tables.

Revision ID: add_checkpoint_reconciliation
Revises:
Create Date: 2026-01-07
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'add_checkpoint_reconciliation'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'workspaces',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='UAH'),
        sa.Column('owner_id', sa.String(36), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'workspace_members',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('workspace_id', sa.String(36), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='member'),
        *_timestamps(),
        sa.UniqueConstraint('workspace_id', 'user_id', name='uq_workspace_member'),
    )
    op.create_index('idx_workspace_member_user', 'workspace_members', ['user_id'])

    op.create_table(
        'accounts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('workspace_id', sa.String(36), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('type', sa.String(20), nullable=False, server_default='checking'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='UAH'),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('idx_account_workspace', 'accounts', ['workspace_id'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('workspace_id', sa.String(36), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('account_id', sa.String(36), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('type', sa.String(10), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('transaction_date', sa.Date(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(36), nullable=True),
        sa.Column('updated_by', sa.String(36), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("type IN ('income', 'expense')", name='ck_transaction_type'),
        sa.CheckConstraint('amount > 0', name='ck_transaction_amount_positive'),
    )
    op.create_index(
        'idx_transaction_account_date', 'transactions',
        ['workspace_id', 'account_id', 'transaction_date'],
    )
    op.create_index('idx_transaction_deleted_at', 'transactions', ['deleted_at'])

    op.create_table(
        'checkpoints',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('workspace_id', sa.String(36), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('account_id', sa.String(36), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('actual_balance', sa.Numeric(18, 2), nullable=False),
        sa.Column('expected_balance', sa.Numeric(18, 2), nullable=False),
        sa.Column('gap', sa.Numeric(18, 2), nullable=False),
        sa.Column('status', sa.String(10), nullable=False, server_default='open'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(36), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("status IN ('open', 'resolved', 'closed')", name='ck_checkpoint_status'),
    )
    op.create_index('idx_checkpoint_account_date', 'checkpoints', ['workspace_id', 'account_id', 'date'])
    op.create_index('idx_checkpoint_status', 'checkpoints', ['status'])


def downgrade() -> None:
    op.drop_index('idx_checkpoint_status', table_name='checkpoints')
    op.drop_index('idx_checkpoint_account_date', table_name='checkpoints')
    op.drop_table('checkpoints')

    op.drop_index('idx_transaction_deleted_at', table_name='transactions')
    op.drop_index('idx_transaction_account_date', table_name='transactions')
    op.drop_table('transactions')

    op.drop_index('idx_account_workspace', table_name='accounts')
    op.drop_table('accounts')

    op.drop_index('idx_workspace_member_user', table_name='workspace_members')
    op.drop_table('workspace_members')

    op.drop_table('workspaces')
