"""create ledger tables

Revision ID: 3f9a1c2b7d10
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a1c2b7d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'budgets',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        'accounts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('budget_id', sa.String(36), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('type', sa.String(16), nullable=False),
        sa.Column('on_budget', sa.Boolean(), nullable=False, server_default='true'),
    )

    op.create_table(
        'category_groups',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('budget_id', sa.String(36), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
    )

    op.create_table(
        'categories',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('group_id', sa.String(36), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        'payees',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('budget_id', sa.String(36), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
    )

    op.create_table(
        'transactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('account_id', sa.String(36), nullable=False, index=True),
        sa.Column('category_id', sa.String(36), nullable=True, index=True),
        sa.Column('payee_id', sa.String(36), nullable=True),
        sa.Column('date', sa.Date(), nullable=False, index=True),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('cleared', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('memo', sa.Text(), nullable=True),
        sa.Column('transfer_account_id', sa.String(36), nullable=True, index=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        'assignments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('category_id', sa.String(36), nullable=False),
        sa.Column('month', sa.String(7), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.UniqueConstraint('category_id', 'month', name='uq_assignment_category_month'),
    )

    op.create_table(
        'targets',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('category_id', sa.String(36), nullable=False, unique=True),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('target_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        'month_summaries',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('budget_id', sa.String(36), nullable=False),
        sa.Column('month', sa.String(7), nullable=False),
        sa.Column('ready_to_assign', sa.BigInteger(), nullable=False),
        sa.Column('uncategorized_activity', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('category_balances', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('budget_id', 'month', name='uq_month_summary_budget_month'),
    )
    op.create_index('ix_month_summary_budget_month', 'month_summaries', ['budget_id', 'month'])


def downgrade() -> None:
    op.drop_index('ix_month_summary_budget_month', table_name='month_summaries')
    op.drop_table('month_summaries')
    op.drop_table('targets')
    op.drop_table('assignments')
    op.drop_table('transactions')
    op.drop_table('payees')
    op.drop_table('categories')
    op.drop_table('category_groups')
    op.drop_table('accounts')
    op.drop_table('budgets')
