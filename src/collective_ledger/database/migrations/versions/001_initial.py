"""Initial migration - create collectives, orders, payment methods and ledger tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'collectives',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('slug', sa.String(255), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('host_fee_percent', sa.Float(), nullable=False, server_default='0'),
        sa.Column('host_collective_id', sa.Integer(), sa.ForeignKey('collectives.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'connected_accounts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('collective_id', sa.Integer(), sa.ForeignKey('collectives.id'), nullable=False),
        sa.Column('service', sa.String(50), nullable=False, server_default='stripe'),
        sa.Column('username', sa.String(255), nullable=False),
        sa.Column('token', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index(
        'ix_connected_accounts_collective_service', 'connected_accounts', ['collective_id', 'service']
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('username', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'tiers',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('collective_id', sa.Integer(), sa.ForeignKey('collectives.id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=True),
        sa.Column('interval', sa.String(10), nullable=True),
    )

    op.create_table(
        'members',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('collective_id', sa.Integer(), sa.ForeignKey('collectives.id'), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('tier_id', sa.Integer(), sa.ForeignKey('tiers.id'), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'collective_id', 'role', name='uq_members_user_collective_role'),
    )

    op.create_table(
        'payment_methods',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('service', sa.String(50), nullable=False, server_default='stripe'),
        sa.Column('token', sa.String(255), nullable=False),
        sa.Column('customer_id', sa.String(255), nullable=True),
        sa.Column('data_json', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('interval', sa.String(10), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('stripe_subscription_id', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('activated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('from_collective_id', sa.Integer(), sa.ForeignKey('collectives.id'), nullable=False),
        sa.Column('to_collective_id', sa.Integer(), sa.ForeignKey('collectives.id'), nullable=False),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('tier_id', sa.Integer(), sa.ForeignKey('tiers.id'), nullable=True),
        sa.Column('payment_method_id', sa.Integer(), sa.ForeignKey('payment_methods.id'), nullable=False),
        sa.Column('subscription_id', sa.Integer(), sa.ForeignKey('subscriptions.id'), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_orders_processed_at', 'orders', ['processed_at'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('type', sa.String(10), nullable=False),
        sa.Column('transaction_group', sa.String(36), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('host_currency', sa.String(3), nullable=True),
        sa.Column('amount_in_host_currency', sa.Integer(), nullable=True),
        sa.Column('host_currency_fx_rate', sa.Float(), nullable=True),
        sa.Column('host_fee_in_host_currency', sa.Integer(), nullable=True),
        sa.Column('platform_fee_in_host_currency', sa.Integer(), nullable=True),
        sa.Column('payment_processor_fee_in_host_currency', sa.Integer(), nullable=True),
        sa.Column('net_amount_in_collective_currency', sa.Integer(), nullable=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=True),
        sa.Column('expense_id', sa.Integer(), nullable=True),
        sa.Column('from_collective_id', sa.Integer(), sa.ForeignKey('collectives.id'), nullable=True),
        sa.Column('to_collective_id', sa.Integer(), sa.ForeignKey('collectives.id'), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('payment_method_id', sa.Integer(), sa.ForeignKey('payment_methods.id'), nullable=True),
        sa.Column('data_json', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_transactions_transaction_group', 'transactions', ['transaction_group'])
    op.create_index('ix_transactions_order_id', 'transactions', ['order_id'])
    op.create_index('ix_transactions_deleted_at', 'transactions', ['deleted_at'])

    op.create_table(
        'activities',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('type', sa.String(100), nullable=False),
        sa.Column('data_json', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_activities_type', 'activities', ['type'])


def downgrade() -> None:
    op.drop_index('ix_activities_type', table_name='activities')
    op.drop_table('activities')

    op.drop_index('ix_transactions_deleted_at', table_name='transactions')
    op.drop_index('ix_transactions_order_id', table_name='transactions')
    op.drop_index('ix_transactions_transaction_group', table_name='transactions')
    op.drop_table('transactions')

    op.drop_index('ix_orders_processed_at', table_name='orders')
    op.drop_table('orders')
    op.drop_table('subscriptions')
    op.drop_table('payment_methods')
    op.drop_table('members')
    op.drop_table('tiers')
    op.drop_table('users')

    op.drop_index('ix_connected_accounts_collective_service', table_name='connected_accounts')
    op.drop_table('connected_accounts')
    op.drop_table('collectives')
