"""Initial membership schema

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 09:00:00.000000

Creates:
1. membership_tiers (slug ids, JSON benefits)
2. users (membership, usage counters, points balance)
3. points_history
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1b2c3d4e5f6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'membership_tiers',
        sa.Column('id', sa.String(length=50), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('popular', sa.Boolean(), nullable=True),
        sa.Column('features', sa.JSON(), nullable=True),
        sa.Column('benefits', sa.JSON(), nullable=True),
        sa.Column('stripe_price_id', sa.String(length=100), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('suspended', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('suspended_at', sa.DateTime(), nullable=True),
        sa.Column('suspended_reason', sa.String(length=500), nullable=True),
        sa.Column('tier_id', sa.String(length=50), sa.ForeignKey('membership_tiers.id'), nullable=True),
        sa.Column('tier_name', sa.String(length=100), nullable=True),
        sa.Column('membership_status', sa.String(length=20), nullable=True),
        sa.Column('stripe_customer_id', sa.String(length=50), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(length=50), nullable=True),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('usage_period_start', sa.DateTime(), nullable=True),
        sa.Column('refills_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('full_sets_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('points_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_points_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('email'),
        sa.CheckConstraint('points_balance >= 0', name='ck_users_points_balance_non_negative'),
        sa.CheckConstraint('refills_used >= 0', name='ck_users_refills_used_non_negative'),
        sa.CheckConstraint('full_sets_used >= 0', name='ck_users_full_sets_used_non_negative'),
    )
    op.create_index('ix_users_stripe_subscription_id', 'users', ['stripe_subscription_id'])

    op.create_table(
        'points_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('entry_type', sa.String(length=20), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=True),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('order_id', sa.String(length=100), nullable=True),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('amount >= 0', name='ck_points_history_amount_non_negative'),
    )
    op.create_index('ix_points_history_user_id', 'points_history', ['user_id'])
    op.create_index('ix_points_history_created_at', 'points_history', ['created_at'])


def downgrade():
    op.drop_index('ix_points_history_created_at', table_name='points_history')
    op.drop_index('ix_points_history_user_id', table_name='points_history')
    op.drop_table('points_history')
    op.drop_index('ix_users_stripe_subscription_id', table_name='users')
    op.drop_table('users')
    op.drop_table('membership_tiers')
