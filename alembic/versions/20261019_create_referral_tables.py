"""Create referral, order and commission tables

Revision ID: create_referral_tables_001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'create_referral_tables_001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # Partners
    op.create_table(
        'partners',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', sa.String(100), nullable=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('business_name', sa.String(200), nullable=True),
        sa.Column('business_type', sa.String(50), nullable=True),
        sa.Column('business_phone', sa.String(30), nullable=True),
        sa.Column('business_website', sa.String(500), nullable=True),
        sa.Column('logo_url', sa.String(500), nullable=True),
        sa.Column('avatar_url', sa.String(500), nullable=True),
        sa.Column('personal_referral_code', sa.String(20), nullable=True),
        sa.Column('referral_type', sa.String(20), nullable=True),
        sa.Column('referrer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('referral_code_used', sa.String(20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('approval_status', sa.String(20), nullable=False, server_default='APPROVED'),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('lifetime_commission_rate', sa.Numeric(5, 2), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', name='uq_partners_user_id'),
        sa.UniqueConstraint('email', name='uq_partners_email'),
    )
    op.create_index('ix_partners_personal_referral_code', 'partners', ['personal_referral_code'], unique=True)
    op.create_index('ix_partners_is_active', 'partners', ['is_active'])

    # Pre-registration codes
    op.create_table(
        'pre_registration_codes',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='ACTIVE'),
        sa.Column('business_category', sa.String(100), nullable=True),
        sa.Column('marketing_campaign', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('expiration_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('partner_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('scans_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conversions_count', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['partner_id'], ['partners.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('code', name='uq_pre_registration_codes_code'),
    )
    op.create_index('ix_pre_registration_codes_status', 'pre_registration_codes', ['status'])
    op.create_index('ix_pre_registration_codes_partner_id', 'pre_registration_codes', ['partner_id'])

    # Customers
    op.create_table(
        'customers',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', sa.String(100), nullable=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('is_registered', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('personal_referral_code', sa.String(20), nullable=True),
        sa.Column('referral_type', sa.String(20), nullable=True),
        sa.Column('referrer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('referral_code_used', sa.String(20), nullable=True),
        sa.Column('referral_applied_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('referral_order_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('current_credit_balance', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', name='uq_customers_user_id'),
        sa.UniqueConstraint('email', name='uq_customers_email'),
    )
    op.create_index('ix_customers_personal_referral_code', 'customers', ['personal_referral_code'], unique=True)
    op.create_index('ix_customers_referrer', 'customers', ['referral_type', 'referrer_id'])

    # Referrals
    op.create_table(
        'referrals',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('referral_code', sa.String(20), nullable=False),
        sa.Column('referrer_type', sa.String(20), nullable=False),
        sa.Column('referrer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('is_personal', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('referee_name', sa.String(200), nullable=True),
        sa.Column('referee_email', sa.String(255), nullable=True),
        sa.Column('referee_customer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='INVITED'),
        sa.Column('scan_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_viewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('accessed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('applied_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expired_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['referee_customer_id'], ['customers.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('referral_code', name='uq_referrals_referral_code'),
    )
    op.create_index('ix_referrals_referrer', 'referrals', ['referrer_type', 'referrer_id'])
    op.create_index('ix_referrals_status', 'referrals', ['status'])
    op.create_index('ix_referrals_expires_at', 'referrals', ['expires_at'])

    # Referral events
    op.create_table(
        'referral_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('referral_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('event_type', sa.String(30), nullable=False),
        sa.Column('event_data', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['referral_id'], ['referrals.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_referral_events_referral_id', 'referral_events', ['referral_id'])
    op.create_index('ix_referral_events_created', 'referral_events', ['created_at'])

    # Orders
    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_number', sa.String(50), nullable=False),
        sa.Column('payment_intent_id', sa.String(100), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('subtotal', sa.Integer(), nullable=False),
        sa.Column('discount_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credit_applied', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('shipping_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='GBP'),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('fulfillment_status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('referral_code', sa.String(20), nullable=True),
        sa.Column('items', sa.JSON(), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_orders_order_number'),
        sa.UniqueConstraint('payment_intent_id', name='uq_orders_payment_intent_id'),
    )
    op.create_index('ix_orders_customer_email', 'orders', ['customer_email'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])

    # Commissions (one per order)
    op.create_table(
        'commissions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_amount', sa.Integer(), nullable=False),
        sa.Column('recipient_type', sa.String(20), nullable=False),
        sa.Column('recipient_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('recipient_email', sa.String(255), nullable=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('referral_code', sa.String(20), nullable=True),
        sa.Column('commission_type', sa.String(30), nullable=False),
        sa.Column('rate_type', sa.String(20), nullable=False),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=False),
        sa.Column('commission_amount', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_by', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('extra_data', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('order_id', name='uq_commissions_order_id'),
    )
    op.create_index('ix_commissions_recipient', 'commissions', ['recipient_type', 'recipient_id'])
    op.create_index('ix_commissions_status', 'commissions', ['status'])


def downgrade() -> None:
    op.drop_index('ix_commissions_status', table_name='commissions')
    op.drop_index('ix_commissions_recipient', table_name='commissions')
    op.drop_table('commissions')

    op.drop_index('ix_orders_payment_status', table_name='orders')
    op.drop_index('ix_orders_customer_email', table_name='orders')
    op.drop_table('orders')

    op.drop_index('ix_referral_events_created', table_name='referral_events')
    op.drop_index('ix_referral_events_referral_id', table_name='referral_events')
    op.drop_table('referral_events')

    op.drop_index('ix_referrals_expires_at', table_name='referrals')
    op.drop_index('ix_referrals_status', table_name='referrals')
    op.drop_index('ix_referrals_referrer', table_name='referrals')
    op.drop_table('referrals')

    op.drop_index('ix_customers_referrer', table_name='customers')
    op.drop_index('ix_customers_personal_referral_code', table_name='customers')
    op.drop_table('customers')

    op.drop_index('ix_pre_registration_codes_partner_id', table_name='pre_registration_codes')
    op.drop_index('ix_pre_registration_codes_status', table_name='pre_registration_codes')
    op.drop_table('pre_registration_codes')

    op.drop_index('ix_partners_is_active', table_name='partners')
    op.drop_index('ix_partners_personal_referral_code', table_name='partners')
    op.drop_table('partners')
