"""Create ledger tables.

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-02-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1b2c3d4e5f6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Exchange rates (USD based, effective-dated)
    op.create_table(
        'exchange_rates',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('base_currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('target_currency', sa.String(3), nullable=False),
        sa.Column('rate', sa.Numeric(precision=18, scale=8), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('source', sa.String(), nullable=False, server_default='manual'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('base_currency', 'target_currency', 'date', name='uq_exchange_rate_currency_date'),
        sa.CheckConstraint('rate > 0', name='ck_exchange_rate_positive'),
    )
    op.create_index('ix_exchange_rates_base_currency', 'exchange_rates', ['base_currency'])
    op.create_index('ix_exchange_rates_target_currency', 'exchange_rates', ['target_currency'])
    op.create_index('ix_exchange_rates_date', 'exchange_rates', ['date'])

    # Pledges
    op.create_table(
        'pledges',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('contact_id', sa.String(), nullable=False),
        sa.Column('pledge_date', sa.Date(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('original_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('original_amount_usd', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('exchange_rate', sa.Numeric(precision=12, scale=4), nullable=True),
        sa.Column('total_paid', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('total_paid_usd', sa.Numeric(precision=15, scale=2), nullable=True, server_default='0'),
        sa.Column('balance', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('balance_usd', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_pledges_contact_id', 'pledges', ['contact_id'])
    op.create_index('ix_pledges_currency', 'pledges', ['currency'])

    # Payment plans
    op.create_table(
        'payment_plans',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('pledge_id', sa.String(), nullable=False),
        sa.Column('plan_name', sa.String(), nullable=True),
        sa.Column('frequency', sa.String(), nullable=False, server_default='monthly'),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('total_planned_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('installment_amount', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('number_of_installments', sa.Integer(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('installments_paid', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_paid', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('total_paid_usd', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('remaining_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('remaining_amount_usd', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('plan_status', sa.String(), nullable=False, server_default='active'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['pledge_id'], ['pledges.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payment_plans_pledge_id', 'payment_plans', ['pledge_id'])

    # Installment schedules
    op.create_table(
        'installment_schedules',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('payment_plan_id', sa.String(), nullable=False),
        sa.Column('installment_date', sa.Date(), nullable=True),
        sa.Column('installment_amount', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('paid_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['payment_plan_id'], ['payment_plans.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_installment_schedules_payment_plan_id', 'installment_schedules', ['payment_plan_id'])
    op.create_index('ix_installment_schedules_installment_date', 'installment_schedules', ['installment_date'])
    op.create_index('ix_installment_schedules_status', 'installment_schedules', ['status'])

    # Tags
    op.create_table(
        'tags',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('show_on_payment', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('show_on_pledge', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # Payments
    op.create_table(
        'payments',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('pledge_id', sa.String(), nullable=True),
        sa.Column('payment_plan_id', sa.String(), nullable=True),
        sa.Column('installment_schedule_id', sa.String(), nullable=True),
        sa.Column('is_third_party_payment', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('payer_contact_id', sa.String(), nullable=True),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('amount_usd', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('exchange_rate', sa.Numeric(precision=12, scale=4), nullable=True),
        sa.Column('amount_in_pledge_currency', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('pledge_currency_exchange_rate', sa.Numeric(precision=12, scale=4), nullable=True),
        sa.Column('amount_in_plan_currency', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('plan_currency_exchange_rate', sa.Numeric(precision=12, scale=4), nullable=True),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('received_date', sa.Date(), nullable=True),
        sa.Column('check_date', sa.Date(), nullable=True),
        sa.Column('payment_status', sa.String(), nullable=False, server_default='completed'),
        sa.Column('account', sa.String(), nullable=True),
        sa.Column('payment_method', sa.String(), nullable=True),
        sa.Column('method_detail', sa.String(), nullable=True),
        sa.Column('reference_number', sa.String(), nullable=True),
        sa.Column('check_number', sa.String(), nullable=True),
        sa.Column('receipt_number', sa.String(), nullable=True),
        sa.Column('receipt_type', sa.String(), nullable=True),
        sa.Column('receipt_issued', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['pledge_id'], ['pledges.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['payment_plan_id'], ['payment_plans.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['installment_schedule_id'], ['installment_schedules.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payments_pledge_id', 'payments', ['pledge_id'])
    op.create_index('ix_payments_payment_plan_id', 'payments', ['payment_plan_id'])
    op.create_index('ix_payments_installment_schedule_id', 'payments', ['installment_schedule_id'])
    op.create_index('ix_payments_payer_contact_id', 'payments', ['payer_contact_id'])
    op.create_index('ix_payments_payment_date', 'payments', ['payment_date'])
    op.create_index('ix_payments_payment_status', 'payments', ['payment_status'])
    op.create_index('ix_payments_currency', 'payments', ['currency'])

    # Split payment allocations
    op.create_table(
        'payment_allocations',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('payment_id', sa.String(), nullable=False),
        sa.Column('pledge_id', sa.String(), nullable=False),
        sa.Column('installment_schedule_id', sa.String(), nullable=True),
        sa.Column('payer_contact_id', sa.String(), nullable=True),
        sa.Column('allocated_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('allocated_amount_usd', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('allocated_amount_in_pledge_currency', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('receipt_number', sa.String(), nullable=True),
        sa.Column('receipt_type', sa.String(), nullable=True),
        sa.Column('receipt_issued', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['pledge_id'], ['pledges.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['installment_schedule_id'], ['installment_schedules.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_id', 'pledge_id', 'installment_schedule_id', name='uq_payment_allocation'),
    )
    op.create_index('ix_payment_allocations_payment_id', 'payment_allocations', ['payment_id'])
    op.create_index('ix_payment_allocations_pledge_id', 'payment_allocations', ['pledge_id'])
    op.create_index(
        'ix_payment_allocations_installment_schedule_id', 'payment_allocations', ['installment_schedule_id']
    )

    # Payment tags
    op.create_table(
        'payment_tags',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('payment_id', sa.String(), nullable=False),
        sa.Column('tag_id', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tag_id'], ['tags.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_id', 'tag_id', name='uq_payment_tag'),
    )
    op.create_index('ix_payment_tags_payment_id', 'payment_tags', ['payment_id'])
    op.create_index('ix_payment_tags_tag_id', 'payment_tags', ['tag_id'])


def downgrade() -> None:
    op.drop_table('payment_tags')
    op.drop_table('payment_allocations')
    op.drop_table('payments')
    op.drop_table('tags')
    op.drop_table('installment_schedules')
    op.drop_table('payment_plans')
    op.drop_table('pledges')
    op.drop_table('exchange_rates')
