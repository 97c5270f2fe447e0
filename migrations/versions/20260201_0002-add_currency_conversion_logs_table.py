"""Add currency_conversion_logs table.

Revision ID: b2c3d4e5f6a7
Revises: a1b2c3d4e5f6
Create Date: 2026-02-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'b2c3d4e5f6a7'
down_revision: Union[str, None] = 'a1b2c3d4e5f6'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Append-only conversion audit trail
    op.create_table(
        'currency_conversion_logs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('payment_id', sa.String(), nullable=True),
        sa.Column('from_currency', sa.String(3), nullable=False),
        sa.Column('to_currency', sa.String(3), nullable=False),
        sa.Column('from_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('to_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('exchange_rate', sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column('conversion_date', sa.Date(), nullable=False),
        sa.Column('conversion_type', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_index('ix_currency_conversion_logs_payment_id', 'currency_conversion_logs', ['payment_id'])
    op.create_index('ix_currency_conversion_logs_date', 'currency_conversion_logs', ['conversion_date'])
    op.create_index('ix_currency_conversion_logs_type', 'currency_conversion_logs', ['conversion_type'])


def downgrade() -> None:
    op.drop_index('ix_currency_conversion_logs_type', table_name='currency_conversion_logs')
    op.drop_index('ix_currency_conversion_logs_date', table_name='currency_conversion_logs')
    op.drop_index('ix_currency_conversion_logs_payment_id', table_name='currency_conversion_logs')

    op.drop_table('currency_conversion_logs')
