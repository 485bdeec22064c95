"""create billing tables

Revision ID: a1c0f3e2b7d4
Revises:
Create Date: 2025-11-02
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = 'a1c0f3e2b7d4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'subscribers',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('external_id', sa.String(64), nullable=False, server_default=''),
        sa.Column('sim_no', sa.String(32), nullable=False, server_default=''),
        sa.Column('whatsapp_no', sa.String(32), nullable=False, server_default=''),
        sa.Column('package_name', sa.String(128), nullable=False, server_default=''),
        sa.Column('assign_to', sa.String(128), nullable=False, server_default=''),
        sa.Column('package_fee', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('discount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('number_of_months', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('paid_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('remaining_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('recharge_date', sa.Date(), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('unpaid_since', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('show_in_expiring_soon', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_subscribers_status', 'subscribers', ['status'])
    op.create_index('ix_subscribers_expiry_date', 'subscribers', ['expiry_date'])

    op.create_table(
        'vouchers',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('subscriber_id', sa.Integer(), nullable=False),
        sa.Column('subscriber_name', sa.String(255), nullable=False),
        sa.Column('recharge_date', sa.Date(), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_unique_constraint('uq_vouchers_subscriber_id', 'vouchers', ['subscriber_id'])

    op.create_table(
        'voucher_months',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('voucher_id', sa.Integer(), nullable=False),
        sa.Column('label', sa.String(32), nullable=False),
        sa.Column('package_fee', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('discount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('paid_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('remaining_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('payment_method', sa.String(32), nullable=False, server_default='Not Paid'),
        sa.Column('received_by', sa.String(128), nullable=False, server_default=''),
        sa.Column('charge_date', sa.Date(), nullable=False),
        sa.Column('refund_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('refunded_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_voucher_months_voucher_id', 'voucher_months', ['voucher_id'])
    op.create_index('ix_voucher_months_order', 'voucher_months', ['voucher_id', 'charge_date'])
    op.create_unique_constraint('uq_voucher_month_label', 'voucher_months', ['voucher_id', 'label'])

    op.create_table(
        'month_payments',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('month_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('method', sa.String(32), nullable=False),
        sa.Column('received_by', sa.String(128), nullable=False),
        sa.Column('paid_at', sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index('ix_month_payments_month_id', 'month_payments', ['month_id'])

    op.create_table(
        'income_records',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('receiver_name', sa.String(128), nullable=False),
        sa.Column('cash_income', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('bank_income', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_unique_constraint('uq_income_records_receiver_name', 'income_records', ['receiver_name'])

    op.create_table(
        'income_transfers',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('from_receiver', sa.String(128), nullable=False),
        sa.Column('to_receiver', sa.String(128), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_income_transfers_from_receiver', 'income_transfers', ['from_receiver'])

    op.create_table(
        'refund_records',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('subscriber_id', sa.Integer(), nullable=False),
        sa.Column('voucher_id', sa.Integer(), nullable=False),
        sa.Column('months', postgresql.JSONB(), nullable=False),
        sa.Column('total_refunded', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_refund_records_subscriber_id', 'refund_records', ['subscriber_id'])

    op.create_table(
        'payment_reminders',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('subscriber_id', sa.Integer(), nullable=False),
        sa.Column('subscriber_name', sa.String(255), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('remind_on', sa.Date(), nullable=False),
        sa.Column('note', sa.Text(), nullable=False, server_default=''),
        sa.Column('sent', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('sent_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_payment_reminders_subscriber_id', 'payment_reminders', ['subscriber_id'])
    op.create_index('ix_payment_reminders_remind_on', 'payment_reminders', ['remind_on'])


def downgrade():
    op.drop_table('payment_reminders')
    op.drop_table('refund_records')
    op.drop_table('income_transfers')
    op.drop_table('income_records')
    op.drop_table('month_payments')
    op.drop_table('voucher_months')
    op.drop_table('vouchers')
    op.drop_table('subscribers')
