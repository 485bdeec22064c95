"""backfill income records from month payments

Revision ID: c3e2f5a4d9b6
Revises: b2d1e4f3c8a5
Create Date: 2025-12-01

One-time: rebuilds per-receiver cash/bank totals from the itemized payment
history of non-reversed months. Receivers with an existing income row are
left untouched.
"""
from alembic import op


revision = 'c3e2f5a4d9b6'
down_revision = 'b2d1e4f3c8a5'
branch_labels = None
depends_on = None


def upgrade():
    op.execute("""
        INSERT INTO income_records (receiver_name, cash_income, bank_income, updated_at)
        SELECT
            COALESCE(NULLIF(TRIM(p.received_by), ''), 'Admin') AS receiver_name,
            SUM(CASE WHEN LOWER(TRIM(p.method)) IN ('bank transfer', 'bank') THEN 0 ELSE p.amount END) AS cash_income,
            SUM(CASE WHEN LOWER(TRIM(p.method)) IN ('bank transfer', 'bank') THEN p.amount ELSE 0 END) AS bank_income,
            now()
        FROM month_payments p
        JOIN voucher_months m ON m.id = p.month_id
        WHERE m.status <> 'reversed'
        GROUP BY COALESCE(NULLIF(TRIM(p.received_by), ''), 'Admin')
        ON CONFLICT (receiver_name) DO NOTHING
    """)


def downgrade():
    # Backfilled totals are indistinguishable from live ones
    pass
