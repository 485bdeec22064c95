"""add service_status to subscribers

Revision ID: b2d1e4f3c8a5
Revises: a1c0f3e2b7d4
Create Date: 2025-11-20
"""
from alembic import op
import sqlalchemy as sa


revision = 'b2d1e4f3c8a5'
down_revision = 'a1c0f3e2b7d4'
branch_labels = None
depends_on = None


def upgrade():
    op.add_column(
        'subscribers',
        sa.Column('service_status', sa.String(16), nullable=False, server_default='active'),
    )
    # subscribers without a service flag are active
    op.execute("UPDATE subscribers SET service_status = 'active' WHERE service_status IS NULL OR service_status = ''")


def downgrade():
    op.drop_column('subscribers', 'service_status')
