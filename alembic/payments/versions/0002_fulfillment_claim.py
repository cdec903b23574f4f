"""one-shot fulfillment claim

Revision ID: 0002_payments
Revises: 0001_payments
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_payments"
down_revision = "0001_payments"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("payments", sa.Column("fulfilled_at", sa.DateTime(timezone=True), nullable=True))
    # Payments that already succeeded must not re-run fulfillment.
    op.execute("UPDATE payments SET fulfilled_at = updated_at WHERE status = 'SUCCEEDED'")


def downgrade() -> None:
    op.drop_column("payments", "fulfilled_at")
