"""add purchase_records.notified_at

Revision ID: 002_purchase_notified_at
Revises: 001_storefront
Create Date: 2026-10-19 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "002_purchase_notified_at"
down_revision = "001_storefront"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "purchase_records",
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_column("purchase_records", "notified_at")
