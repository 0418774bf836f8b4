"""Add the cross-process processing claim to domainorder

Revision ID: d2_order_processing_claim
Revises: d1_domain_orders
"""
from alembic import op
import sqlalchemy as sa

revision = "d2_order_processing_claim"
down_revision = "d1_domain_orders"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("domainorder", sa.Column("processing_owner", sa.String(64), nullable=True))
    op.add_column("domainorder", sa.Column("processing_expires_at", sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    op.drop_column("domainorder", "processing_expires_at")
    op.drop_column("domainorder", "processing_owner")
