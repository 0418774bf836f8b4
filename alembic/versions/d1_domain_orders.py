"""Add persona, domainorder and paymentevent tables

Revision ID: d1_domain_orders
"""
from alembic import op
import sqlalchemy as sa

revision = "d1_domain_orders"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "persona",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("account_id", sa.String(64), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "domainorder",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("account_id", sa.String(64), nullable=False, index=True),
        sa.Column("domain", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("tld", sa.String(32), nullable=False),
        sa.Column("years", sa.Integer(), nullable=False, server_default="1"),
        # Pricing (minor units)
        sa.Column("domain_price", sa.Integer(), nullable=False),
        sa.Column("management_fee", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_price", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("quoted_registrar_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("purchase_price_snapshot", sa.Numeric(10, 2), nullable=True),
        sa.Column("stripe_payment_intent_id", sa.String(255), nullable=True),
        # Lifecycle
        sa.Column("status", sa.String(32), nullable=False, server_default="pending_payment", index=True),
        sa.Column("dns_status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("ssl_status", sa.String(32), nullable=False, server_default="pending"),
        # Registrar
        sa.Column("registrar", sa.String(64), nullable=False, server_default="namecom"),
        sa.Column("registrar_order_id", sa.String(255), nullable=True),
        sa.Column("registration_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expiration_date", sa.DateTime(timezone=True), nullable=True),
        # DNS / SSL
        sa.Column("dns_zone_id", sa.String(64), nullable=True),
        sa.Column("nameservers", sa.JSON(), nullable=True),
        sa.Column("target_host", sa.String(255), nullable=True),
        sa.Column("last_dns_check", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_ssl_check", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error_message", sa.Text(), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("dns_error_message", sa.Text(), nullable=True),
        sa.Column("ssl_error_message", sa.Text(), nullable=True),
        # Publishing
        sa.Column("persona_id", sa.Integer(), sa.ForeignKey("persona.id"), nullable=True, index=True),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    # Router lookups are case-insensitive
    op.create_index(
        "ix_domainorder_published_lower_domain",
        "domainorder",
        [sa.text("lower(domain)")],
        postgresql_where=sa.text("is_published"),
    )

    op.create_table(
        "paymentevent",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True, index=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("paymentevent")
    op.drop_index("ix_domainorder_published_lower_domain", table_name="domainorder")
    op.drop_table("domainorder")
    op.drop_table("persona")
