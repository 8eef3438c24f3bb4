"""add legacy lead and order tables

Revision ID: 0003_add_legacy_attribution_tables
Revises: 0002_add_journey_events
Create Date: 2026-10-19 00:20:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0003_add_legacy_attribution_tables"
down_revision = "0002_add_journey_events"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "legacy_leads",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("gclid", sa.Text(), nullable=True),
        sa.Column("fbclid", sa.Text(), nullable=True),
        sa.Column("source_url", sa.Text(), nullable=True),
        sa.Column("landing_page", sa.Text(), nullable=True),
        sa.Column("entry_date", sa.Date(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_legacy_leads_email"), "legacy_leads", ["email"], unique=False)
    op.create_index(op.f("ix_legacy_leads_entry_date"), "legacy_leads", ["entry_date"], unique=False)

    op.create_table(
        "legacy_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("total", sa.Numeric(12, 2), nullable=True),
        sa.Column("order_date", sa.Date(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_legacy_orders_email"), "legacy_orders", ["email"], unique=False)
    op.create_index(op.f("ix_legacy_orders_order_date"), "legacy_orders", ["order_date"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_legacy_orders_order_date"), table_name="legacy_orders")
    op.drop_index(op.f("ix_legacy_orders_email"), table_name="legacy_orders")
    op.drop_table("legacy_orders")
    op.drop_index(op.f("ix_legacy_leads_entry_date"), table_name="legacy_leads")
    op.drop_index(op.f("ix_legacy_leads_email"), table_name="legacy_leads")
    op.drop_table("legacy_leads")
