"""create visitor, session and customer tables

Revision ID: 0001_create_tracking_tables
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_create_tracking_tables"
down_revision = None
branch_labels = None
depends_on = None

_ATTRIBUTION_FIELDS = (
    "source",
    "medium",
    "campaign",
    "term",
    "content",
    "landing_page",
    "referrer",
    "gclid",
    "fbclid",
)


def _attribution_columns(prefix: str) -> list[sa.Column]:
    return [sa.Column(f"{prefix}{name}", sa.Text(), nullable=True) for name in _ATTRIBUTION_FIELDS]


def upgrade() -> None:
    op.create_table(
        "customers",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=True),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column(
            "status",
            sa.Enum("lead", "customer", name="customerstatus"),
            nullable=False,
        ),
        *_attribution_columns("first_"),
        sa.Column("email_captured_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_customers_email"), "customers", ["email"], unique=True)
    op.create_index(op.f("ix_customers_status"), "customers", ["status"], unique=False)

    op.create_table(
        "visitors",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("fingerprint", sa.String(length=255), nullable=False),
        sa.Column("customer_id", sa.String(length=64), nullable=True),
        *_attribution_columns("first_"),
        *_attribution_columns("last_"),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("session_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("total_pageviews", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_visitors_fingerprint"), "visitors", ["fingerprint"], unique=True)
    op.create_index(op.f("ix_visitors_customer_id"), "visitors", ["customer_id"], unique=False)

    op.create_table(
        "sessions",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("visitor_id", sa.String(length=255), nullable=False),
        *_attribution_columns(""),
        sa.Column("ad_click_data", sa.JSON(), nullable=True),
        sa.Column("device_type", sa.String(length=64), nullable=True),
        sa.Column("browser", sa.String(length=128), nullable=True),
        sa.Column("os", sa.String(length=128), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("pageview_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("converted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("conversion_type", sa.String(length=64), nullable=True),
        sa.Column("conversion_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_sessions_visitor_id"), "sessions", ["visitor_id"], unique=False)
    op.create_index(op.f("ix_sessions_converted"), "sessions", ["converted"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_sessions_converted"), table_name="sessions")
    op.drop_index(op.f("ix_sessions_visitor_id"), table_name="sessions")
    op.drop_table("sessions")
    op.drop_index(op.f("ix_visitors_customer_id"), table_name="visitors")
    op.drop_index(op.f("ix_visitors_fingerprint"), table_name="visitors")
    op.drop_table("visitors")
    op.drop_index(op.f("ix_customers_status"), table_name="customers")
    op.drop_index(op.f("ix_customers_email"), table_name="customers")
    op.drop_table("customers")
    sa.Enum(name="customerstatus").drop(op.get_bind(), checkfirst=True)
