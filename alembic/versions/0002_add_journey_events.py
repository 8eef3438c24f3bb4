"""add journey events

Revision ID: 0002_add_journey_events
Revises: 0001_create_tracking_tables
Create Date: 2026-10-19 00:10:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_add_journey_events"
down_revision = "0001_create_tracking_tables"
branch_labels = None
depends_on = None

_EVENT_TYPES = (
    "email_captured",
    "quote_started",
    "quote_submitted",
    "photos_uploaded",
    "cart_created",
    "cart_updated",
    "cart_sent",
    "checkout_started",
    "payment_initiated",
    "purchase_completed",
    "project_created",
    "project_updated",
)


def upgrade() -> None:
    op.create_table(
        "journey_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("visitor_id", sa.String(length=64), nullable=False),
        sa.Column("session_id", sa.String(length=255), nullable=True),
        sa.Column("customer_id", sa.String(length=64), nullable=True),
        sa.Column("event_type", sa.Enum(*_EVENT_TYPES, name="journeyeventtype"), nullable=False),
        sa.Column("event_data", sa.JSON(), nullable=True),
        sa.Column("page_path", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_journey_events_visitor_id"), "journey_events", ["visitor_id"], unique=False)
    op.create_index(op.f("ix_journey_events_session_id"), "journey_events", ["session_id"], unique=False)
    op.create_index(op.f("ix_journey_events_customer_id"), "journey_events", ["customer_id"], unique=False)
    op.create_index(op.f("ix_journey_events_event_type"), "journey_events", ["event_type"], unique=False)
    op.create_index(op.f("ix_journey_events_created_at"), "journey_events", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_journey_events_created_at"), table_name="journey_events")
    op.drop_index(op.f("ix_journey_events_event_type"), table_name="journey_events")
    op.drop_index(op.f("ix_journey_events_customer_id"), table_name="journey_events")
    op.drop_index(op.f("ix_journey_events_session_id"), table_name="journey_events")
    op.drop_index(op.f("ix_journey_events_visitor_id"), table_name="journey_events")
    op.drop_table("journey_events")
    sa.Enum(name="journeyeventtype").drop(op.get_bind(), checkfirst=True)
