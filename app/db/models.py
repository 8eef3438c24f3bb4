import enum
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class CustomerStatus(enum.StrEnum):
    LEAD = "lead"
    CUSTOMER = "customer"


class JourneyEventType(enum.StrEnum):
    EMAIL_CAPTURED = "email_captured"
    QUOTE_STARTED = "quote_started"
    QUOTE_SUBMITTED = "quote_submitted"
    PHOTOS_UPLOADED = "photos_uploaded"
    CART_CREATED = "cart_created"
    CART_UPDATED = "cart_updated"
    CART_SENT = "cart_sent"
    CHECKOUT_STARTED = "checkout_started"
    PAYMENT_INITIATED = "payment_initiated"
    PURCHASE_COMPLETED = "purchase_completed"
    PROJECT_CREATED = "project_created"
    PROJECT_UPDATED = "project_updated"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Visitor(Base):
    __tablename__ = "visitors"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    fingerprint: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    customer_id: Mapped[str | None] = mapped_column(
        ForeignKey("customers.id", ondelete="SET NULL"), index=True, nullable=True
    )

    # First touch: written once at creation.
    first_source: Mapped[str | None] = mapped_column(Text)
    first_medium: Mapped[str | None] = mapped_column(Text)
    first_campaign: Mapped[str | None] = mapped_column(Text)
    first_term: Mapped[str | None] = mapped_column(Text)
    first_content: Mapped[str | None] = mapped_column(Text)
    first_landing_page: Mapped[str | None] = mapped_column(Text)
    first_referrer: Mapped[str | None] = mapped_column(Text)
    first_gclid: Mapped[str | None] = mapped_column(Text)
    first_fbclid: Mapped[str | None] = mapped_column(Text)

    # Last touch: overwritten on every returning session.
    last_source: Mapped[str | None] = mapped_column(Text)
    last_medium: Mapped[str | None] = mapped_column(Text)
    last_campaign: Mapped[str | None] = mapped_column(Text)
    last_term: Mapped[str | None] = mapped_column(Text)
    last_content: Mapped[str | None] = mapped_column(Text)
    last_landing_page: Mapped[str | None] = mapped_column(Text)
    last_referrer: Mapped[str | None] = mapped_column(Text)
    last_gclid: Mapped[str | None] = mapped_column(Text)
    last_fbclid: Mapped[str | None] = mapped_column(Text)

    first_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    session_count: Mapped[int] = mapped_column(Integer, default=1)
    total_pageviews: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    customer: Mapped["Customer"] = relationship(back_populates="visitors")


class TrackingSession(Base):
    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    # Weak reference: falls back to the raw fingerprint when the visitor row is missing.
    visitor_id: Mapped[str] = mapped_column(String(255), index=True)

    source: Mapped[str | None] = mapped_column(Text)
    medium: Mapped[str | None] = mapped_column(Text)
    campaign: Mapped[str | None] = mapped_column(Text)
    term: Mapped[str | None] = mapped_column(Text)
    content: Mapped[str | None] = mapped_column(Text)
    landing_page: Mapped[str | None] = mapped_column(Text)
    referrer: Mapped[str | None] = mapped_column(Text)
    gclid: Mapped[str | None] = mapped_column(Text)
    fbclid: Mapped[str | None] = mapped_column(Text)
    ad_click_data: Mapped[dict | None] = mapped_column(JSON)

    device_type: Mapped[str | None] = mapped_column(String(64))
    browser: Mapped[str | None] = mapped_column(String(128))
    os: Mapped[str | None] = mapped_column(String(128))

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    pageview_count: Mapped[int] = mapped_column(Integer, default=0)
    converted: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    conversion_type: Mapped[str | None] = mapped_column(String(64))
    conversion_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    first_name: Mapped[str | None] = mapped_column(Text)
    last_name: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(String(64))
    status: Mapped[CustomerStatus] = mapped_column(
        Enum(CustomerStatus, values_callable=_enum_values, name="customerstatus"),
        default=CustomerStatus.LEAD,
        index=True,
    )

    first_source: Mapped[str | None] = mapped_column(Text)
    first_medium: Mapped[str | None] = mapped_column(Text)
    first_campaign: Mapped[str | None] = mapped_column(Text)
    first_term: Mapped[str | None] = mapped_column(Text)
    first_content: Mapped[str | None] = mapped_column(Text)
    first_landing_page: Mapped[str | None] = mapped_column(Text)
    first_referrer: Mapped[str | None] = mapped_column(Text)
    first_gclid: Mapped[str | None] = mapped_column(Text)
    first_fbclid: Mapped[str | None] = mapped_column(Text)

    email_captured_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    visitors: Mapped[list[Visitor]] = relationship(back_populates="customer")


class JourneyEvent(Base):
    __tablename__ = "journey_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    visitor_id: Mapped[str] = mapped_column(String(64), index=True)
    session_id: Mapped[str | None] = mapped_column(String(255), index=True)
    customer_id: Mapped[str | None] = mapped_column(String(64), index=True)
    event_type: Mapped[JourneyEventType] = mapped_column(
        Enum(JourneyEventType, values_callable=_enum_values, name="journeyeventtype"),
        index=True,
    )
    event_data: Mapped[dict | None] = mapped_column(JSON)
    page_path: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, index=True
    )


class LegacyLead(Base):
    """Lead captured by the previous site; read-only history for audits."""

    __tablename__ = "legacy_leads"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str | None] = mapped_column(String(320), index=True)
    gclid: Mapped[str | None] = mapped_column(Text)
    fbclid: Mapped[str | None] = mapped_column(Text)
    source_url: Mapped[str | None] = mapped_column(Text)
    landing_page: Mapped[str | None] = mapped_column(Text)
    entry_date: Mapped[date | None] = mapped_column(Date, index=True)


class LegacyOrder(Base):
    """Order imported from the previous store; read-only history for audits."""

    __tablename__ = "legacy_orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str | None] = mapped_column(String(320), index=True)
    total: Mapped[float | None] = mapped_column(Numeric(12, 2))
    order_date: Mapped[date | None] = mapped_column(Date, index=True)
