"""Binds anonymous visitors to customers once an email address is captured.

First-touch attribution on a customer is write-once per field: an identify
call may fill a NULL field from the visitor, but never replaces a value that
is already set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models import Customer, CustomerStatus, TrackingSession, Visitor
from app.services.attribution import (
    AttributionRecord,
    TrackingInputError,
    has_text,
    is_plausible_email,
    merge_if_absent,
    normalize_email,
    require_fields,
)

logger = logging.getLogger(__name__)

EMAIL_CONVERSION = "email"


class VisitorNotFoundError(LookupError):
    """No visitor row exists for the fingerprint; a session beacon must come first."""


class IdentifyRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    visitor_id: str | None = Field(default=None, alias="visitorId")
    session_id: str | None = Field(default=None, alias="sessionId")
    email: str | None = None
    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    phone: str | None = None


@dataclass(frozen=True)
class IdentifyResult:
    customer_id: str
    is_new_customer: bool


def identify_visitor(session: Session, request: IdentifyRequest) -> IdentifyResult:
    """Find or create the customer for ``request.email`` and link the visitor to it.

    Raises:
        TrackingInputError: visitorId or email missing, or email malformed.
        VisitorNotFoundError: no visitor has the given fingerprint.
        SQLAlchemyError: the customer could not be created or updated.
    """
    require_fields(visitorId=request.visitor_id, email=request.email)
    if not is_plausible_email(request.email):
        raise TrackingInputError("Invalid email format")

    visitor = session.scalar(select(Visitor).where(Visitor.fingerprint == request.visitor_id))
    if visitor is None:
        logger.warning("identify_visitor_not_found", extra={"fingerprint": request.visitor_id})
        raise VisitorNotFoundError(request.visitor_id)

    email = normalize_email(request.email)
    visitor_touch = AttributionRecord.from_columns(visitor, "first_")
    now = datetime.now(timezone.utc)

    customer_id = session.scalar(select(Customer.id).where(Customer.email == email))
    is_new_customer = customer_id is None
    if customer_id is None:
        customer_id = _create_customer(session, email, request, visitor_touch, now).id
    else:
        _merge_into_customer(session, customer_id, request, visitor_touch, now)

    _link_visitor(session, visitor.id, customer_id, now)
    if has_text(request.session_id):
        try:
            mark_session_converted(session, request.session_id, EMAIL_CONVERSION, now=now)
        except SQLAlchemyError:
            session.rollback()
            logger.exception(
                "identify_session_conversion_failed",
                extra={"session_id": request.session_id, "customer_id": customer_id},
            )

    logger.info(
        "identify_visitor_resolved",
        extra={"customer_id": customer_id, "is_new_customer": is_new_customer},
    )
    return IdentifyResult(customer_id=customer_id, is_new_customer=is_new_customer)


def _create_customer(
    session: Session,
    email: str,
    request: IdentifyRequest,
    visitor_touch: AttributionRecord,
    now: datetime,
) -> Customer:
    customer = Customer(
        email=email,
        first_name=request.first_name or None,
        last_name=request.last_name or None,
        phone=request.phone or None,
        status=CustomerStatus.LEAD,
        email_captured_at=now,
        **visitor_touch.as_columns("first_"),
    )
    session.add(customer)
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("identify_customer_create_failed", extra={"email": email})
        raise
    return customer


def _merge_into_customer(
    session: Session,
    customer_id: str,
    request: IdentifyRequest,
    visitor_touch: AttributionRecord,
    now: datetime,
) -> None:
    values = merge_if_absent(Customer, visitor_touch)
    if request.first_name:
        values["first_name"] = request.first_name
    if request.last_name:
        values["last_name"] = request.last_name
    if request.phone:
        values["phone"] = request.phone

    try:
        session.execute(
            update(Customer)
            .where(Customer.id == customer_id)
            .values(updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("identify_customer_update_failed", extra={"customer_id": customer_id})
        raise


def _link_visitor(session: Session, visitor_id: str, customer_id: str, now: datetime) -> None:
    try:
        session.execute(
            update(Visitor)
            .where(Visitor.id == visitor_id)
            .values(customer_id=customer_id, updated_at=now)
        )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception(
            "identify_visitor_link_failed",
            extra={"visitor_id": visitor_id, "customer_id": customer_id},
        )


def mark_session_converted(
    session: Session,
    session_id: str,
    conversion_type: str,
    *,
    now: datetime | None = None,
) -> bool:
    """Flag a tracking session as converted. Returns False when no such session exists.

    This is the only writer of ``TrackingSession.converted``.
    """
    now = now or datetime.now(timezone.utc)
    result = session.execute(
        update(TrackingSession)
        .where(TrackingSession.id == session_id)
        .values(
            converted=True,
            conversion_type=conversion_type,
            conversion_at=now,
            updated_at=now,
        )
    )
    session.commit()
    if result.rowcount == 0:
        logger.info("session_conversion_target_missing", extra={"session_id": session_id})
        return False
    return True
