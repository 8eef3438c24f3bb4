"""Typed funnel events recorded against a visitor.

The event row is the unit of work; marking the session converted afterwards
is best-effort and never turns a stored event into a failed request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models import JourneyEvent, JourneyEventType, TrackingSession, Visitor
from app.services.attribution import TrackingInputError, has_text, require_fields
from app.services.identity_resolution import mark_session_converted

logger = logging.getLogger(__name__)

CONVERSION_EVENTS = frozenset(
    {
        JourneyEventType.EMAIL_CAPTURED,
        JourneyEventType.QUOTE_SUBMITTED,
        JourneyEventType.PURCHASE_COMPLETED,
    }
)
VISITOR_NOT_FOUND_WARNING = "visitor_not_found"


class JourneyEventRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    visitor_id: str | None = Field(default=None, alias="visitorId")
    session_id: str | None = Field(default=None, alias="sessionId")
    event_type: str | None = Field(default=None, alias="eventType")
    event_data: dict[str, Any] | None = Field(default=None, alias="eventData")
    page_path: str | None = Field(default=None, alias="pagePath")


@dataclass(frozen=True)
class JourneyEventResult:
    event_id: int | None
    warning: str | None = None
    converted_session: bool = False


def parse_event_type(raw: str) -> JourneyEventType:
    try:
        return JourneyEventType(raw)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in JourneyEventType)
        raise TrackingInputError(f"Invalid event type. Must be one of: {allowed}") from exc


def conversion_label(event_type: JourneyEventType) -> str:
    return event_type.value.replace("_", " ", 1)


def record_journey_event(session: Session, request: JourneyEventRequest) -> JourneyEventResult:
    require_fields(visitorId=request.visitor_id, eventType=request.event_type)
    event_type = parse_event_type(request.event_type)

    visitor = session.execute(
        select(Visitor.id, Visitor.customer_id).where(Visitor.fingerprint == request.visitor_id)
    ).one_or_none()
    if visitor is None:
        logger.warning("journey_event_visitor_not_found", extra={"fingerprint": request.visitor_id})
        return JourneyEventResult(event_id=None, warning=VISITOR_NOT_FOUND_WARNING)

    session_id = None
    if has_text(request.session_id):
        session_id = session.scalar(
            select(TrackingSession.id).where(TrackingSession.id == request.session_id)
        )

    event = JourneyEvent(
        visitor_id=visitor.id,
        session_id=session_id,
        customer_id=visitor.customer_id,
        event_type=event_type,
        event_data=request.event_data or {},
        page_path=request.page_path or None,
    )
    session.add(event)
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception(
            "journey_event_insert_failed",
            extra={"visitor_id": visitor.id, "event_type": event_type.value},
        )
        raise
    event_id = event.id

    converted = False
    if event_type in CONVERSION_EVENTS and session_id is not None:
        try:
            converted = mark_session_converted(session, session_id, conversion_label(event_type))
        except SQLAlchemyError:
            session.rollback()
            logger.exception(
                "journey_event_session_conversion_failed",
                extra={"session_id": session_id, "event_type": event_type.value},
            )

    return JourneyEventResult(event_id=event_id, converted_session=converted)
