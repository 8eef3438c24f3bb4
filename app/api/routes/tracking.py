"""Beacon, identify and journey-event endpoints called by the site script.

Bodies are parsed by hand so that malformed JSON is a 400, not a 422.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TypeVar

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.dependencies import get_db_session
from app.services.attribution import TrackingInputError
from app.services.identity_resolution import (
    IdentifyRequest,
    VisitorNotFoundError,
    identify_visitor,
)
from app.services.journey_events import JourneyEventRequest, record_journey_event
from app.services.visitor_tracking import SessionBeacon, record_session_beacon

router = APIRouter(prefix="/api/tracking", tags=["tracking"])
logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)

_SERVER_ERROR_DETAIL = "Internal server error"


def _validation_detail(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "body"
    return f"Invalid field '{location}': {first.get('msg', 'invalid value')}"


async def _read_payload(request: Request, model: type[PayloadT]) -> PayloadT:
    try:
        body = await request.json()
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be valid JSON"
        ) from exc
    if not isinstance(body, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be a JSON object"
        )
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=_validation_detail(exc)
        ) from exc


@router.post("/session")
async def track_session(request: Request, session: Session = Depends(get_db_session)) -> dict:
    beacon = await _read_payload(request, SessionBeacon)
    try:
        await asyncio.to_thread(record_session_beacon, session, beacon)
    except TrackingInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        logger.exception(
            "tracking_session_failed",
            extra={"fingerprint": beacon.visitor_id, "session_id": beacon.session_id},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=_SERVER_ERROR_DETAIL
        ) from exc
    return {"success": True}


@router.post("/identify")
async def track_identify(request: Request, session: Session = Depends(get_db_session)) -> dict:
    payload = await _read_payload(request, IdentifyRequest)
    try:
        result = await asyncio.to_thread(identify_visitor, session, payload)
    except TrackingInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except VisitorNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Visitor not found") from exc
    except SQLAlchemyError as exc:
        logger.exception(
            "tracking_identify_failed",
            extra={"fingerprint": payload.visitor_id, "email": payload.email},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=_SERVER_ERROR_DETAIL
        ) from exc
    return {
        "success": True,
        "customerId": result.customer_id,
        "isNewCustomer": result.is_new_customer,
    }


@router.post("/event")
async def track_event(request: Request, session: Session = Depends(get_db_session)) -> dict:
    payload = await _read_payload(request, JourneyEventRequest)
    try:
        result = await asyncio.to_thread(record_journey_event, session, payload)
    except TrackingInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        logger.exception(
            "tracking_event_failed",
            extra={"fingerprint": payload.visitor_id, "event_type": payload.event_type},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to track event"
        ) from exc

    response: dict[str, object] = {"success": True}
    if result.warning:
        response["warning"] = result.warning
    return response
