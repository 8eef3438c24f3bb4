"""Visitor and session rows written from page-load beacons.

Beacons may be delivered more than once. Inserts go through
:func:`app.db.writes.insert_once`, and each write commits on its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models import TrackingSession, Visitor
from app.db.writes import InsertOutcome, insert_once
from app.services.attribution import (
    AttributionRecord,
    ClickIds,
    UtmParams,
    clean_ad_click_data,
    require_fields,
)

logger = logging.getLogger(__name__)


class DeviceInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    browser: str | None = None
    os: str | None = None


class SessionBeacon(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    visitor_id: str | None = Field(default=None, alias="visitorId")
    session_id: str | None = Field(default=None, alias="sessionId")
    is_new_visitor: bool = Field(default=False, alias="isNewVisitor")
    is_new_session: bool = Field(default=False, alias="isNewSession")
    landing_page: str | None = Field(default=None, alias="landingPage")
    referrer: str | None = None
    utm: UtmParams | None = None
    click_ids: ClickIds | None = Field(default=None, alias="clickIds")
    ad_click_data: dict[str, Any] | None = Field(default=None, alias="adClickData")
    device: DeviceInfo | None = None

    def attribution(self) -> AttributionRecord:
        return AttributionRecord.from_wire(
            utm=self.utm,
            click_ids=self.click_ids,
            landing_page=self.landing_page,
            referrer=self.referrer,
        )


@dataclass(frozen=True)
class SessionBeaconResult:
    visitor_outcome: InsertOutcome | None
    session_outcome: InsertOutcome | None
    visitor_ref: str | None


def record_session_beacon(session: Session, beacon: SessionBeacon) -> SessionBeaconResult:
    """Apply one page-load beacon to the visitor and session tables.

    The visitor write and the session write are committed separately; a
    failure in the second does not undo the first.
    """
    require_fields(visitorId=beacon.visitor_id, sessionId=beacon.session_id)
    attribution = beacon.attribution()
    now = datetime.now(timezone.utc)

    visitor_outcome = None
    if beacon.is_new_visitor:
        visitor_outcome = _create_visitor(session, beacon.visitor_id, attribution, now)
    else:
        _touch_visitor(session, beacon.visitor_id, attribution, now)

    session_outcome = None
    visitor_ref = None
    if beacon.is_new_session:
        visitor_ref = resolve_visitor_ref(session, beacon.visitor_id)
        session_outcome = _create_session(session, beacon, visitor_ref, attribution, now)
        if session_outcome is InsertOutcome.INSERTED and visitor_outcome is not InsertOutcome.INSERTED:
            _count_session(session, beacon.visitor_id, now)

    return SessionBeaconResult(
        visitor_outcome=visitor_outcome,
        session_outcome=session_outcome,
        visitor_ref=visitor_ref,
    )


def _create_visitor(
    session: Session,
    fingerprint: str,
    attribution: AttributionRecord,
    now: datetime,
) -> InsertOutcome:
    visitor = Visitor(
        fingerprint=fingerprint,
        first_seen_at=now,
        last_seen_at=now,
        session_count=1,
        total_pageviews=0,
        **attribution.as_columns("first_"),
        **attribution.as_columns("last_"),
    )
    outcome = insert_once(session, visitor)
    if outcome is InsertOutcome.ALREADY_EXISTS:
        logger.info("tracking_visitor_replayed", extra={"fingerprint": fingerprint})
    return outcome


def _touch_visitor(
    session: Session,
    fingerprint: str,
    attribution: AttributionRecord,
    now: datetime,
) -> None:
    result = session.execute(
        update(Visitor)
        .where(Visitor.fingerprint == fingerprint)
        .values(last_seen_at=now, updated_at=now, **attribution.as_columns("last_"))
    )
    session.commit()
    if result.rowcount == 0:
        logger.warning("tracking_visitor_missing", extra={"fingerprint": fingerprint})


def resolve_visitor_ref(session: Session, fingerprint: str) -> str:
    try:
        visitor_id = session.scalar(select(Visitor.id).where(Visitor.fingerprint == fingerprint))
    except SQLAlchemyError:
        session.rollback()
        logger.exception("tracking_visitor_lookup_failed", extra={"fingerprint": fingerprint})
        return fingerprint
    return visitor_id or fingerprint


def _create_session(
    session: Session,
    beacon: SessionBeacon,
    visitor_ref: str,
    attribution: AttributionRecord,
    now: datetime,
) -> InsertOutcome:
    device = beacon.device or DeviceInfo()
    tracking_session = TrackingSession(
        id=beacon.session_id,
        visitor_id=visitor_ref,
        ad_click_data=clean_ad_click_data(beacon.ad_click_data),
        device_type=device.type or None,
        browser=device.browser or None,
        os=device.os or None,
        started_at=now,
        last_activity_at=now,
        pageview_count=0,
        converted=False,
        **attribution.as_columns(),
    )
    outcome = insert_once(session, tracking_session)
    if outcome is InsertOutcome.ALREADY_EXISTS:
        logger.info("tracking_session_replayed", extra={"session_id": beacon.session_id})
    return outcome


def _count_session(session: Session, fingerprint: str, now: datetime) -> None:
    session.execute(
        update(Visitor)
        .where(Visitor.fingerprint == fingerprint)
        .values(session_count=Visitor.session_count + 1, updated_at=now)
    )
    session.commit()
