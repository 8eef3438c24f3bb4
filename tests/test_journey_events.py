import unittest
from unittest.mock import patch

from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db.models import JourneyEvent, JourneyEventType, TrackingSession, Visitor
from app.services import journey_events as journey_module
from app.services.attribution import TrackingInputError
from app.services.identity_resolution import IdentifyRequest, identify_visitor
from app.services.journey_events import (
    VISITOR_NOT_FOUND_WARNING,
    JourneyEventRequest,
    conversion_label,
    parse_event_type,
    record_journey_event,
)
from app.services.visitor_tracking import SessionBeacon, record_session_beacon


class JourneyEventTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

        beacon = SessionBeacon(visitor_id="fp-1", session_id="s-1", is_new_visitor=True, is_new_session=True)
        with self.SessionLocal() as session:
            record_session_beacon(session, beacon)
            self.visitor_id = session.scalar(select(Visitor.id).where(Visitor.fingerprint == "fp-1"))

    def tearDown(self) -> None:
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def _record(self, **payload):
        with self.SessionLocal() as session:
            return record_journey_event(session, JourneyEventRequest.model_validate(payload))

    def _events(self) -> list[JourneyEvent]:
        with self.SessionLocal() as session:
            return list(session.scalars(select(JourneyEvent).order_by(JourneyEvent.id)))

    def test_event_is_stored_against_internal_visitor_id(self) -> None:
        result = self._record(
            visitorId="fp-1",
            sessionId="s-1",
            eventType="quote_started",
            eventData={"step": 1},
            pagePath="/quote",
        )

        self.assertIsNotNone(result.event_id)
        self.assertIsNone(result.warning)
        self.assertFalse(result.converted_session)
        [event] = self._events()
        self.assertEqual(event.visitor_id, self.visitor_id)
        self.assertEqual(event.session_id, "s-1")
        self.assertIsNone(event.customer_id)
        self.assertEqual(event.event_type, JourneyEventType.QUOTE_STARTED)
        self.assertEqual(event.event_data, {"step": 1})
        self.assertEqual(event.page_path, "/quote")

    def test_event_carries_customer_after_identify(self) -> None:
        with self.SessionLocal() as session:
            identified = identify_visitor(session, IdentifyRequest(visitor_id="fp-1", email="jane@example.com"))

        self._record(visitorId="fp-1", eventType="cart_created")

        [event] = self._events()
        self.assertEqual(event.customer_id, identified.customer_id)
        self.assertEqual(event.event_data, {})

    def test_unknown_session_is_dropped_from_event(self) -> None:
        self._record(visitorId="fp-1", sessionId="s-missing", eventType="cart_updated")

        [event] = self._events()
        self.assertIsNone(event.session_id)

    def test_unknown_visitor_returns_warning_and_writes_nothing(self) -> None:
        result = self._record(visitorId="fp-unknown", eventType="cart_sent")

        self.assertEqual(result.warning, VISITOR_NOT_FOUND_WARNING)
        self.assertIsNone(result.event_id)
        self.assertEqual(self._events(), [])

    def test_conversion_event_marks_session_converted(self) -> None:
        result = self._record(visitorId="fp-1", sessionId="s-1", eventType="purchase_completed")

        self.assertTrue(result.converted_session)
        with self.SessionLocal() as session:
            tracking_session = session.get(TrackingSession, "s-1")
        self.assertTrue(tracking_session.converted)
        self.assertEqual(tracking_session.conversion_type, "purchase completed")

    def test_non_conversion_event_leaves_session_unconverted(self) -> None:
        self._record(visitorId="fp-1", sessionId="s-1", eventType="checkout_started")

        with self.SessionLocal() as session:
            tracking_session = session.get(TrackingSession, "s-1")
        self.assertFalse(tracking_session.converted)

    def test_session_conversion_failure_keeps_committed_event(self) -> None:
        failure = OperationalError("UPDATE sessions", {}, Exception("connection reset"))

        with patch.object(journey_module, "mark_session_converted", side_effect=failure):
            with self.assertLogs("app.services.journey_events", level="ERROR") as logs:
                result = self._record(visitorId="fp-1", sessionId="s-1", eventType="purchase_completed")

        self.assertTrue(any("journey_event_session_conversion_failed" in line for line in logs.output))
        self.assertFalse(result.converted_session)
        [event] = self._events()
        self.assertEqual(result.event_id, event.id)
        self.assertEqual(event.event_type, JourneyEventType.PURCHASE_COMPLETED)
        with self.SessionLocal() as session:
            tracking_session = session.get(TrackingSession, "s-1")
        self.assertFalse(tracking_session.converted)

    def test_invalid_input_is_rejected(self) -> None:
        with self.assertRaisesRegex(TrackingInputError, "Invalid event type. Must be one of: email_captured"):
            self._record(visitorId="fp-1", eventType="page_view")
        with self.assertRaisesRegex(TrackingInputError, "eventType is required"):
            self._record(visitorId="fp-1")
        with self.SessionLocal() as session:
            self.assertEqual(session.scalar(select(func.count()).select_from(JourneyEvent)), 0)

    def test_parse_event_type_and_conversion_label(self) -> None:
        self.assertIs(parse_event_type("email_captured"), JourneyEventType.EMAIL_CAPTURED)
        self.assertEqual(conversion_label(JourneyEventType.QUOTE_SUBMITTED), "quote submitted")
        self.assertEqual(conversion_label(JourneyEventType.EMAIL_CAPTURED), "email captured")


if __name__ == "__main__":
    unittest.main()
