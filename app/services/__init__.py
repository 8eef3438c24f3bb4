from .attribution_audit import AuditOptions, build_attribution_audit
from .identity_resolution import identify_visitor, mark_session_converted
from .journey_events import record_journey_event
from .visitor_tracking import record_session_beacon

__all__ = [
    "AuditOptions",
    "build_attribution_audit",
    "identify_visitor",
    "mark_session_converted",
    "record_journey_event",
    "record_session_beacon",
]
