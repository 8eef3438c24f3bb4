from app.db.base import Base
from app.db.models import (
    Customer,
    CustomerStatus,
    JourneyEvent,
    JourneyEventType,
    LegacyLead,
    LegacyOrder,
    TrackingSession,
    Visitor,
)

__all__ = [
    "Base",
    "Customer",
    "CustomerStatus",
    "JourneyEvent",
    "JourneyEventType",
    "LegacyLead",
    "LegacyOrder",
    "TrackingSession",
    "Visitor",
]
