from fellowship.api.v1.schemas.events import (
    EventCancelledOut,
    EventCreate,
    EventDetailOut,
    EventListOut,
    EventOut,
    EventRosterOut,
    EventUpdate,
    RSVPCancelOut,
    RSVPCreate,
    RSVPOut,
    RSVPResultOut,
    RSVPWithEventOut,
)

__all__ = [
    "EventCreate",
    "EventUpdate",
    "EventOut",
    "EventDetailOut",
    "EventListOut",
    "EventCancelledOut",
    "EventRosterOut",
    "RSVPCreate",
    "RSVPOut",
    "RSVPResultOut",
    "RSVPCancelOut",
    "RSVPWithEventOut",
]
