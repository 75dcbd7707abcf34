from fellowship.services import rsvp_service
from fellowship.services.events_service import (
    cancel_event,
    create_event,
    get_event,
    list_events,
    update_event,
)

__all__ = [
    "create_event",
    "update_event",
    "cancel_event",
    "get_event",
    "list_events",
    "rsvp_service",
]
