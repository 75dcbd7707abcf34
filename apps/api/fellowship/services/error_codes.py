from enum import Enum


class ErrorCode(str, Enum):
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    EVENT_CANCELLED = "EVENT_CANCELLED"
    EVENT_STARTED = "EVENT_STARTED"
    RSVP_ALREADY_EXISTS = "RSVP_ALREADY_EXISTS"
    RSVP_NOT_FOUND = "RSVP_NOT_FOUND"
    MEMBER_NOT_FOUND = "MEMBER_NOT_FOUND"
    TRANSACTION_CONFLICT = "TRANSACTION_CONFLICT"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    CAPACITY_BELOW_CONFIRMED = "CAPACITY_BELOW_CONFIRMED"
    INVALID_EVENT = "INVALID_EVENT"
    FORBIDDEN = "FORBIDDEN"
