from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fellowship.models.event import MAX_EVENT_CAPACITY
from fellowship.models.rsvp import RSVPStatus


def _ensure_tzaware(value: datetime | None) -> datetime | None:
    if value is None:
        return value
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValueError("datetime must be timezone-aware")
    return value


def _assume_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class SchemaBase(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")


class TZAwareInputMixin(BaseModel):
    @field_validator("starts_at", "ends_at", mode="after", check_fields=False)
    @classmethod
    def _validate_tzaware(cls, value: datetime | None) -> datetime | None:
        return _ensure_tzaware(value)


class UTCOutputMixin(BaseModel):
    @field_validator(
        "starts_at",
        "ends_at",
        "cancelled_at",
        "created_at",
        "updated_at",
        "promoted_at",
        mode="after",
        check_fields=False,
    )
    @classmethod
    def _normalize_utc(cls, value: datetime | None) -> datetime | None:
        return _assume_utc(value)


class EventCreate(TZAwareInputMixin, SchemaBase):
    title: str = Field(min_length=3, max_length=200)
    description: str | None = None
    location: str | None = Field(default=None, min_length=3, max_length=500)
    starts_at: datetime
    ends_at: datetime
    max_capacity: int | None = Field(default=None, ge=1, le=MAX_EVENT_CAPACITY)

    @field_validator("title", "location", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _validate_time_bounds(self):
        if self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self


class EventUpdate(TZAwareInputMixin, SchemaBase):
    title: str | None = Field(default=None, min_length=3, max_length=200)
    description: str | None = None
    location: str | None = Field(default=None, min_length=3, max_length=500)
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    max_capacity: int | None = Field(default=None, ge=1, le=MAX_EVENT_CAPACITY)

    @model_validator(mode="after")
    def _validate_time_bounds(self):
        if self.starts_at and self.ends_at and self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self


class EventOut(UTCOutputMixin, SchemaBase):
    id: UUID
    title: str
    description: str | None = None
    location: str | None = None
    starts_at: datetime
    ends_at: datetime
    max_capacity: int | None = None
    cancelled_at: datetime | None = None
    created_by_id: UUID
    created_at: datetime
    updated_at: datetime


class RSVPSummaryOut(SchemaBase):
    confirmed_count: int = Field(ge=0)
    waitlisted_count: int = Field(ge=0)
    max_capacity: int | None = None
    available_spots: int | None = None


class EventDetailOut(EventOut):
    rsvp_summary: RSVPSummaryOut


class EventListItemOut(EventOut):
    confirmed_count: int = Field(ge=0)


class EventListOut(SchemaBase):
    items: list[EventListItemOut]
    page: int = Field(ge=1)
    page_size: int = Field(ge=1)
    total: int = Field(ge=0)


class EventCancelledOut(UTCOutputMixin, SchemaBase):
    id: UUID
    title: str
    cancelled_at: datetime
    notified_count: int = Field(ge=0)


class RSVPCreate(SchemaBase):
    notes: str | None = Field(default=None, max_length=500)


class MemberBriefOut(SchemaBase):
    id: UUID
    email: str
    first_name: str | None = None
    last_name: str | None = None


class RSVPOut(UTCOutputMixin, SchemaBase):
    id: UUID
    event_id: UUID
    member_id: UUID
    status: RSVPStatus
    notes: str | None = None
    created_at: datetime
    updated_at: datetime
    promoted_at: datetime | None = None
    cancelled_at: datetime | None = None


class RSVPWithMemberOut(RSVPOut):
    member: MemberBriefOut


class RSVPWithEventOut(RSVPOut):
    event: EventOut


class RSVPResultOut(SchemaBase):
    rsvp: RSVPOut
    is_waitlisted: bool
    available_spots: int | None = None
    message: str


class RSVPCancelOut(SchemaBase):
    rsvp: RSVPOut
    waitlist_promoted: bool
    promoted_rsvp_id: UUID | None = None
    message: str


class EventRosterOut(SchemaBase):
    event_id: UUID
    event_title: str
    total: int = Field(ge=0)
    confirmed_count: int = Field(ge=0)
    waitlisted_count: int = Field(ge=0)
    cancelled_count: int = Field(ge=0)
    max_capacity: int | None = None
    available_spots: int | None = None
    rsvps: list[RSVPWithMemberOut]
