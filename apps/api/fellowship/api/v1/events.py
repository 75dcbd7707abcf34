from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from fellowship.api.errors import http_error_from_service
from fellowship.api.v1.schemas.events import (
    EventCancelledOut,
    EventCreate,
    EventDetailOut,
    EventListItemOut,
    EventListOut,
    EventOut,
    EventRosterOut,
    EventUpdate,
    RSVPCancelOut,
    RSVPCreate,
    RSVPOut,
    RSVPResultOut,
    RSVPSummaryOut,
    RSVPWithMemberOut,
)
from fellowship.auth.deps import CurrentMember, DBSession, OrganizerMember
from fellowship.models.rsvp import RSVPStatus
from fellowship.services import events_service, rsvp_service, summary_cache
from fellowship.services.exceptions import ServiceError
from fellowship.services.notifications import NotificationDispatcher, get_dispatcher

router = APIRouter(prefix="/events", tags=["events"])

Dispatcher = Annotated[NotificationDispatcher, Depends(get_dispatcher)]


@router.get("", response_model=EventListOut)
def list_events(
    db: DBSession,
    include_cancelled: bool = False,
    starts_after: datetime | None = None,
    starts_before: datetime | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
):
    rows, total = events_service.list_events(
        db,
        include_cancelled=include_cancelled,
        starts_after=starts_after,
        starts_before=starts_before,
        page=page,
        page_size=page_size,
    )
    items = [
        EventListItemOut.model_validate(
            {**EventOut.model_validate(event).model_dump(), "confirmed_count": confirmed}
        )
        for event, confirmed in rows
    ]
    return EventListOut(items=items, page=page, page_size=page_size, total=total)


@router.get("/{event_id}", response_model=EventDetailOut)
def get_event(event_id: uuid.UUID, db: DBSession):
    try:
        event = events_service.get_event(db, event_id)
    except ServiceError as err:
        raise http_error_from_service(err) from err

    summary = summary_cache.get_event_summary(db, event)
    return EventDetailOut.model_validate(
        {
            **EventOut.model_validate(event).model_dump(),
            "rsvp_summary": RSVPSummaryOut.model_validate(summary),
        }
    )


@router.post("", response_model=EventOut, status_code=201)
def create_event(payload: EventCreate, db: DBSession, organizer: OrganizerMember):
    try:
        event = events_service.create_event(db, organizer, payload)
    except ServiceError as err:
        raise http_error_from_service(err) from err
    return EventOut.model_validate(event)


@router.patch("/{event_id}", response_model=EventOut)
def update_event(
    event_id: uuid.UUID,
    patch: EventUpdate,
    db: DBSession,
    organizer: OrganizerMember,
    dispatcher: Dispatcher,
):
    try:
        event = events_service.update_event(db, organizer, event_id, patch, dispatcher)
    except ServiceError as err:
        raise http_error_from_service(err) from err
    return EventOut.model_validate(event)


@router.post("/{event_id}/cancel", response_model=EventCancelledOut)
def cancel_event(
    event_id: uuid.UUID,
    db: DBSession,
    organizer: OrganizerMember,
    dispatcher: Dispatcher,
):
    try:
        event, notified = events_service.cancel_event(db, organizer, event_id, dispatcher)
    except ServiceError as err:
        raise http_error_from_service(err) from err
    return EventCancelledOut(
        id=event.id,
        title=event.title,
        cancelled_at=event.cancelled_at,
        notified_count=notified,
    )


@router.post("/{event_id}/rsvp", response_model=RSVPResultOut, status_code=201)
def rsvp(
    event_id: uuid.UUID,
    db: DBSession,
    member: CurrentMember,
    dispatcher: Dispatcher,
    payload: RSVPCreate | None = None,
):
    notes = payload.notes if payload else None
    try:
        result = rsvp_service.create(db, member, event_id, notes=notes, dispatcher=dispatcher)
    except ServiceError as err:
        raise http_error_from_service(err) from err

    return RSVPResultOut(
        rsvp=RSVPOut.model_validate(result.rsvp),
        is_waitlisted=result.is_waitlisted,
        available_spots=result.available_spots,
        message=result.message,
    )


@router.delete("/{event_id}/rsvp", response_model=RSVPCancelOut)
def cancel_rsvp(
    event_id: uuid.UUID,
    db: DBSession,
    member: CurrentMember,
    dispatcher: Dispatcher,
):
    try:
        result = rsvp_service.cancel(db, member, event_id, dispatcher=dispatcher)
    except ServiceError as err:
        raise http_error_from_service(err) from err

    return RSVPCancelOut(
        rsvp=RSVPOut.model_validate(result.rsvp),
        waitlist_promoted=result.waitlist_promoted,
        promoted_rsvp_id=result.promoted.id if result.promoted else None,
        message=result.message,
    )


@router.get("/{event_id}/rsvps", response_model=EventRosterOut)
def list_event_rsvps(
    event_id: uuid.UUID,
    db: DBSession,
    organizer: OrganizerMember,
    status: RSVPStatus | None = None,
):
    try:
        roster = rsvp_service.list_for_event(db, event_id, status=status)
    except ServiceError as err:
        raise http_error_from_service(err) from err

    return EventRosterOut(
        event_id=roster.event.id,
        event_title=roster.event.title,
        total=roster.total,
        confirmed_count=roster.confirmed_count,
        waitlisted_count=roster.waitlisted_count,
        cancelled_count=roster.cancelled_count,
        max_capacity=roster.event.max_capacity,
        available_spots=roster.available_spots,
        rsvps=[RSVPWithMemberOut.model_validate(r) for r in roster.rsvps],
    )
