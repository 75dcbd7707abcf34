from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fellowship.api.v1.schemas.events import EventCreate, EventUpdate
from fellowship.models import RSVP, Event, Member, MemberRole, RSVPStatus
from fellowship.models.base import as_utc, utcnow
from fellowship.models.rsvp import ACTIVE_RSVP_STATUSES
from fellowship.services import rsvp_service, summary_cache
from fellowship.services.error_codes import ErrorCode
from fellowship.services.exceptions import (
    ConflictError,
    GoneError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from fellowship.services.notifications import (
    NotificationDispatcher,
    NotificationKind,
    get_dispatcher,
)
from fellowship.services.transactions import run_in_transaction

logger = structlog.get_logger(__name__)

ORGANIZER_ROLES = {MemberRole.STAFF, MemberRole.ADMIN}


def _require_organizer(member: Member) -> None:
    if member.role not in ORGANIZER_ROLES:
        raise PermissionDeniedError(
            ErrorCode.FORBIDDEN.value, "only staff or admins can manage events"
        )


def get_event(db: Session, event_id: Any) -> Event:
    event = db.get(Event, event_id)
    if not event:
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND.value, "event not found")
    return event


def list_events(
    db: Session,
    *,
    include_cancelled: bool = False,
    starts_after: datetime | None = None,
    starts_before: datetime | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[tuple[Event, int]], int]:
    """Events ordered by start time, each with its confirmed RSVP count."""
    filters = []
    if not include_cancelled:
        filters.append(Event.cancelled_at.is_(None))
    if starts_after is not None:
        filters.append(Event.starts_at >= starts_after)
    if starts_before is not None:
        filters.append(Event.starts_at <= starts_before)

    total = int(db.scalar(select(func.count()).select_from(Event).where(*filters)) or 0)

    confirmed = (
        select(RSVP.event_id, func.count().label("confirmed_count"))
        .where(RSVP.status == RSVPStatus.CONFIRMED)
        .group_by(RSVP.event_id)
        .subquery()
    )
    rows = db.execute(
        select(Event, func.coalesce(confirmed.c.confirmed_count, 0))
        .outerjoin(confirmed, confirmed.c.event_id == Event.id)
        .where(*filters)
        .order_by(Event.starts_at.asc(), Event.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()

    return [(event, int(count)) for event, count in rows], total


def create_event(db: Session, organizer: Member, payload: EventCreate) -> Event:
    _require_organizer(organizer)

    if as_utc(payload.starts_at) <= utcnow():
        raise ValidationError(
            ErrorCode.INVALID_EVENT.value, "event start date cannot be in the past"
        )

    event = Event(
        title=payload.title,
        description=payload.description,
        location=payload.location,
        starts_at=payload.starts_at,
        ends_at=payload.ends_at,
        max_capacity=payload.max_capacity,
        created_by_id=organizer.id,
    )
    db.add(event)
    db.commit()

    logger.info("event_created", event_id=str(event.id), created_by=str(organizer.id))
    return event


def update_event(
    db: Session,
    organizer: Member,
    event_id: Any,
    patch: EventUpdate,
    dispatcher: NotificationDispatcher | None = None,
) -> Event:
    _require_organizer(organizer)
    dispatcher = dispatcher or get_dispatcher()
    patch_data = patch.model_dump(exclude_unset=True)
    for key in ("title", "starts_at", "ends_at"):
        if key in patch_data and patch_data[key] is None:
            raise ValidationError(ErrorCode.INVALID_EVENT.value, f"{key} cannot be cleared")

    def _update() -> tuple[Event, list[RSVP]]:
        event = rsvp_service.lock_event(db, event_id)
        if event.is_cancelled:
            raise GoneError(ErrorCode.EVENT_CANCELLED.value, "cannot edit a cancelled event")

        capacity_changed = "max_capacity" in patch_data and (
            patch_data["max_capacity"] != event.max_capacity
        )
        if capacity_changed and patch_data["max_capacity"] is not None:
            confirmed = rsvp_service.current_confirmed_count(db, event.id)
            if patch_data["max_capacity"] < confirmed:
                raise ConflictError(
                    ErrorCode.CAPACITY_BELOW_CONFIRMED.value,
                    "capacity cannot be below the current confirmed count",
                    details={"confirmed_count": confirmed},
                )

        new_starts_at = as_utc(patch_data.get("starts_at") or event.starts_at)
        new_ends_at = as_utc(patch_data.get("ends_at") or event.ends_at)
        if new_ends_at <= new_starts_at:
            raise ValidationError(ErrorCode.INVALID_EVENT.value, "ends_at must be after starts_at")

        for key, value in patch_data.items():
            setattr(event, key, value)
        db.flush()

        promoted = rsvp_service.promote_waitlisted(db, event) if capacity_changed else []
        return event, promoted

    event, promoted = run_in_transaction(db, _update, name="event_update", event_id=str(event_id))

    logger.info(
        "event_updated",
        event_id=str(event.id),
        fields=sorted(patch_data),
        promoted=len(promoted),
    )
    summary_cache.invalidate_event_summary(event.id)
    for rsvp in promoted:
        rsvp_service.notify_rsvp(dispatcher, NotificationKind.RSVP_PROMOTED, rsvp)

    return event


def cancel_event(
    db: Session,
    organizer: Member,
    event_id: Any,
    dispatcher: NotificationDispatcher | None = None,
) -> tuple[Event, int]:
    """Mark the event cancelled; RSVP rows are kept. Returns the attendee count notified."""
    _require_organizer(organizer)
    dispatcher = dispatcher or get_dispatcher()

    def _cancel() -> tuple[Event, list[str]]:
        event = rsvp_service.lock_event(db, event_id)
        if event.is_cancelled:
            raise GoneError(ErrorCode.EVENT_CANCELLED.value, "event is already cancelled")

        event.cancelled_at = utcnow()
        member_ids = db.scalars(
            select(RSVP.member_id).where(
                RSVP.event_id == event.id,
                RSVP.status.in_(ACTIVE_RSVP_STATUSES),
            )
        ).all()
        db.flush()
        return event, [str(m) for m in member_ids]

    event, member_ids = run_in_transaction(
        db, _cancel, name="event_cancel", event_id=str(event_id)
    )

    logger.info("event_cancelled", event_id=str(event.id), attendees=len(member_ids))
    summary_cache.invalidate_event_summary(event.id)
    if member_ids:
        dispatcher.publish(
            NotificationKind.EVENT_CANCELLED,
            {"event_id": str(event.id), "member_ids": member_ids},
        )

    return event, len(member_ids)
