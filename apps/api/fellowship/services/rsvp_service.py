"""RSVP lifecycle: the only code that writes RSVP rows.

Create and cancel lock the event row first, so every operation on one event
is totally ordered while different events proceed in parallel. The confirmed
count is always recomputed under that lock; nothing cached decides an outcome.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fellowship.models import RSVP, Event, Member, RSVPStatus
from fellowship.models.base import as_utc, utcnow
from fellowship.models.rsvp import ACTIVE_RSVP_INDEX, ACTIVE_RSVP_STATUSES
from fellowship.services import capacity, summary_cache
from fellowship.services.capacity import CapacityDecision
from fellowship.services.error_codes import ErrorCode
from fellowship.services.exceptions import (
    ConflictError,
    GoneError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from fellowship.services.notifications import (
    NotificationDispatcher,
    NotificationKind,
    get_dispatcher,
)
from fellowship.services.transactions import run_in_transaction

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RSVPResult:
    rsvp: RSVP
    is_waitlisted: bool
    available_spots: int | None
    message: str


@dataclass(frozen=True)
class CancelResult:
    rsvp: RSVP
    promoted: RSVP | None
    message: str

    @property
    def waitlist_promoted(self) -> bool:
        return self.promoted is not None


@dataclass(frozen=True)
class EventRoster:
    event: Event
    rsvps: list[RSVP]
    total: int
    confirmed_count: int
    waitlisted_count: int
    cancelled_count: int
    available_spots: int | None


def has_started(event: Event) -> bool:
    return as_utc(event.starts_at) <= utcnow()


def lock_event(db: Session, event_id: Any) -> Event:
    event = db.scalar(select(Event).where(Event.id == event_id).with_for_update())
    if not event:
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND.value, "event not found")
    return event


def current_confirmed_count(db: Session, event_id: Any) -> int:
    return int(
        db.scalar(
            select(func.count())
            .select_from(RSVP)
            .where(
                RSVP.event_id == event_id,
                RSVP.status == RSVPStatus.CONFIRMED,
            )
        )
        or 0
    )


def _active_rsvp(db: Session, event_id: Any, member_id: Any) -> RSVP | None:
    return db.scalar(
        select(RSVP).where(
            RSVP.event_id == event_id,
            RSVP.member_id == member_id,
            RSVP.status.in_(ACTIVE_RSVP_STATUSES),
        )
    )


def _already_rsvped(existing: RSVP) -> ConflictError:
    return ConflictError(
        ErrorCode.RSVP_ALREADY_EXISTS.value,
        "you have already RSVPed to this event",
        details={"status": existing.status.value, "rsvp_id": str(existing.id)},
    )


def _is_active_rsvp_violation(exc: IntegrityError) -> bool:
    # Postgres names the index; SQLite only lists the columns
    if getattr(exc.orig, "sqlstate", None) == "23505":
        return True
    message = str(exc.orig)
    return ACTIVE_RSVP_INDEX in message or "UNIQUE constraint failed: rsvps." in message


def notify_rsvp(dispatcher: NotificationDispatcher, kind: NotificationKind, rsvp: RSVP) -> None:
    dispatcher.publish(
        kind,
        {
            "rsvp_id": str(rsvp.id),
            "event_id": str(rsvp.event_id),
            "member_id": str(rsvp.member_id),
            "status": rsvp.status.value,
        },
    )


def promote_waitlisted(db: Session, event: Event, limit: int | None = None) -> list[RSVP]:
    """Move the earliest waitlisted RSVPs into free seats.

    The caller must hold the event lock and commit. Returns the promoted rows
    in promotion order. Rows sharing a created_at fall back to id order, which
    for random UUIDs is arbitrary rather than insertion order.
    """
    if event.is_cancelled:
        return []

    seats = capacity.available_spots(
        event.max_capacity, current_confirmed_count(db, event.id)
    )
    if seats is None:
        count = limit
    elif limit is None:
        count = seats
    else:
        count = min(limit, seats)
    if count is not None and count <= 0:
        return []

    stmt = (
        select(RSVP)
        .where(RSVP.event_id == event.id, RSVP.status == RSVPStatus.WAITLISTED)
        .order_by(RSVP.created_at.asc(), RSVP.id.asc())
    )
    if count is not None:
        stmt = stmt.limit(count)

    promoted = list(db.scalars(stmt).all())
    now = utcnow()
    for rsvp in promoted:
        rsvp.status = RSVPStatus.CONFIRMED
        rsvp.promoted_at = now
    db.flush()
    return promoted


def create(
    db: Session,
    member: Member,
    event_id: Any,
    notes: str | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> RSVPResult:
    dispatcher = dispatcher or get_dispatcher()
    member_id = member.id

    def _create() -> tuple[RSVP, int | None]:
        event = lock_event(db, event_id)
        if event.is_cancelled:
            raise GoneError(ErrorCode.EVENT_CANCELLED.value, "cannot RSVP to a cancelled event")
        if has_started(event):
            raise ConflictError(
                ErrorCode.EVENT_STARTED.value, "cannot RSVP to an event that has already started"
            )

        existing = _active_rsvp(db, event.id, member_id)
        if existing:
            raise _already_rsvped(existing)

        confirmed = current_confirmed_count(db, event.id)
        decision = capacity.evaluate(event.max_capacity, confirmed)
        status = (
            RSVPStatus.CONFIRMED if decision is CapacityDecision.ACCEPT else RSVPStatus.WAITLISTED
        )

        rsvp = RSVP(event_id=event.id, member_id=member_id, status=status, notes=notes)
        db.add(rsvp)
        db.flush()

        if status is RSVPStatus.CONFIRMED:
            confirmed += 1
        return rsvp, capacity.available_spots(event.max_capacity, confirmed)

    try:
        rsvp, spots = run_in_transaction(
            db, _create, name="rsvp_create", event_id=str(event_id), member_id=str(member_id)
        )
    except IntegrityError as exc:
        existing = _active_rsvp(db, event_id, member_id)
        member_exists = db.get(Member, member_id) is not None
        db.rollback()
        # A concurrent request for the same member won the partial unique index
        if existing:
            raise _already_rsvped(existing) from exc
        if _is_active_rsvp_violation(exc):
            raise ConflictError(
                ErrorCode.RSVP_ALREADY_EXISTS.value, "you have already RSVPed to this event"
            ) from exc
        if not member_exists:
            raise NotFoundError(ErrorCode.MEMBER_NOT_FOUND.value, "member not found") from exc
        logger.exception(
            "rsvp_create_integrity_error", event_id=str(event_id), member_id=str(member_id)
        )
        raise TransientError(
            ErrorCode.STORAGE_UNAVAILABLE.value, "storage error, please retry"
        ) from exc

    is_waitlisted = rsvp.status is RSVPStatus.WAITLISTED
    logger.info(
        "rsvp_created",
        rsvp_id=str(rsvp.id),
        event_id=str(rsvp.event_id),
        member_id=str(member_id),
        status=rsvp.status.value,
    )
    summary_cache.invalidate_event_summary(rsvp.event_id)
    notify_rsvp(
        dispatcher,
        NotificationKind.RSVP_WAITLISTED if is_waitlisted else NotificationKind.RSVP_CONFIRMED,
        rsvp,
    )

    return RSVPResult(
        rsvp=rsvp,
        is_waitlisted=is_waitlisted,
        available_spots=spots,
        message=(
            "Event is full. You have been added to the waitlist"
            if is_waitlisted
            else "RSVP confirmed successfully"
        ),
    )


def cancel(
    db: Session,
    member: Member,
    event_id: Any,
    dispatcher: NotificationDispatcher | None = None,
) -> CancelResult:
    dispatcher = dispatcher or get_dispatcher()
    member_id = member.id

    def _cancel() -> tuple[RSVP, RSVP | None]:
        event = lock_event(db, event_id)
        if has_started(event):
            raise ConflictError(
                ErrorCode.EVENT_STARTED.value,
                "cannot cancel an RSVP for an event that has already started",
            )

        rsvp = _active_rsvp(db, event.id, member_id)
        if rsvp is None:
            raise ValidationError(ErrorCode.RSVP_NOT_FOUND.value, "no active RSVP for this event")

        was_confirmed = rsvp.status is RSVPStatus.CONFIRMED
        rsvp.status = RSVPStatus.CANCELLED
        rsvp.cancelled_at = utcnow()
        db.flush()

        promoted = promote_waitlisted(db, event, limit=1) if was_confirmed else []
        return rsvp, (promoted[0] if promoted else None)

    rsvp, promoted = run_in_transaction(
        db, _cancel, name="rsvp_cancel", event_id=str(event_id), member_id=str(member_id)
    )

    logger.info(
        "rsvp_cancelled",
        rsvp_id=str(rsvp.id),
        event_id=str(rsvp.event_id),
        member_id=str(member_id),
    )
    summary_cache.invalidate_event_summary(rsvp.event_id)
    notify_rsvp(dispatcher, NotificationKind.RSVP_CANCELLED, rsvp)
    if promoted:
        logger.info(
            "rsvp_promoted",
            rsvp_id=str(promoted.id),
            event_id=str(promoted.event_id),
            member_id=str(promoted.member_id),
        )
        notify_rsvp(dispatcher, NotificationKind.RSVP_PROMOTED, promoted)

    return CancelResult(
        rsvp=rsvp,
        promoted=promoted,
        message=(
            "RSVP cancelled successfully. A waitlisted attendee has been promoted."
            if promoted
            else "RSVP cancelled successfully"
        ),
    )


def list_for_event(
    db: Session,
    event_id: Any,
    status: RSVPStatus | None = None,
) -> EventRoster:
    event = db.get(Event, event_id)
    if not event:
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND.value, "event not found")

    rsvps = list(
        db.scalars(
            select(RSVP)
            .where(RSVP.event_id == event.id)
            .order_by(RSVP.created_at.asc(), RSVP.id.asc())
        ).all()
    )
    counts = Counter(r.status for r in rsvps)
    confirmed = counts[RSVPStatus.CONFIRMED]

    return EventRoster(
        event=event,
        rsvps=[r for r in rsvps if status is None or r.status == status],
        total=len(rsvps),
        confirmed_count=confirmed,
        waitlisted_count=counts[RSVPStatus.WAITLISTED],
        cancelled_count=counts[RSVPStatus.CANCELLED],
        available_spots=capacity.available_spots(event.max_capacity, confirmed),
    )


def list_for_member(db: Session, member: Member) -> list[RSVP]:
    return list(
        db.scalars(
            select(RSVP)
            .where(RSVP.member_id == member.id)
            .order_by(RSVP.created_at.desc(), RSVP.id.desc())
        ).all()
    )
