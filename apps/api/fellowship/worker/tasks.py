import uuid

from celery.utils.log import get_task_logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from fellowship.db import SessionLocal
from fellowship.models import Event, Member
from fellowship.services.notifications import NOTIFY_TASK_NAME, NotificationKind
from fellowship.worker.celery_app import celery_app

logger = get_task_logger(__name__)

SUBJECTS = {
    NotificationKind.RSVP_CONFIRMED: "RSVP Confirmed: {title}",
    NotificationKind.RSVP_WAITLISTED: "Waitlisted: {title}",
    NotificationKind.RSVP_PROMOTED: "You're in: {title}",
    NotificationKind.RSVP_CANCELLED: "RSVP Cancelled: {title}",
    NotificationKind.EVENT_CANCELLED: "Event Cancelled: {title}",
}


def _recipient_ids(payload: dict) -> list[uuid.UUID]:
    if "member_ids" in payload:
        return [uuid.UUID(m) for m in payload["member_ids"]]
    return [uuid.UUID(payload["member_id"])]


def compose_notifications(db: Session, kind: NotificationKind, payload: dict) -> list[dict]:
    event = db.get(Event, uuid.UUID(payload["event_id"]))
    if event is None:
        return []

    members = db.scalars(select(Member).where(Member.id.in_(_recipient_ids(payload)))).all()
    subject = SUBJECTS[kind].format(title=event.title)
    return [
        {
            "to": member.email,
            "name": member.display_name,
            "subject": subject,
            "event_id": str(event.id),
            "kind": kind.value,
        }
        for member in members
    ]


@celery_app.task(name=NOTIFY_TASK_NAME)
def notify(kind: str, payload: dict) -> dict:
    db: Session = SessionLocal()
    try:
        messages = compose_notifications(db, NotificationKind(kind), payload)
        for message in messages:
            # Delivery adapters (email, push) consume this log stream
            logger.info(
                "notification_ready kind=%s to=%s subject=%s",
                message["kind"],
                message["to"],
                message["subject"],
            )
        return {"kind": kind, "recipients": len(messages)}
    finally:
        db.close()
