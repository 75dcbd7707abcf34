"""Domain notifications for RSVP and event lifecycle changes.

Services publish after their transaction commits. Delivery happens in a
Celery worker; a broker outage is logged and never fails the request.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Any, Protocol

import structlog
from kombu.exceptions import KombuError
from redis.exceptions import RedisError

from fellowship.core.config import settings

logger = structlog.get_logger(__name__)

NOTIFY_TASK_NAME = "fellowship.notify"


class NotificationKind(str, Enum):
    RSVP_CONFIRMED = "rsvp.confirmed"
    RSVP_WAITLISTED = "rsvp.waitlisted"
    RSVP_PROMOTED = "rsvp.promoted"
    RSVP_CANCELLED = "rsvp.cancelled"
    EVENT_CANCELLED = "event.cancelled"


class NotificationDispatcher(Protocol):
    def publish(self, kind: NotificationKind, payload: dict[str, Any]) -> None: ...


class CeleryNotificationDispatcher:
    def publish(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        if not settings.notifications_enabled:
            return

        # Import lazily so the API does not configure Celery until it publishes
        from fellowship.worker.celery_app import celery_app

        try:
            celery_app.send_task(NOTIFY_TASK_NAME, args=[kind.value, payload], retry=False)
        except (KombuError, RedisError, OSError) as exc:
            logger.warning("notification_enqueue_failed", kind=kind.value, error=str(exc))
            return
        logger.info("notification_enqueued", kind=kind.value)


class NullNotificationDispatcher:
    def publish(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        return None


@lru_cache(maxsize=1)
def get_dispatcher() -> NotificationDispatcher:
    if not settings.notifications_enabled:
        return NullNotificationDispatcher()
    return CeleryNotificationDispatcher()
