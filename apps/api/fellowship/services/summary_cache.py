"""Best-effort Redis cache for the public RSVP summary of an event.

Cached values only serve reads; create and cancel always recount inside
their own transaction.
"""

from __future__ import annotations

import json
from typing import Any

import structlog
from redis.exceptions import RedisError
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fellowship.core.config import settings
from fellowship.models import RSVP, Event, RSVPStatus
from fellowship.redis_client import get_redis
from fellowship.services import capacity

logger = structlog.get_logger(__name__)


def _key(event_id: Any) -> str:
    return f"event:summary:{event_id}"


def compute_summary(db: Session, event: Event) -> dict[str, Any]:
    rows = db.execute(
        select(RSVP.status, func.count())
        .where(RSVP.event_id == event.id)
        .group_by(RSVP.status)
    ).all()
    counts = {status: count for status, count in rows}
    confirmed = int(counts.get(RSVPStatus.CONFIRMED, 0))
    return {
        "confirmed_count": confirmed,
        "waitlisted_count": int(counts.get(RSVPStatus.WAITLISTED, 0)),
        "max_capacity": event.max_capacity,
        "available_spots": capacity.available_spots(event.max_capacity, confirmed),
    }


def get_event_summary(db: Session, event: Event) -> dict[str, Any]:
    if not settings.event_summary_cache_enabled:
        return compute_summary(db, event)

    key = _key(event.id)
    try:
        cached = get_redis().get(key)
        if cached:
            return json.loads(cached)
    except RedisError:
        pass

    # A write committing between this read and the setex can leave a stale
    # summary for up to the TTL; only public reads see it.
    summary = compute_summary(db, event)
    try:
        get_redis().setex(key, settings.event_summary_cache_ttl_seconds, json.dumps(summary))
    except RedisError:
        pass
    return summary


def invalidate_event_summary(event_id: Any) -> None:
    if not settings.event_summary_cache_enabled:
        return
    try:
        get_redis().delete(_key(event_id))
    except RedisError as exc:
        # Stale for at most the TTL
        logger.warning("summary_cache_invalidate_failed", event_id=str(event_id), error=str(exc))
