from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from fellowship.core.config import settings
from fellowship.services.error_codes import ErrorCode
from fellowship.services.exceptions import ServiceError, TransientError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
_RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03"}


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    # psycopg 3 exposes sqlstate, psycopg2 pgcode
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_retryable(exc: DBAPIError) -> bool:
    if exc.connection_invalidated:
        return True
    if _sqlstate(exc) in _RETRYABLE_SQLSTATES:
        return True
    return isinstance(exc, OperationalError) and "database is locked" in str(exc.orig).lower()


def run_in_transaction(
    db: Session,
    operation: Callable[[], T],
    *,
    name: str,
    **log_context: Any,
) -> T:
    """Run ``operation`` and commit, retrying storage conflicts a bounded number of times.

    Every failed attempt is rolled back. Service errors and integrity errors
    propagate unchanged after the rollback; conflicts that survive the retry
    budget surface as ``TransientError``.
    """
    attempts = max(1, settings.rsvp_max_retries)
    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            db.commit()
            return result
        except (ServiceError, IntegrityError):
            db.rollback()
            raise
        except DBAPIError as exc:
            db.rollback()
            if not is_retryable(exc):
                logger.exception("transaction_failed", operation=name, **log_context)
                raise TransientError(
                    ErrorCode.STORAGE_UNAVAILABLE.value, "storage error, please retry"
                ) from exc
            if attempt == attempts:
                logger.warning(
                    "transaction_conflict_exhausted",
                    operation=name,
                    attempts=attempts,
                    **log_context,
                )
                raise TransientError(
                    ErrorCode.TRANSACTION_CONFLICT.value,
                    "concurrent update conflict, please retry",
                ) from exc
            logger.info(
                "transaction_retry",
                operation=name,
                attempt=attempt,
                sqlstate=_sqlstate(exc),
                **log_context,
            )
            time.sleep(settings.rsvp_retry_backoff_seconds * attempt)

    raise AssertionError("unreachable")
