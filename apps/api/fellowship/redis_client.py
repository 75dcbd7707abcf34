from __future__ import annotations

from redis import Redis
from redis.connection import ConnectionPool

from fellowship.core.config import settings

_pool: ConnectionPool | None = None


def get_redis() -> Redis:
    global _pool
    if _pool is None:
        # Short timeouts: Redis only backs best-effort paths (cache, rate limit)
        _pool = ConnectionPool.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.redis_socket_timeout_seconds,
            socket_connect_timeout=settings.redis_socket_timeout_seconds,
        )
    return Redis(connection_pool=_pool)
