"""
Per-consultant advisory lock for pattern replacement.

Bulk pattern replacement deletes and recreates every pattern of a consultant,
so two concurrent replaces must not interleave. The lock is a Redis key set
with NX and a TTL whose value is a token unique to the holder. Release
deletes the key only while it still holds that token, so a holder whose TTL
ran out cannot drop a lock someone else has since taken. When Redis is
unreachable the lock fails open and the consultant row lock taken by every
pattern mutation remains the guard.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
from typing import Iterator, Optional

from redis import Redis

from ..monitoring.prometheus_metrics import prometheus_metrics
from .config import settings
from .ulid_helper import generate_ulid

logger = logging.getLogger(__name__)

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()

# Delete the key only if it still holds the caller's token.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def _lock_key(consultant_id: str) -> str:
    return f"pattern_update_lock:{consultant_id}"


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    if not settings.redis_url:
        return None
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=2,
            )
            client.ping()
        except Exception as exc:
            logger.warning("pattern_lock_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def acquire_pattern_lock(consultant_id: str, token: str, ttl_s: Optional[int] = None) -> bool:
    ttl = ttl_s or settings.pattern_lock_ttl_seconds
    client = _get_sync_redis()
    if client is None:
        prometheus_metrics.record_pattern_lock("acquire", "redis_unavailable")
        logger.warning(
            "pattern_lock_redis_unavailable",
            extra={"consultant_id": consultant_id},
        )
        return True
    try:
        acquired = bool(client.set(_lock_key(consultant_id), token, nx=True, ex=ttl))
        prometheus_metrics.record_pattern_lock("acquire", "success" if acquired else "blocked")
        return acquired
    except Exception as exc:
        prometheus_metrics.record_pattern_lock("acquire", "error")
        logger.warning(
            "pattern_lock_acquire_failed",
            extra={
                "consultant_id": consultant_id,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
        return True


def release_pattern_lock(consultant_id: str, token: str) -> None:
    client = _get_sync_redis()
    if client is None:
        return
    try:
        deleted = client.eval(_RELEASE_SCRIPT, 1, _lock_key(consultant_id), token)
        prometheus_metrics.record_pattern_lock("release", "success" if deleted else "not_found")
    except Exception as exc:
        prometheus_metrics.record_pattern_lock("release", "error")
        logger.warning(
            "pattern_lock_release_failed",
            extra={
                "consultant_id": consultant_id,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )


@contextmanager
def pattern_lock(consultant_id: str, ttl_s: Optional[int] = None) -> Iterator[bool]:
    token = generate_ulid()
    acquired = acquire_pattern_lock(consultant_id, token, ttl_s=ttl_s)
    try:
        yield acquired
    finally:
        if acquired:
            release_pattern_lock(consultant_id, token)
