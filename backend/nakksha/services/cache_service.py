# backend/nakksha/services/cache_service.py
"""
Dedicated Cache Service for Nakksha

Centralizes caching logic with proper key management, invalidation
strategies, and a circuit breaker around Redis. When Redis is missing or
failing, reads miss and writes fall back to a per-instance memory store, so
callers always get correct (possibly uncached) results.
"""

from datetime import date, datetime, timedelta
from enum import Enum
import fnmatch
import json
import logging
import threading
from typing import Any, Callable, Dict, Optional, TypeVar, Union

from fastapi import Depends
import redis
from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..database import get_db
from .base import BaseService

logger = logging.getLogger(__name__)


T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing if service recovered


class CircuitBreaker:
    """
    Circuit breaker pattern implementation for cache resilience.

    Prevents cascading failures when cache is unavailable.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        expected_exception: type[BaseException] = RedisError,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception

        self._failure_count: int = 0
        self._last_failure_time: Optional[datetime] = None
        self._state: CircuitState = CircuitState.CLOSED
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        with self._lock:
            if self._state == CircuitState.OPEN and self._last_failure_time:
                time_since_failure = (datetime.now() - self._last_failure_time).total_seconds()
                if time_since_failure >= self.recovery_timeout:
                    self._state = CircuitState.HALF_OPEN
            return self._state

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> Optional[T]:
        """
        Execute function with circuit breaker protection.

        Returns:
            Function result or None if circuit is open

        Raises:
            Exception if function fails and circuit allows
        """
        if self.state == CircuitState.OPEN:
            logger.warning(f"Circuit breaker is OPEN, skipping {func.__name__}")
            return None

        try:
            result = func(*args, **kwargs)
            self._on_success()
            return result
        except self.expected_exception:
            self._on_failure()
            if self.state == CircuitState.CLOSED:
                # Still under threshold, propagate error
                raise
            return None

    def _on_success(self) -> None:
        with self._lock:
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                logger.info("Circuit breaker recovered, closing circuit")

    def _on_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = datetime.now()

            if self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                logger.warning(f"Circuit breaker opened after {self._failure_count} failures")


class CacheKeyBuilder:
    """Standardized cache key generation."""

    # Key prefixes for different domains
    PREFIXES = {
        "availability": "avail",
    }

    @staticmethod
    def build(*parts: Union[str, int, date, None]) -> str:
        """
        Build a cache key from parts.

        Examples:
            build('availability', 'slots', 'dr-rao', '2025-06-18') -> 'avail:slots:dr-rao:2025-06-18'
        """
        formatted_parts = []

        for part in parts:
            if isinstance(part, (date, datetime)):
                formatted_parts.append(part.isoformat())
            else:
                formatted_parts.append(str(part))

        if parts:
            first = parts[0]
            if isinstance(first, str) and first in CacheKeyBuilder.PREFIXES:
                formatted_parts[0] = CacheKeyBuilder.PREFIXES[first]

        return ":".join(formatted_parts)


class CacheService(BaseService):
    """
    Centralized caching service.

    Values are JSON-serialized; dates come back as ISO strings.
    """

    # TTL Tiers (in seconds)
    TTL_TIERS = {
        "hot": 30,  # public slot listings
        "warm": 180,  # pattern lists
        "cold": 3600,
    }

    def __init__(self, db: Optional[Session] = None, redis_client: Optional[Redis] = None):
        super().__init__(db)  # type: ignore[arg-type]
        self.logger = logging.getLogger(__name__)

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=5, recovery_timeout=60, expected_exception=RedisError
        )
        self.key_builder = CacheKeyBuilder()

        # In-memory fallbacks
        self._memory_cache: Dict[str, Any] = {}
        self._memory_expiry: Dict[str, datetime] = {}

        self.redis: Optional[Redis] = redis_client
        self._stats: Dict[str, int] = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
            "errors": 0,
        }

    # Core Cache Operations

    @BaseService.measure_operation("cache_get")
    def get(self, key: str) -> Optional[Any]:
        """Get value from cache with circuit breaker protection."""

        redis_client = self.redis

        def _get_from_redis() -> Optional[Any]:
            assert redis_client is not None
            value = redis_client.get(key)
            if value is not None:
                return json.loads(value)
            return None

        try:
            if redis_client and self.circuit_breaker.state != CircuitState.OPEN:
                value = self.circuit_breaker.call(_get_from_redis)
                if value is not None:
                    self._stats["hits"] += 1
                    return value
            elif redis_client is None and key in self._memory_cache:
                expires_at = self._memory_expiry.get(key)
                if expires_at is None or datetime.now() < expires_at:
                    self._stats["hits"] += 1
                    return self._memory_cache[key]
                del self._memory_cache[key]
                self._memory_expiry.pop(key, None)

            self._stats["misses"] += 1
            return None

        except Exception as e:
            logger.error(f"Cache get error for key {key}: {e}")
            self._stats["errors"] += 1
            return None

    @BaseService.measure_operation("cache_set")
    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        tier: str = "warm",
    ) -> bool:
        """Set value in cache with circuit breaker protection."""

        redis_client = self.redis
        if ttl is None:
            ttl = self.TTL_TIERS.get(tier, self.TTL_TIERS["warm"])

        try:
            serialized = json.dumps(value, default=str)

            if redis_client and self.circuit_breaker.state != CircuitState.OPEN:

                def _set_in_redis() -> bool:
                    redis_client.setex(key, ttl, serialized)
                    return True

                if self.circuit_breaker.call(_set_in_redis):
                    self._stats["sets"] += 1
                    return True
            elif redis_client is None:
                # Store the decoded copy so memory hits look like Redis hits
                self._memory_cache[key] = json.loads(serialized)
                self._memory_expiry[key] = datetime.now() + timedelta(seconds=ttl)
                self._stats["sets"] += 1
                return True

            return False

        except Exception as e:
            logger.error(f"Cache set error for key {key}: {e}")
            self._stats["errors"] += 1
            return False

    @BaseService.measure_operation("cache_delete")
    def delete(self, key: str) -> bool:
        """Delete a key from cache with circuit breaker protection."""

        redis_client = self.redis

        def _delete_from_redis() -> bool:
            assert redis_client is not None
            return bool(redis_client.delete(key))

        try:
            if redis_client and self.circuit_breaker.state != CircuitState.OPEN:
                if self.circuit_breaker.call(_delete_from_redis):
                    self._stats["deletes"] += 1
                    return True
            elif redis_client is None:
                result = key in self._memory_cache
                self._memory_cache.pop(key, None)
                self._memory_expiry.pop(key, None)
                if result:
                    self._stats["deletes"] += 1
                return result

            return False

        except Exception as e:
            logger.error(f"Cache delete error for key {key}: {e}")
            self._stats["errors"] += 1
            return False

    @BaseService.measure_operation("cache_delete_pattern")
    def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern."""
        try:
            if self.redis:
                count = 0
                for key in self.redis.scan_iter(match=pattern):
                    if self.redis.delete(key):
                        count += 1
            else:
                keys_to_delete = [k for k in self._memory_cache if fnmatch.fnmatch(k, pattern)]
                for key in keys_to_delete:
                    self._memory_cache.pop(key, None)
                    self._memory_expiry.pop(key, None)
                count = len(keys_to_delete)

            self._stats["deletes"] += count
            logger.debug(f"Deleted {count} keys matching pattern: {pattern}")
            return count

        except Exception as e:
            logger.error(f"Cache delete pattern error: {e}")
            self._stats["errors"] += 1
            return 0

    # Domain-Specific Keys

    def public_slots_key(
        self,
        consultant_identifier: str,
        session_type: Optional[str],
        start_date: Optional[date],
        end_date: Optional[date],
        limit: int,
        offset: int,
    ) -> str:
        return self.key_builder.build(
            "availability",
            "slots",
            consultant_identifier,
            session_type or "all",
            start_date or "today",
            end_date or "default",
            limit,
            offset,
        )

    def patterns_key(self, consultant_id: str) -> str:
        return self.key_builder.build("availability", "patterns", consultant_id)

    def invalidate_consultant_availability(
        self, consultant_id: str, slug: Optional[str] = None
    ) -> int:
        """
        Drop every cached availability view of a consultant.

        Public listings are keyed by whatever identifier the client used, so
        both the id and the slug namespaces are cleared.
        """
        count = self.delete_pattern(self.key_builder.build("availability", "slots", consultant_id, "*"))
        if slug:
            count += self.delete_pattern(self.key_builder.build("availability", "slots", slug, "*"))
        if self.delete(self.patterns_key(consultant_id)):
            count += 1
        return count

    def get_stats(self) -> Dict[str, Any]:
        total_reads = self._stats["hits"] + self._stats["misses"]
        return {
            **self._stats,
            "hit_rate": (self._stats["hits"] / total_reads) if total_reads else 0.0,
            "backend": "redis" if self.redis else "memory",
            "circuit_state": self.circuit_breaker.state.value,
        }


def create_redis_client() -> Optional[Redis]:
    """Connect to Redis, or return None when it is disabled or unreachable."""
    if not settings.redis_url:
        return None
    try:
        client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=2,
            health_check_interval=30,
        )
        client.ping()
        return client
    except (RedisError, OSError) as e:
        logger.warning(f"Redis not available: {e}. Using in-memory fallback.")
        return None


def get_cache_service(db: Session = Depends(get_db)) -> CacheService:
    """
    Get cache service instance for dependency injection.

    Args:
        db: Database session from FastAPI dependency

    Returns:
        CacheService: Fresh cache service instance
    """
    return CacheService(db, create_redis_client())
