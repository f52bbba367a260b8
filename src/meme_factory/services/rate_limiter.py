"""Per-client request rate limiting."""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import redis.asyncio as redis

from ..config.config import Settings
from ..models.meme import RateLimitResult
from ..utils.logging import get_logger

logger = get_logger(__name__)


def _as_datetime(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


@dataclass
class RateWindowEntry:
    """Request count for one client within its current window."""

    count: int
    window_start: float


class RateLimiter(ABC):
    """Sliding-window limiter keyed by client identifier.

    The window restarts relative to the first request a client makes after
    its previous window elapsed, not on a fixed clock boundary.
    """

    def __init__(self, max_requests: int, window_seconds: int) -> None:
        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError("max_requests and window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    @abstractmethod
    async def check(self, client_id: str) -> RateLimitResult:
        """Record a request from ``client_id`` and decide whether it is allowed."""

    def sweep(self) -> int:
        """Drop state for clients whose window has elapsed. Returns entries removed."""
        return 0

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryRateLimiter(RateLimiter):
    """Process-local limiter.

    Only correct for a single process; use :class:`RedisRateLimiter` when
    several instances share a quota.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(max_requests, window_seconds)
        self._clock = clock
        self._entries: Dict[str, RateWindowEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def check(self, client_id: str) -> RateLimitResult:
        async with self._lock:
            now = self._clock()
            entry = self._entries.get(client_id)

            if entry is None or now - entry.window_start >= self.window_seconds:
                self._entries[client_id] = RateWindowEntry(count=1, window_start=now)
                return RateLimitResult(
                    allowed=True,
                    remaining=self.max_requests - 1,
                    reset_at=_as_datetime(now + self.window_seconds),
                )

            reset_at = _as_datetime(entry.window_start + self.window_seconds)
            if entry.count >= self.max_requests:
                logger.info("rate_limit_exceeded", client_id=client_id, count=entry.count)
                return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)

            entry.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=self.max_requests - entry.count,
                reset_at=reset_at,
            )

    def sweep(self) -> int:
        now = self._clock()
        expired = [
            client_id
            for client_id, entry in list(self._entries.items())
            if now - entry.window_start >= self.window_seconds
        ]
        for client_id in expired:
            self._entries.pop(client_id, None)
        if expired:
            logger.debug("rate_limit_sweep", removed=len(expired), remaining=len(self._entries))
        return len(expired)


# KEYS[1] = counter key, ARGV[1] = max requests, ARGV[2] = window seconds.
# Returns {allowed, count, ttl}; a denied request does not increment.
RATE_LIMIT_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if not current then
  redis.call('SET', KEYS[1], 1, 'EX', ARGV[2])
  return {1, 1, tonumber(ARGV[2])}
end
local ttl = redis.call('TTL', KEYS[1])
if ttl < 0 then
  redis.call('EXPIRE', KEYS[1], ARGV[2])
  ttl = tonumber(ARGV[2])
end
if tonumber(current) >= tonumber(ARGV[1]) then
  return {0, tonumber(current), ttl}
end
local count = redis.call('INCR', KEYS[1])
return {1, count, ttl}
"""


class RedisRateLimiter(RateLimiter):
    """Limiter backed by Redis, shared across processes.

    Each client's counter key expires with its window, so no sweep is needed.
    """

    def __init__(
        self,
        redis_client: Any,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "meme_factory:ratelimit:",
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(max_requests, window_seconds)
        self.redis = redis_client
        self.key_prefix = key_prefix
        self._clock = clock
        self._script = redis_client.register_script(RATE_LIMIT_SCRIPT)

    async def check(self, client_id: str) -> RateLimitResult:
        now = self._clock()
        try:
            allowed, count, ttl = await self._script(
                keys=[f"{self.key_prefix}{client_id}"],
                args=[self.max_requests, self.window_seconds],
            )
        except Exception as e:
            # Fail open while Redis is unreachable.
            logger.error("rate_limit_backend_error", client_id=client_id, error=str(e))
            return RateLimitResult(
                allowed=True,
                remaining=self.max_requests - 1,
                reset_at=_as_datetime(now + self.window_seconds),
            )

        reset_at = _as_datetime(now + int(ttl))
        if not int(allowed):
            logger.info("rate_limit_exceeded", client_id=client_id, count=int(count))
            return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)
        return RateLimitResult(
            allowed=True,
            remaining=max(0, self.max_requests - int(count)),
            reset_at=reset_at,
        )

    async def close(self) -> None:
        await self.redis.aclose()


def create_rate_limiter(settings: Settings, redis_client: Optional[Any] = None) -> RateLimiter:
    """
    Build the limiter configured by ``settings``.

    Args:
        settings: Application settings
        redis_client: Optional pre-built Redis client

    Returns:
        A Redis-backed limiter when ``REDIS_URL`` is set, else an in-memory one
    """
    if redis_client is None and settings.redis_url:
        logger.info("rate_limiter_backend", backend="redis", url=settings.redis_url)
        redis_client = redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)

    if redis_client is not None:
        return RedisRateLimiter(
            redis_client,
            max_requests=settings.rate_limit_max,
            window_seconds=settings.rate_limit_window,
        )

    logger.info("rate_limiter_backend", backend="memory")
    return InMemoryRateLimiter(
        max_requests=settings.rate_limit_max,
        window_seconds=settings.rate_limit_window,
    )

