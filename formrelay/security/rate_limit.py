"""Sliding-window rate limiter for public form submissions.

Events for a key live in a shared counter store (a Redis sorted set in
production). Every check atomically purges events older than the window,
counts what is left and records a new event only when the count is below the
limit, so concurrent callers on the same key never admit more than ``limit``.

Failure policy: when the counter store errors the limiter ALLOWS the request
and logs a warning (fail-open). An outage of the counter store must not take
submission intake down with it; CAPTCHA verification is the fail-closed layer.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

_CONSUME_SCRIPT = """
local key = KEYS[1]
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, '-inf', '(' .. ARGV[5])
local count = redis.call('ZCARD', key)
local recorded = 0
if count < limit then
  redis.call('ZADD', key, ARGV[1], ARGV[4])
  recorded = 1
end
redis.call('PEXPIRE', key, math.ceil(window * 1000))
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local oldest_score = ''
if oldest[2] then
  oldest_score = oldest[2]
end
return {count, recorded, oldest_score}
"""


@dataclass(frozen=True)
class WindowCount:
    """Outcome of one atomic purge/count/record step."""

    count: int  # events in the window before this call
    recorded: bool
    oldest: float | None  # timestamp of the oldest event still in the window


class CounterStore(Protocol):
    async def consume(
        self, key: str, now: float, window_seconds: float, limit: int
    ) -> WindowCount: ...

    async def peek(self, key: str) -> tuple[int, float | None]: ...

    async def delete(self, key: str) -> None: ...

    async def close(self) -> None: ...


class MemoryCounterStore:
    """Process-local store for development and tests.

    Not shared between processes; production deployments use RedisCounterStore.
    Idle keys are swept from inside ``consume`` at most once per
    ``sweep_interval`` seconds.
    """

    def __init__(self, sweep_interval: float = 60.0) -> None:
        self._events: dict[str, deque[float]] = defaultdict(deque)
        self._windows: dict[str, float] = {}
        self._lock = asyncio.Lock()
        self._sweep_interval = sweep_interval
        self._last_sweep: float | None = None

    async def consume(
        self, key: str, now: float, window_seconds: float, limit: int
    ) -> WindowCount:
        async with self._lock:
            if self._last_sweep is None or now - self._last_sweep >= self._sweep_interval:
                self._sweep(now)

            events = self._events[key]
            self._windows[key] = window_seconds
            cutoff = now - window_seconds
            while events and events[0] < cutoff:
                events.popleft()

            count = len(events)
            recorded = count < limit
            if recorded:
                events.append(now)
            if not events:
                del self._events[key]
                self._windows.pop(key, None)
            return WindowCount(count=count, recorded=recorded, oldest=events[0] if events else None)

    async def peek(self, key: str) -> tuple[int, float | None]:
        events = self._events.get(key)
        if not events:
            return 0, None
        return len(events), events[0]

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._events.pop(key, None)
            self._windows.pop(key, None)

    def _sweep(self, now: float) -> int:
        self._last_sweep = now
        removed = 0
        for key in list(self._events):
            events = self._events[key]
            window = self._windows.get(key, 0.0)
            if not events or events[-1] < now - window:
                del self._events[key]
                self._windows.pop(key, None)
                removed += 1
        return removed

    async def sweep(self, now: float | None = None) -> int:
        """Drop keys whose newest event has aged out. Returns keys removed."""
        now = time.time() if now is None else now
        async with self._lock:
            return self._sweep(now)

    async def close(self) -> None:
        return None


class RedisCounterStore:
    """Sorted-set store; one Lua script makes each check atomic."""

    def __init__(self, client, prefix: str = "") -> None:
        self._client = client
        self._prefix = prefix
        self._script = client.register_script(_CONSUME_SCRIPT)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def consume(
        self, key: str, now: float, window_seconds: float, limit: int
    ) -> WindowCount:
        member = f"{now:.6f}-{uuid.uuid4().hex}"
        count, recorded, oldest = await self._script(
            keys=[self._key(key)],
            args=[repr(now), repr(float(window_seconds)), limit, member, repr(now - window_seconds)],
        )
        return WindowCount(
            count=int(count),
            recorded=bool(int(recorded)),
            oldest=float(oldest) if oldest else None,
        )

    async def peek(self, key: str) -> tuple[int, float | None]:
        redis_key = self._key(key)
        count = await self._client.zcard(redis_key)
        if not count:
            return 0, None
        oldest = await self._client.zrange(redis_key, 0, 0, withscores=True)
        return int(count), float(oldest[0][1]) if oldest else None

    async def delete(self, key: str) -> None:
        await self._client.delete(self._key(key))

    async def close(self) -> None:
        await self._client.aclose()


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds when the oldest counted event leaves the window
    retry_after: int | None = None

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after or 1)
        return headers


@dataclass(frozen=True)
class RateLimitStatus:
    count: int
    remaining: int
    reset_at: float | None


class SlidingWindowRateLimiter:
    """Trailing-window request counter keyed by arbitrary strings."""

    def __init__(self, store: CounterStore, clock: Callable[[], float] = time.time) -> None:
        self.store = store
        self._clock = clock

    async def consume(self, key: str, limit: int, window_minutes: float) -> RateLimitDecision:
        now = self._clock()
        window = window_minutes * 60
        try:
            result = await self.store.consume(key, now, window, limit)
        except Exception as exc:
            # Fail-open, see module docstring.
            logger.warning("Rate limit store unavailable for %s, allowing request: %s", key, exc)
            return RateLimitDecision(allowed=True, limit=limit, remaining=limit, reset_at=now + window)

        reset_at = (result.oldest if result.oldest is not None else now) + window
        if result.recorded:
            return RateLimitDecision(
                allowed=True,
                limit=limit,
                remaining=max(0, limit - result.count - 1),
                reset_at=reset_at,
            )
        return RateLimitDecision(
            allowed=False,
            limit=limit,
            remaining=0,
            reset_at=reset_at,
            retry_after=max(1, math.ceil(reset_at - now)),
        )

    async def check_and_consume(self, key: str, limit: int, window_minutes: float) -> bool:
        return (await self.consume(key, limit, window_minutes)).allowed

    async def status(self, key: str, limit: int, window_minutes: float) -> RateLimitStatus | None:
        """Read-only view of a key; may include events that already aged out."""
        try:
            count, oldest = await self.store.peek(key)
        except Exception as exc:
            logger.warning("Rate limit store unavailable for %s: %s", key, exc)
            return None
        if not count:
            return None
        return RateLimitStatus(
            count=count,
            remaining=max(0, limit - count),
            reset_at=oldest + window_minutes * 60 if oldest is not None else None,
        )

    async def reset(self, key: str) -> None:
        await self.store.delete(key)


def create_counter_store(redis_url: str, prefix: str = "") -> CounterStore:
    """Redis store when a URL is configured, else the process-local store."""
    if redis_url:
        import redis.asyncio as redis

        client = redis.from_url(redis_url, decode_responses=True)
        logger.info("Using Redis counter store for rate limiting")
        return RedisCounterStore(client, prefix=prefix)

    logger.warning(
        "FR_REDIS_URL not set; using in-process rate limit counters (single instance only)"
    )
    return MemoryCounterStore()
