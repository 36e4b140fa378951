import logging
import time
from typing import Callable

import redis.asyncio as redis
from fastapi import Request
from redis.exceptions import RedisError

from newsroom.config import settings
from newsroom.errors import TooManyRequestsError
from newsroom.middleware import client_ip

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 60

MESSAGES = {
    "api": "Too many requests from this IP, please try again later.",
    "auth": "Too many authentication attempts, please try again later.",
    "upload": "Too many upload attempts, please try again later.",
}


class RateLimiter:
    """
    Fixed-window request counter backed by Redis.

    Each ``(scope, client)`` pair gets a key that lives for one window; the
    first hit creates it with an expiry and later hits only increment it.
    When Redis is not reachable the counts are kept in process memory
    instead, which is exact for a single worker and approximate otherwise.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._redis: redis.Redis | None = None
        self._local: dict[str, tuple[int, float]] = {}
        self._clock = clock
        self._next_sweep = 0.0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as exc:
            logger.warning("Redis ping failed, rate limits kept in memory: %s", exc)
            await client.aclose()
            return
        self._redis = client
        logger.info("Redis connected: %s", settings.REDIS_URL)

    async def disconnect(self) -> None:
        """Close the connection pool.  Called once at application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Counting
    # ------------------------------------------------------------------

    async def hit(self, key: str, window: int) -> tuple[int, int]:
        """
        Count one request against *key*.

        Returns ``(count, seconds_until_reset)`` for the current window.
        """
        if self._redis is not None:
            try:
                return await self._hit_redis(key, window)
            except (RedisError, OSError) as exc:
                logger.warning("Rate limit counter unavailable, using memory: %s", exc)
        return self._hit_local(key, window)

    async def _hit_redis(self, key: str, window: int) -> tuple[int, int]:
        count = await self._redis.incr(key)
        if count == 1:
            await self._redis.expire(key, window)
            return count, window
        ttl = await self._redis.ttl(key)
        if ttl < 0:
            # Key survived without an expiry (crash between INCR and EXPIRE).
            await self._redis.expire(key, window)
            ttl = window
        return count, ttl

    def _hit_local(self, key: str, window: int) -> tuple[int, int]:
        now = self._clock()
        if now >= self._next_sweep:
            self._sweep(now)
        count, reset_at = self._local.get(key, (0, 0.0))
        if now >= reset_at:
            count, reset_at = 0, now + window
        count += 1
        self._local[key] = (count, reset_at)
        return count, max(int(reset_at - now), 0)

    def _sweep(self, now: float) -> None:
        """Drop every window that has already ended."""
        self._local = {k: v for k, v in self._local.items() if v[1] > now}
        self._next_sweep = now + SWEEP_INTERVAL_SECONDS

    def reset(self) -> None:
        self._local.clear()
        self._next_sweep = 0.0

    @property
    def backend(self) -> str:
        return "redis" if self._redis is not None else "memory"


# Module-level singleton shared across all request handlers.
limiter = RateLimiter()


def _client_key(request: Request) -> str:
    return client_ip(request.scope)


def rate_limit(scope: str, max_requests: int | None = None, window: int | None = None):
    """
    Build a dependency enforcing *max_requests* per window for *scope*.

    Limits are read from settings at request time so configuration changes
    made by tests or at startup are honoured.
    """

    async def dependency(request: Request) -> None:
        if not settings.rate_limit_active:
            return
        limit = max_requests if max_requests is not None else _default_limit(scope)
        seconds = window or settings.RATE_LIMIT_WINDOW_SECONDS
        count, retry_after = await limiter.hit(f"ratelimit:{scope}:{_client_key(request)}", seconds)
        if count > limit:
            raise TooManyRequestsError(MESSAGES.get(scope), retry_after=retry_after)

    return dependency


def _default_limit(scope: str) -> int:
    if scope == "auth":
        return settings.AUTH_RATE_LIMIT_MAX_REQUESTS
    if scope == "upload":
        return settings.UPLOAD_RATE_LIMIT_MAX_REQUESTS
    return settings.RATE_LIMIT_MAX_REQUESTS


api_rate_limit = rate_limit("api")
auth_rate_limit = rate_limit("auth")
upload_rate_limit = rate_limit("upload")
