"""
Redis Connection Management

Redis backs one thing here: the per-client request counter behind the
rate limiter. Conversation state is client-held, so a Redis outage costs
rate limiting and nothing else; every caller fails open.

After a failed connect the next attempt waits RECONNECT_COOLDOWN_SECONDS
so a dead Redis doesn't add a connect timeout to every request.
"""

import logging
import time
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import RedisError

from app.config import settings

logger = logging.getLogger(__name__)

# Namespace so several deployments can share one Redis
APP_PREFIX = "scheduler:v1:"

RECONNECT_COOLDOWN_SECONDS = 30.0


class RedisClient:
    """Process-wide Redis connection, created on first use."""

    _client: Optional[Redis] = None
    _next_attempt_at: float = 0.0

    @classmethod
    async def get_client(cls) -> Optional[Redis]:
        """Connected client, or None while Redis is unreachable."""
        if cls._client is not None:
            return cls._client
        if time.monotonic() < cls._next_attempt_at:
            return None

        client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=2.0,
            socket_timeout=2.0,
            retry=Retry(ExponentialBackoff(cap=1.0), retries=1),
        )
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            cls._next_attempt_at = time.monotonic() + RECONNECT_COOLDOWN_SECONDS
            logger.error(f"Redis unreachable ({e}); next attempt in {RECONNECT_COOLDOWN_SECONDS:.0f}s")
            await client.aclose()
            return None

        cls._client = client
        logger.info("Redis connection established")
        return client

    @classmethod
    async def close(cls) -> None:
        client, cls._client = cls._client, None
        cls._next_attempt_at = 0.0
        if client is None:
            return
        try:
            await client.aclose()
            logger.info("Redis connection closed")
        except RedisError as e:
            logger.error(f"Error closing Redis connection: {e}")

    @classmethod
    def is_connected(cls) -> bool:
        return cls._client is not None


async def get_redis() -> Optional[Redis]:
    """FastAPI dependency that provides the Redis client (None when unavailable)."""
    return await RedisClient.get_client()


class RateLimiterStore:
    """
    Fixed-window request counter per client.

    Key: scheduler:v1:ratelimit:{identifier}, expiring one window after the
    first request in it. Fails open when Redis is missing or errors.
    """

    RATELIMIT_PREFIX = f"{APP_PREFIX}ratelimit:"

    def __init__(
        self,
        redis_client: Optional[Redis],
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ):
        self.redis = redis_client
        self.max_requests = max_requests or settings.rate_limit_requests
        self.window_seconds = window_seconds or settings.rate_limit_window

    def _key(self, identifier: str) -> str:
        return f"{self.RATELIMIT_PREFIX}{identifier}"

    def _allow(self) -> tuple[bool, int, int]:
        return (True, self.max_requests, self.window_seconds)

    async def is_allowed(self, identifier: str) -> tuple[bool, int, int]:
        """
        Count this request against the client's window.

        Args:
            identifier: Client key, e.g. "ip:203.0.113.7"

        Returns:
            (allowed, remaining, seconds until the window resets)
        """
        if self.redis is None:
            return self._allow()

        key = self._key(identifier)
        try:
            count = await self.redis.incr(key)
            if count == 1:
                await self.redis.expire(key, self.window_seconds)
            ttl = await self.redis.ttl(key)
        except RedisError as e:
            logger.error(f"Rate limit check failed for {identifier}, allowing: {e}")
            return self._allow()

        # -1: key lost its expiry; -2: key vanished between calls
        reset_seconds = ttl if ttl >= 0 else self.window_seconds
        return (count <= self.max_requests, max(0, self.max_requests - count), reset_seconds)


async def get_rate_limiter_store() -> RateLimiterStore:
    return RateLimiterStore(await get_redis())


async def check_redis_health() -> bool:
    """True if Redis answers a PING."""
    client = await get_redis()
    if client is None:
        return False
    try:
        return bool(await client.ping())
    except RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        return False
