"""
Per-client quotas for the expensive analysis endpoints.

Counts live in Redis when it is reachable so every worker shares them. When
Redis is down each worker falls back to its own fixed-window counters, and
windows that have run out are dropped on the next check.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Tuple, Union

from fastapi import HTTPException, Request
import redis.asyncio as redis
from redis.exceptions import RedisError

from config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "cfe:rate"
ANALYSIS_WINDOW_SECONDS = 60

QuotaLimit = Union[int, Callable[[], int]]

# key -> (requests counted, window end as a unix timestamp)
_local_counters: Dict[str, Tuple[int, float]] = {}
_local_lock = asyncio.Lock()


def _client_identifier(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return "unknown"


def _evict_expired(now: float) -> None:
    expired = [key for key, (_, window_end) in _local_counters.items() if window_end <= now]
    for key in expired:
        del _local_counters[key]


async def _consume_local_quota(key: str, limit: int, window_seconds: int) -> bool:
    now = time.time()
    async with _local_lock:
        _evict_expired(now)
        count, window_end = _local_counters.get(key, (0, now + window_seconds))
        count += 1
        _local_counters[key] = (count, window_end)
        return count <= limit


async def _consume_redis_quota(key: str, window_seconds: int) -> int:
    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        current = await client.incr(key)
        if current == 1:
            await client.expire(key, window_seconds)
        return current
    finally:
        await client.aclose()


async def consume_quota(prefix: str, client_id: str, limit: int, window_seconds: int) -> bool:
    """Count one request for ``client_id`` and report whether it is within ``limit``."""
    key = f"{KEY_PREFIX}:{prefix}:{client_id}"
    try:
        current = await _consume_redis_quota(key, window_seconds)
    except (RedisError, OSError, ValueError) as exc:
        logger.debug("Redis quota store unavailable (%s); counting %s locally", exc, key)
        return await _consume_local_quota(key, limit, window_seconds)
    return current <= limit


def rate_limit(prefix: str, limit: QuotaLimit, window_seconds: int) -> Callable[[Request], Awaitable[None]]:
    """FastAPI dependency enforcing ``limit`` requests per client per window.

    ``limit`` may be a callable so the quota is read when the request arrives.
    """

    async def _dependency(request: Request) -> None:
        if getattr(request.app.state, "disable_rate_limits", False):
            return
        quota = limit() if callable(limit) else limit
        allowed = await consume_quota(prefix, _client_identifier(request), quota, window_seconds)
        if not allowed:
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded for {prefix}. Try again later.",
                headers={"Retry-After": str(window_seconds)},
            )

    return _dependency


def analysis_rate_limit(prefix: str) -> Callable[[Request], Awaitable[None]]:
    """Per-minute quota taken from ANALYSIS_RATE_LIMIT_PER_MINUTE."""
    return rate_limit(prefix, lambda: settings.ANALYSIS_RATE_LIMIT_PER_MINUTE, ANALYSIS_WINDOW_SECONDS)
