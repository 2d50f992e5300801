"""
Shared Redis connection.

Every OTP payload, attempt counter, cooldown and lock lives here with a
per-key TTL, so several API replicas see the same state.  Expiry is left
to Redis; nothing in the app sweeps old keys.
"""

from __future__ import annotations

import logging

import redis.asyncio as redis
from redis.asyncio import Redis

from app.config import REDIS_URL

logger = logging.getLogger(__name__)

# ── Module-level client ───────────────────────────────────────────────────

_redis: Redis | None = None


def get_redis() -> Redis:
    """Return the shared client, creating its connection pool on first use."""
    global _redis
    if _redis is None:
        _redis = redis.from_url(
            REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info("Redis client created for %s", REDIS_URL)
    return _redis


def set_redis(client: Redis | None) -> None:
    """Swap the shared client (tests install an in-memory double here)."""
    global _redis
    _redis = client


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None
        logger.info("Redis connection closed")
