"""
Redis client

Cross-instance webhook idempotency via Redis SET NX. Without REDIS_URL every
helper degrades gracefully and events are processed as new.
"""
import logging
from typing import Optional
import redis.asyncio as redis
from app.core.config import settings

logger = logging.getLogger(__name__)

# Global Redis client (initialized lazily)
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get Redis client, initializing if needed.

    Returns None if REDIS_URL not configured (graceful degradation).
    """
    global _redis_client

    if not settings.REDIS_URL:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True
            )
            await _redis_client.ping()
            logger.info("Redis connection established")
        except Exception as e:
            logger.warning(f"Redis connection failed: {e}. Webhook idempotency disabled.")
            _redis_client = None

    return _redis_client


async def close_redis():
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None


# ----- Webhook Idempotency -----

WEBHOOK_KEY_PREFIX = "webhook:event:"
WEBHOOK_TTL_HOURS = 24


async def claim_webhook_event(event_key: str, ttl_hours: int = WEBHOOK_TTL_HOURS) -> bool:
    """Claim a webhook event for processing with a single SET NX EX.

    Returns False when another delivery already holds the key. Falls back to
    True if Redis is unavailable (allows processing).
    """
    client = await get_redis()
    if not client:
        return True

    try:
        claimed = await client.set(
            f"{WEBHOOK_KEY_PREFIX}{event_key}",
            "1",
            nx=True,
            ex=ttl_hours * 3600,
        )
        return bool(claimed)
    except Exception as e:
        logger.warning(f"Redis claim failed for webhook {event_key}: {e}")
        return True


async def release_webhook_event(event_key: str) -> bool:
    """Drop a claim so a redelivered event is processed again.

    Returns True if the key was removed, False if Redis unavailable.
    """
    client = await get_redis()
    if not client:
        return False

    try:
        await client.delete(f"{WEBHOOK_KEY_PREFIX}{event_key}")
        return True
    except Exception as e:
        logger.warning(f"Redis release failed for webhook {event_key}: {e}")
        return False
