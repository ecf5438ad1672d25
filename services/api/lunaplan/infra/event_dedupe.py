"""Idempotency keys for redeliverable adaptation events.

A database webhook may deliver the same change event more than once. Each
event is claimed with SET NX before any adaptation work; a second delivery
of the same event finds the key and is skipped. Failed processing releases
the claim so the retry can proceed.
"""
import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from redis.exceptions import RedisError

from .redis_client import get_redis
from ..errors import InternalError
from ..settings import settings

logger = logging.getLogger("lunaplan.adaptation")


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def event_key(trigger_data: dict[str, Any], event_id: Optional[str] = None) -> str:
    """Explicit event id when the sender provides one, else a hash of the canonical payload."""
    if event_id:
        return event_id
    canonical = json.dumps(trigger_data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _redis_key(user_id: str, key: str) -> str:
    return f"lunaplan:adapt-event:{user_id}:{key}"


async def claim_event(user_id: str, key: str) -> Optional[str]:
    """Return the redis key if this delivery should be processed, None if already seen."""
    rkey = _redis_key(user_id, key)
    try:
        r = await get_redis()
        ok = await r.set(
            rkey,
            json.dumps({"state": "processing", "claimed_at": _iso_now()}),
            ex=settings.adaptation_event_ttl_seconds,
            nx=True,
        )
    except (RedisError, OSError) as e:
        logger.error(f"Could not claim adaptation event {key} for user {user_id}: {e}")
        raise InternalError("Adaptation event store unavailable") from e
    if not ok:
        logger.info(f"Duplicate adaptation event {key} for user {user_id}; skipping")
        return None
    return rkey


async def complete_event(redis_key: str, *, adapted: bool, reason: Optional[str]) -> None:
    """Mark a processed event done. Failures are logged, not raised."""
    payload = {"state": "done", "adapted": adapted, "reason": reason, "completed_at": _iso_now()}
    try:
        r = await get_redis()
        await r.set(redis_key, json.dumps(payload), ex=settings.adaptation_event_ttl_seconds)
    except Exception as e:
        logger.error(f"Could not mark adaptation event {redis_key} done: {e}")


async def release_event(redis_key: str) -> None:
    """Drop the claim after a failure so a redelivery is processed."""
    try:
        r = await get_redis()
        await r.delete(redis_key)
    except Exception as e:
        logger.error(f"Could not release adaptation event claim {redis_key}: {e}")
