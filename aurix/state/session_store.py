# aurix/state/session_store.py
"""
Session lifecycle records with a Redis (async) backend and in-memory fallback.

A record is a small JSON dict: {"call_sid", "state", "updated_at", ...}. It
holds lifecycle bookkeeping only; the event log stays the source of truth for
everything that happened on a call.

Exports:
 - connect_redis(redis_url) / disconnect_redis()
 - set_session(call_sid, record) / get_session(call_sid)
 - update_session(call_sid, patch) -> dict
 - delete_session(call_sid)
 - list_sessions() -> List[dict]

Behavior:
 - Without REDIS_URL, or when Redis can't be reached, the process-local dict is used.
"""
import json
import logging
from typing import Any, Dict, List, Optional

import redis.asyncio as redis

from aurix.config import get_settings

logger = logging.getLogger("aurix.state.session_store")
settings = get_settings()

KEY_PREFIX = "aurix:lifecycle:"

_redis_client: Optional[redis.Redis] = None
_INMEM_SESSIONS: Dict[str, Dict[str, Any]] = {}


async def connect_redis(redis_url: Optional[str]) -> bool:
    """
    Connect to Redis if a URL is provided.
    Returns True if a Redis connection is available, False otherwise.
    """
    global _redis_client
    if not redis_url:
        logger.debug("No redis_url provided; lifecycle state kept in memory.")
        return False
    try:
        client = redis.from_url(redis_url, decode_responses=True)
        await client.ping()
    except Exception as exc:
        logger.warning("Failed to connect to Redis at %s: %s; using in-memory store", redis_url, exc)
        _redis_client = None
        return False
    _redis_client = client
    logger.info("Connected to Redis at %s", redis_url)
    return True


async def disconnect_redis() -> None:
    global _redis_client
    if _redis_client is None:
        return
    try:
        await _redis_client.aclose()
    except Exception as exc:
        logger.debug("Error closing Redis client: %s", exc)
    _redis_client = None
    logger.info("Redis client disconnected.")


def using_redis() -> bool:
    return _redis_client is not None


def _key(call_sid: str) -> str:
    return f"{KEY_PREFIX}{call_sid}"


async def set_session(call_sid: str, record: Dict[str, Any]) -> None:
    if _redis_client:
        try:
            await _redis_client.set(_key(call_sid), json.dumps(record))
            return
        except Exception as exc:
            logger.warning("Redis set_session failed; falling back to in-memory: %s", exc)
    _INMEM_SESSIONS[call_sid] = dict(record)


async def get_session(call_sid: str) -> Optional[Dict[str, Any]]:
    if _redis_client:
        try:
            raw = await _redis_client.get(_key(call_sid))
            return json.loads(raw) if raw else None
        except Exception as exc:
            logger.warning("Redis get_session failed; using in-memory: %s", exc)
    record = _INMEM_SESSIONS.get(call_sid)
    return dict(record) if record is not None else None


async def update_session(call_sid: str, patch: Dict[str, Any]) -> Dict[str, Any]:
    """Shallow-merge `patch` into the record (creating it if missing). Returns the merged record."""
    record = await get_session(call_sid) or {"call_sid": call_sid}
    record.update(patch)
    await set_session(call_sid, record)
    return record


async def delete_session(call_sid: str) -> None:
    if _redis_client:
        try:
            await _redis_client.delete(_key(call_sid))
        except Exception as exc:
            logger.warning("Redis delete_session failed: %s", exc)
    _INMEM_SESSIONS.pop(call_sid, None)


async def list_sessions() -> List[Dict[str, Any]]:
    if _redis_client:
        try:
            keys = [k async for k in _redis_client.scan_iter(match=f"{KEY_PREFIX}*")]
            if not keys:
                return []
            raw_vals = await _redis_client.mget(keys)
            return [json.loads(raw) for raw in raw_vals if raw]
        except Exception as exc:
            logger.warning("Redis list_sessions failed; falling back to in-memory: %s", exc)
    return [dict(r) for r in _INMEM_SESSIONS.values()]


def clear_memory() -> None:
    """Drop the in-memory records (used between tests)."""
    _INMEM_SESSIONS.clear()
