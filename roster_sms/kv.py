"""
Key/value store used for the batch cursor, run locks and passcode sessions.

Backends are tried in order: Redis TCP, Upstash REST, then a local in-memory
map with TTL support. A backend error is logged and the next one is used.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import redis as _redis
import requests

from roster_sms.config import Settings
from roster_sms.runtime import get_logger

logger = get_logger(__name__)

_RELEASE_LUA = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
else
    return 0
end
"""


class MemoryBackend:
    """Process-local map with optional expiry per key."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._clock = clock

    def _live(self, key: str) -> Optional[str]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires = item
        if expires is not None and expires <= self._clock():
            self._data.pop(key, None)
            return None
        return value

    def get(self, key: str) -> Optional[str]:
        return self._live(key)

    def set(self, key: str, value: str, ttl: Optional[int] = None, nx: bool = False) -> bool:
        if nx and self._live(key) is not None:
            return False
        expires = self._clock() + ttl if ttl else None
        self._data[key] = (str(value), expires)
        return True

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()


# Shared across KeyValueStore instances so in-memory state outlives a request.
_MEMORY = MemoryBackend()


class KeyValueStore:
    """Redis / Upstash key/value access with local fallback."""

    def __init__(self, settings: Settings, *, memory: Optional[MemoryBackend] = None):
        self.r = None
        self.rest_url = settings.upstash_rest_url
        self.rest_token = settings.upstash_rest_token
        self.rest = bool(self.rest_url and self.rest_token)
        self.mem = memory or _MEMORY
        if settings.redis_url and not settings.force_in_memory:
            try:
                self.r = _redis.from_url(settings.redis_url, ssl=settings.redis_tls, decode_responses=True)
            except (ValueError, _redis.RedisError):
                logger.warning("Redis unavailable, falling back", exc_info=True)
        if settings.force_in_memory:
            self.rest = False

    @property
    def backend(self) -> str:
        if self.r is not None:
            return "redis"
        if self.rest:
            return "upstash-rest"
        return "memory"

    def _rest(self, command: List[Any]) -> Any:
        resp = requests.post(
            self.rest_url,
            headers={"Authorization": f"Bearer {self.rest_token}"},
            json=[str(c) for c in command],
            timeout=5,
        )
        resp.raise_for_status()
        return resp.json().get("result")

    # ── operations ───────────────────────────────────

    def get(self, key: str) -> Optional[str]:
        if self.r is not None:
            try:
                return self.r.get(key)
            except _redis.RedisError:
                logger.exception("Redis GET %s failed", key)
        if self.rest:
            try:
                result = self._rest(["GET", key])
                return None if result is None else str(result)
            except (requests.RequestException, ValueError):
                logger.exception("Upstash GET %s failed", key)
        return self.mem.get(key)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if self.r is not None:
            try:
                self.r.set(key, str(value), ex=ttl)
                return
            except _redis.RedisError:
                logger.exception("Redis SET %s failed", key)
        if self.rest:
            try:
                cmd: List[Any] = ["SET", key, value]
                if ttl:
                    cmd += ["EX", int(ttl)]
                self._rest(cmd)
                return
            except (requests.RequestException, ValueError):
                logger.exception("Upstash SET %s failed", key)
        self.mem.set(key, str(value), ttl)

    def set_nx(self, key: str, value: Any, ttl: int) -> bool:
        """SET NX EX: True when the key was free and is now ours."""
        if self.r is not None:
            try:
                return bool(self.r.set(key, str(value), nx=True, ex=ttl))
            except _redis.RedisError:
                logger.exception("Redis SET NX %s failed", key)
        if self.rest:
            try:
                return self._rest(["SET", key, value, "EX", int(ttl), "NX"]) == "OK"
            except (requests.RequestException, ValueError):
                logger.exception("Upstash SET NX %s failed", key)
        return self.mem.set(key, str(value), ttl, nx=True)

    def delete(self, key: str) -> None:
        if self.r is not None:
            try:
                self.r.delete(key)
                return
            except _redis.RedisError:
                logger.exception("Redis DEL %s failed", key)
        if self.rest:
            try:
                self._rest(["DEL", key])
                return
            except (requests.RequestException, ValueError):
                logger.exception("Upstash DEL %s failed", key)
        self.mem.delete(key)

    def delete_if(self, key: str, value: Any) -> bool:
        """Delete ``key`` only while it still holds ``value`` (lease release)."""
        if self.r is not None:
            try:
                return bool(self.r.eval(_RELEASE_LUA, 1, key, str(value)))
            except _redis.RedisError:
                logger.exception("Redis release %s failed", key)
        if self.get(key) == str(value):
            self.delete(key)
            return True
        return False


def reset_state() -> None:
    _MEMORY.clear()
