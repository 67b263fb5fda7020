"""
Two-tier TTL key/value store for computed forecasts.

An entry is *fresh* for ``fresh_ttl`` seconds and then *stale but servable*
for a further ``stale_ttl`` seconds, after which it is gone. ``get`` returns
both fresh and stale values; ``get_entry`` also says which one it was so a
reader can serve stale data while a refresh is queued.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

import redis

from trendcast.config import Settings
from trendcast.errors import CacheUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    is_stale: bool


class CacheStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def get_entry(self, key: str) -> CacheEntry | None: ...

    def set(self, key: str, value: Any, fresh_ttl_seconds: int, stale_ttl_seconds: int | None = None) -> None: ...

    def delete(self, key: str) -> None: ...


def _encode(value: Any) -> str:
    return json.dumps(value, default=str)


class MemoryCacheStore:
    """
    Process-scoped store. One instance lives on ``app.state.cache`` for the
    lifetime of the application; tests build their own and call ``clear()``.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (json payload, fresh_until, expires_at)
        self._entries: Dict[str, Tuple[str, float, float]] = {}

    def get_entry(self, key: str) -> CacheEntry | None:
        now = self._clock()
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return None
            payload, fresh_until, expires_at = item
            if now >= expires_at:
                del self._entries[key]
                return None
        return CacheEntry(value=json.loads(payload), is_stale=now >= fresh_until)

    def get(self, key: str) -> Any | None:
        entry = self.get_entry(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: Any, fresh_ttl_seconds: int, stale_ttl_seconds: int | None = None) -> None:
        now = self._clock()
        fresh_until = now + int(fresh_ttl_seconds)
        expires_at = fresh_until + int(stale_ttl_seconds or 0)
        # stored serialized; every read decodes a fresh copy
        payload = _encode(value)
        with self._lock:
            self._entries[key] = (payload, fresh_until, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheStore:
    """
    Redis-backed store shared by every worker process.

    Values are wrapped as ``{"v": value, "fresh_until": epoch_seconds}`` and the
    Redis key expires after fresh + stale seconds.
    """

    def __init__(self, client: "redis.Redis", clock: Callable[[], float] = time.time) -> None:
        self._redis = client
        self._clock = clock

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheStore":
        client = redis.from_url(url, decode_responses=True, socket_timeout=5)
        logger.info("cache.redis.connected", extra={"url": url.split("@")[-1]})
        return cls(client)

    def get_entry(self, key: str) -> CacheEntry | None:
        try:
            raw = self._redis.get(key)
        except redis.RedisError as exc:
            raise CacheUnavailableError(f"redis GET failed for {key}: {exc}") from exc
        if raw is None:
            return None
        try:
            envelope = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("cache.redis.corrupt_entry", extra={"key": key})
            return None
        if not isinstance(envelope, dict) or "v" not in envelope:
            return None
        fresh_until = float(envelope.get("fresh_until") or 0)
        return CacheEntry(value=envelope["v"], is_stale=self._clock() >= fresh_until)

    def get(self, key: str) -> Any | None:
        entry = self.get_entry(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: Any, fresh_ttl_seconds: int, stale_ttl_seconds: int | None = None) -> None:
        fresh = int(fresh_ttl_seconds)
        total = fresh + int(stale_ttl_seconds or 0)
        envelope = {"v": value, "fresh_until": self._clock() + fresh}
        try:
            self._redis.set(key, _encode(envelope), ex=max(1, total))
        except redis.RedisError as exc:
            raise CacheUnavailableError(f"redis SET failed for {key}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(key)
        except redis.RedisError as exc:
            raise CacheUnavailableError(f"redis DEL failed for {key}: {exc}") from exc


def build_cache_store(settings: Settings) -> CacheStore:
    if settings.CACHE_PROVIDER == "redis":
        return RedisCacheStore.from_url(settings.REDIS_URL or "")
    return MemoryCacheStore()


__all__ = [
    "CacheEntry",
    "CacheStore",
    "MemoryCacheStore",
    "RedisCacheStore",
    "build_cache_store",
]
