"""TTL cache stores: an in-process dictionary and a Redis-backed store."""
from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from functools import lru_cache
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from ..config import get_settings
from ..errors import GatewayError

logger = logging.getLogger(__name__)


def make_key(kind: str, value: Optional[str] = None) -> str:
    """Build a namespaced cache key from an operation kind and its normalized input."""
    prefix = get_settings().cache_prefix
    if value is None:
        return f"{prefix}{kind}"
    digest = hashlib.md5(value.encode("utf-8")).hexdigest()
    return f"{prefix}{kind}:{digest}"


class MemoryCache:
    """Dictionary of ``key -> (value, expires_at)``, guarded by a lock.

    Expired entries are dropped lazily on access; there is no eviction policy.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._entries)


class RedisCache:
    """Redis store; values are JSON encoded, every key lives under ``prefix``."""

    def __init__(self, url: str, prefix: str) -> None:
        self._client = redis.Redis.from_url(url, decode_responses=True)
        self._prefix = prefix

    def get(self, key: str) -> Optional[Any]:
        raw = self._client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding corrupted cache entry %s", key)
            return None

    def set(self, key: str, value: Any, ttl: int) -> None:
        payload = json.dumps(value, ensure_ascii=False, default=str)
        self._client.set(key, payload, ex=ttl)

    def clear(self) -> None:
        batch = []
        for key in self._client.scan_iter(match=f"{self._prefix}*", count=500):
            batch.append(key)
            if len(batch) >= 500:
                self._client.delete(*batch)
                batch = []
        if batch:
            self._client.delete(*batch)

    def ping(self) -> bool:
        return bool(self._client.ping())


@lru_cache(maxsize=1)
def get_cache() -> Any:
    settings = get_settings()
    if settings.cache_backend == "memory":
        return MemoryCache()
    if settings.cache_backend == "redis":
        logger.info("Using Redis cache at %s", settings.redis_url)
        return RedisCache(settings.redis_url, settings.cache_prefix)
    raise GatewayError(f"Unsupported cache backend: {settings.cache_backend}")


def clear_cache() -> None:
    """Clear the whole cache namespace. Cache outages are logged, not raised."""
    try:
        get_cache().clear()
        logger.info("Cache namespace cleared")
    except redis.RedisError:
        logger.warning("Cache clear failed", exc_info=True)
