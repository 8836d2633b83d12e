"""Short-lived caching with Redis backing and an in-process fallback."""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

import redis
from loguru import logger

from market_notify.config import settings


def _json_default(value: Any) -> Any:
    """Serialize values not supported by ``json`` out of the box."""

    if hasattr(value, "isoformat"):
        return value.isoformat()  # datetime and date objects
    return str(value)


@dataclass
class _CacheEntry:
    expires_at: float | None
    payload: str


class CacheBackend:
    """Namespaced key/value cache with per-entry ttl.

    Writes go to Redis when it is reachable and always to a local dict, so a
    Redis outage degrades to per-process caching instead of failing requests.
    """

    def __init__(self, redis_url: str | None = None, default_ttl: int = 60) -> None:
        self.default_ttl = default_ttl
        self._lock = threading.Lock()
        self._local: dict[str, _CacheEntry] = {}
        self._redis: redis.Redis | None = None
        if redis_url:
            self._redis = redis.Redis.from_url(
                redis_url, decode_responses=True, socket_timeout=0.5
            )

    @staticmethod
    def _compose(namespace: str, key: str) -> str:
        return f"{namespace}:{key}"

    def _drop_redis(self, exc: Exception) -> None:
        logger.warning("Redis cache unavailable, using local cache", error=str(exc))
        self._redis = None

    def get(self, namespace: str, key: str) -> Any | None:
        namespaced = self._compose(namespace, key)
        if self._redis is not None:
            try:
                value = self._redis.get(namespaced)
            except redis.RedisError as exc:
                self._drop_redis(exc)
            else:
                # Redis is authoritative while it is reachable
                return json.loads(value) if value is not None else None
        with self._lock:
            entry = self._local.get(namespaced)
            if not entry:
                return None
            if entry.expires_at is not None and entry.expires_at < time.time():
                self._local.pop(namespaced, None)
                return None
            return json.loads(entry.payload)

    def set(self, namespace: str, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        namespaced = self._compose(namespace, key)
        payload = json.dumps(value, default=_json_default)
        if self._redis is not None:
            try:
                self._redis.set(namespaced, payload, ex=ttl or None)
            except redis.RedisError as exc:
                self._drop_redis(exc)
        with self._lock:
            expires_at = time.time() + ttl if ttl else None
            self._local[namespaced] = _CacheEntry(expires_at=expires_at, payload=payload)

    def get_or_set(
        self,
        namespace: str,
        key: str,
        factory: Callable[[], Any],
        ttl_seconds: int | None = None,
    ) -> Any:
        """Return the cached value or compute, store and return it."""

        cached = self.get(namespace, key)
        if cached is not None:
            return cached
        value = factory()
        self.set(namespace, key, value, ttl_seconds)
        return value

    def invalidate(self, namespace: str, *, key: str | None = None, prefix: str | None = None) -> None:
        if key is not None:
            namespaced = self._compose(namespace, key)
            if self._redis is not None:
                try:
                    self._redis.delete(namespaced)
                except redis.RedisError as exc:
                    self._drop_redis(exc)
            with self._lock:
                self._local.pop(namespaced, None)
            return

        pattern = self._compose(namespace, prefix or "")
        if self._redis is not None:
            try:
                for cache_key in self._redis.scan_iter(f"{pattern}*"):
                    self._redis.delete(cache_key)
            except redis.RedisError as exc:
                self._drop_redis(exc)
        with self._lock:
            for cache_key in list(self._local.keys()):
                if cache_key.startswith(pattern):
                    self._local.pop(cache_key, None)

    def clear(self, *, include_redis: bool = False) -> None:
        """Reset the in-memory cache (and optionally Redis) for test environments."""

        with self._lock:
            self._local.clear()
        if include_redis and self._redis is not None:
            try:
                self._redis.flushdb()
            except redis.RedisError as exc:
                self._drop_redis(exc)


cache_backend = CacheBackend(
    str(settings.REDIS_URL) if settings.REDIS_URL else None,
    default_ttl=settings.NOTIFICATION_COUNT_CACHE_SECONDS,
)


__all__ = ["cache_backend", "CacheBackend"]
