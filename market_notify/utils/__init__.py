"""Utility helpers package."""

from market_notify.utils.cache import CacheBackend, cache_backend

__all__ = ["CacheBackend", "cache_backend"]
