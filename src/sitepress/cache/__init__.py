"""Render cache."""

from .store import CacheRecord, CacheStats, CacheStore

__all__ = ["CacheRecord", "CacheStats", "CacheStore"]
