"""Persistent stores used across pipeline runs."""

from .page_cache import CACHE_SCHEMA_VERSION, PageCache

__all__ = ["CACHE_SCHEMA_VERSION", "PageCache"]
