"""Key/value store and the tiered upstream cache."""

from ftcmetrics.cache.store import KeyValueStore, StoreResult
from ftcmetrics.cache.tiered import CachePolicy, TieredCache

__all__ = ["KeyValueStore", "StoreResult", "CachePolicy", "TieredCache"]
