from .store import CacheEntry, CacheStore, MemoryCacheStore, RedisCacheStore, build_cache_store

__all__ = ["CacheEntry", "CacheStore", "MemoryCacheStore", "RedisCacheStore", "build_cache_store"]
