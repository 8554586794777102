from memcore.cache.lru_cache import CacheEntry, CacheStats, LRUCache
from memcore.cache.rate_limiter import Bucket, RateLimiter

__all__ = ["CacheEntry", "CacheStats", "LRUCache", "Bucket", "RateLimiter"]
