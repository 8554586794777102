"""
memcore - in-process memory layer for a chat assistant.

LRU/TTL caching, token-bucket rate limiting, a cache-aware embedding
gateway and an owner-scoped semantic memory store with lexical fallback.
"""

__version__ = "0.1.0"
