"""
Exception types raised across memcore.

Cache misses and rate-limit denials are ordinary return values inside the
cache and limiter; these exceptions only appear at the gateway and store
boundaries.
"""

from __future__ import annotations


class MemcoreError(Exception):
    """Base class for memcore errors."""
    pass


class ConfigurationError(MemcoreError, ValueError):
    """Invalid construction parameters (capacity, ttl, rates)."""
    pass


class RateLimitExceeded(MemcoreError):
    """A token bucket denied the requested cost."""

    def __init__(self, identifier: str, cost: int = 1, retry_after: float | None = None):
        self.identifier = identifier
        self.cost = cost
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded for '{identifier}' (cost={cost}). Please try again later.")


class EmbeddingProviderError(MemcoreError):
    """Embedding provider failed or returned malformed vectors."""
    pass


class VectorIndexError(MemcoreError):
    """Stored vectors cannot be compared with the query vector."""
    pass


class OperationTimeout(MemcoreError, TimeoutError):
    """A provider or index call did not finish within its timeout."""
    pass
