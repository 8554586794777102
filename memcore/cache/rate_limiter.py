"""
Token bucket rate limiter, one bucket per identifier.

Refill is computed lazily on each check from the time elapsed since the
bucket was last touched, so there is no ticking timer and sparse
identifiers cost nothing between requests. A missing bucket behaves exactly
like a full one, which is what lets cleanup() drop stale buckets freely.

A cost larger than capacity can never be admitted. That is a caller
configuration error and is reported as an ordinary denial.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from memcore.errors import ConfigurationError


@dataclass
class Bucket:
    tokens: float
    last_refill: float


class RateLimiter:
    """
    Per-identifier token bucket.

    Usage:
        limiter = RateLimiter(capacity=100, refill_rate=10, window=60)
        if not limiter.is_allowed(f"user:{user_id}"):
            ...  # 429
    """

    def __init__(self, capacity: int = 100, refill_rate: float = 10.0, window: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        """
        Args:
            capacity: Maximum burst, in tokens
            refill_rate: Tokens added per second
            window: Staleness horizon in seconds; buckets idle for 2x window are dropped by cleanup()
            clock: Monotonic seconds source (injectable for tests)
        """
        if capacity <= 0:
            raise ConfigurationError(f"capacity must be positive, got {capacity}")
        if refill_rate < 0:
            raise ConfigurationError(f"refill_rate must be >= 0, got {refill_rate}")
        if window <= 0:
            raise ConfigurationError(f"window must be positive, got {window}")

        self.capacity = capacity
        self.refill_rate = refill_rate
        self.window = window
        self._clock = clock
        self._buckets: dict[str, Bucket] = {}
        self._lock = threading.Lock()

    def _projected_tokens(self, bucket: Bucket, now: float) -> float:
        elapsed = max(now - bucket.last_refill, 0.0)
        return min(float(self.capacity), bucket.tokens + elapsed * self.refill_rate)

    def is_allowed(self, identifier: str, cost: int = 1) -> bool:
        """Refill, then debit `cost` tokens if available."""
        if cost < 0:
            raise ValueError(f"cost must be >= 0, got {cost}")

        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(identifier)
            if bucket is None:
                bucket = Bucket(tokens=float(self.capacity), last_refill=now)
                self._buckets[identifier] = bucket

            bucket.tokens = self._projected_tokens(bucket, now)
            bucket.last_refill = now

            if bucket.tokens >= cost:
                bucket.tokens -= cost
                return True
            return False

    def get_remaining(self, identifier: str) -> float:
        """Tokens available right now. Read-only: the refill is not persisted."""
        with self._lock:
            bucket = self._buckets.get(identifier)
            if bucket is None:
                return float(self.capacity)
            return max(0.0, self._projected_tokens(bucket, self._clock()))

    def retry_after(self, identifier: str, cost: int = 1) -> float:
        """Seconds until `cost` tokens will be available (0 if available now)."""
        if cost > self.capacity or (self.refill_rate == 0 and self.get_remaining(identifier) < cost):
            return math.inf

        missing = cost - self.get_remaining(identifier)
        if missing <= 0:
            return 0.0
        return missing / self.refill_rate

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._buckets.pop(identifier, None)

    def cleanup(self) -> int:
        """Drop buckets untouched for more than 2x window. Returns how many were dropped."""
        with self._lock:
            now = self._clock()
            stale = [ident for ident, b in self._buckets.items()
                     if now - b.last_refill > self.window * 2]
            for ident in stale:
                del self._buckets[ident]
            return len(stale)

    def __len__(self) -> int:
        return len(self._buckets)
