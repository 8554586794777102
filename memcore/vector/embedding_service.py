from __future__ import annotations

import hashlib
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Callable, TypeVar

import numpy as np

from config.thresholds import EMBEDDING_RATE_IDENTIFIER
from memcore.cache.lru_cache import LRUCache
from memcore.cache.rate_limiter import RateLimiter
from memcore.errors import EmbeddingProviderError, OperationTimeout, RateLimitExceeded
from memcore.logging_config import get_logger
from memcore.vector.embedder import EmbeddingProvider

logger = get_logger(__name__)

T = TypeVar("T")


def hash_text(text: str) -> str:
    """Content-addressed cache key (sha256 hex)."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _freeze(vector: np.ndarray) -> np.ndarray:
    v = np.array(vector, dtype=np.float32)
    v.flags.writeable = False
    return v


class EmbeddingService:
    """
    Cache-aware, rate-limited gateway in front of an embedding provider.

    Cache hits never touch the rate limiter or the provider. Misses draw
    from one shared quota pool (`identifier`), one token per text sent to
    the provider. Provider errors propagate unchanged; there is no retry.
    Callers that need per-user quotas wrap this service.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        cache: LRUCache[str, np.ndarray],
        rate_limiter: RateLimiter,
        identifier: str = EMBEDDING_RATE_IDENTIFIER,
        timeout: float | None = None,
        max_workers: int = 4,
    ):
        """
        Args:
            provider: Embedding provider
            cache: Embedding cache keyed by text hash
            rate_limiter: Limiter holding the shared quota
            identifier: Bucket identifier for the shared quota
            timeout: Default provider timeout in seconds (None = wait forever)
            max_workers: Worker threads used for timed provider calls
        """
        self.provider = provider
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.identifier = identifier
        self.timeout = timeout
        self._max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None

    @property
    def dimension(self) -> int:
        return self.provider.dimension

    def _call_provider(self, texts: list[str], timeout: float | None) -> list[np.ndarray]:
        timeout = self.timeout if timeout is None else timeout
        if timeout is None:
            vectors = self.provider.create_embedding(texts)
        else:
            vectors = self._run_with_timeout(lambda: self.provider.create_embedding(texts), timeout)

        if len(vectors) != len(texts):
            raise EmbeddingProviderError(f"Provider returned {len(vectors)} vectors for {len(texts)} inputs")

        out = []
        for v in vectors:
            v = _freeze(v)
            if v.ndim != 1 or v.shape[0] != self.dimension:
                raise EmbeddingProviderError(f"Provider returned vector of shape {v.shape}, expected ({self.dimension},)")
            out.append(v)
        return out

    def _run_with_timeout(self, fn: Callable[[], T], timeout: float) -> T:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="Embedding")

        future = self._executor.submit(fn)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            future.cancel()
            logger.warning(f"[EmbeddingService] Provider call exceeded {timeout}s")
            raise OperationTimeout(f"Embedding provider did not respond within {timeout}s") from None

    def _acquire(self, cost: int) -> None:
        if not self.rate_limiter.is_allowed(self.identifier, cost):
            retry_after = self.rate_limiter.retry_after(self.identifier, cost)
            logger.warning(f"[EmbeddingService] Quota exhausted (cost={cost}, retry_after={retry_after:.2f}s)")
            raise RateLimitExceeded(self.identifier, cost=cost, retry_after=retry_after)

    def embed(self, text: str, timeout: float | None = None) -> np.ndarray:
        """Convert text to an embedding vector."""
        key = hash_text(text)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        self._acquire(1)
        vector = self._call_provider([text], timeout)[0]
        self.cache.set(key, vector)
        return vector

    def embed_batch(self, texts: list[str], timeout: float | None = None) -> list[np.ndarray]:
        """
        Embed many texts, sending only the uncached ones to the provider.

        Output order matches input order. Asking for 10 texts with 8 cached
        costs 2 quota tokens and one provider round trip.
        """
        results: list[np.ndarray | None] = [None] * len(texts)
        uncached: list[tuple[int, str]] = []

        for i, text in enumerate(texts):
            cached = self.cache.get(hash_text(text))
            if cached is not None:
                results[i] = cached
            else:
                uncached.append((i, text))

        if not uncached:
            return results  # type: ignore[return-value]

        self._acquire(len(uncached))
        vectors = self._call_provider([t for _, t in uncached], timeout)

        for (i, text), vector in zip(uncached, vectors):
            results[i] = vector
            self.cache.set(hash_text(text), vector)

        logger.debug(f"[EmbeddingService] Batch of {len(texts)}: {len(texts) - len(uncached)} cached, {len(uncached)} fetched")
        return results  # type: ignore[return-value]

    def close(self) -> None:
        """Shutdown the timeout executor."""
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
