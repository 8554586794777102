"""
Memory Store for memcore.

Owner-scoped semantic storage and retrieval over free-text memories:
1. store  - embed content, persist row + vector
2. search - exact-match query cache -> embed query -> cosine search
3. fallback - if anything on the similarity path fails, return the user's
   most recent memories with a coarse containment score instead of an error

Fallback results are best-effort and never cached. The query cache is pure
memoization: results can be stale for up to its TTL unless
invalidate_on_write is enabled.
"""

from __future__ import annotations

import hashlib
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any

from config.thresholds import FALLBACK_CONTAINS_SCORE, FALLBACK_MISS_SCORE
from memcore.cache.lru_cache import LRUCache
from memcore.cache.rate_limiter import RateLimiter
from memcore.errors import OperationTimeout, RateLimitExceeded
from memcore.logging_config import get_logger
from memcore.memory.memory_contract import MemoryRepository
from memcore.memory.memory_models import (
    Importance, Memory, ScoredMemory, SearchDegraded, SearchOk, SearchOutcome,
)
from memcore.vector.embedding_service import EmbeddingService

logger = get_logger(__name__)


def hash_query(user_id: str, query: str, limit: int, threshold: float,
               min_importance: Importance | None = None) -> str:
    """Cache key for a search. Same arguments -> same key."""
    raw = f"{user_id}:{query}:{int(limit)}:{float(threshold)}"
    if min_importance is not None:
        raw += f":{min_importance}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _snapshot(results: list[ScoredMemory]) -> list[ScoredMemory]:
    # cached hits are shared across callers; metadata dicts stay mutable on frozen models
    return [r.model_copy(deep=True) for r in results]


def fallback_score(content: str, query: str) -> float:
    return FALLBACK_CONTAINS_SCORE if query.lower() in content.lower() else FALLBACK_MISS_SCORE


class MemoryStore:
    def __init__(
        self,
        repository: MemoryRepository,
        embedding_service: EmbeddingService,
        query_cache: LRUCache[str, list[ScoredMemory]],
        search_limiter: RateLimiter | None = None,
        invalidate_on_write: bool = False,
        default_limit: int = 5,
        default_threshold: float = 0.7,
        timeout: float | None = None,
    ):
        """
        Args:
            repository: Owner-scoped persistence + similarity query
            embedding_service: Gateway used for content and query embeddings
            query_cache: Ranked search results keyed by hash_query()
            search_limiter: Optional per-user quota, checked on cache misses only
            invalidate_on_write: Drop a user's cached searches after store/update/delete
            default_limit: Result cap when search() gets no limit
            default_threshold: Similarity floor when search() gets no threshold
            timeout: Default seconds allowed for the similarity path
        """
        self.repository = repository
        self.embedding_service = embedding_service
        self.query_cache = query_cache
        self.search_limiter = search_limiter
        self.invalidate_on_write = invalidate_on_write
        self.default_limit = default_limit
        self.default_threshold = default_threshold
        self.timeout = timeout

        # user_id -> query cache keys issued for that user
        self._user_keys: dict[str, set[str]] = {}
        self._keys_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def store(self, user_id: str, content: str, importance: Importance = "medium",
              metadata: dict[str, Any] | None = None) -> Memory:
        """Embed and persist a memory. Nothing is written if embedding fails."""
        embedding = self.embedding_service.embed(content)
        memory = self.repository.insert(user_id, content, embedding, importance=importance, metadata=metadata)
        logger.info(f"[MemoryStore] Stored memory {memory.id} for user {user_id} ({importance})")
        self._after_write(user_id)
        return memory

    def update(self, memory_id: str, user_id: str, content: str | None = None,
               metadata: dict[str, Any] | None = None, importance: Importance | None = None) -> Memory | None:
        """
        Patch a memory owned by user_id.

        A new content always regenerates the embedding. Returns None when the
        memory does not exist or belongs to someone else.
        """
        embedding = self.embedding_service.embed(content) if content is not None else None
        updated = self.repository.update(memory_id, user_id, content=content, embedding=embedding,
                                         metadata=metadata, importance=importance)
        if updated is not None:
            self._after_write(user_id)
        return updated

    def delete(self, memory_id: str, user_id: str) -> bool:
        """False both for a missing memory and for one owned by another user."""
        deleted = self.repository.delete(memory_id, user_id)
        if deleted:
            logger.info(f"[MemoryStore] Deleted memory {memory_id} for user {user_id}")
            self._after_write(user_id)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, memory_id: str, user_id: str) -> Memory | None:
        return self.repository.get(memory_id, user_id)

    def list_memories(self, user_id: str, limit: int = 50) -> list[Memory]:
        """Most recent first."""
        return self.repository.recent(user_id, limit)

    def search(self, user_id: str, query: str, limit: int | None = None, threshold: float | None = None,
               min_importance: Importance | None = None, timeout: float | None = None) -> list[ScoredMemory]:
        """Ranked search; degraded results are returned as if they were normal ones."""
        return self.search_outcome(user_id, query, limit=limit, threshold=threshold,
                                   min_importance=min_importance, timeout=timeout).results

    def search_outcome(self, user_id: str, query: str, limit: int | None = None, threshold: float | None = None,
                       min_importance: Importance | None = None, timeout: float | None = None) -> SearchOutcome:
        """
        Search memories by semantic similarity.

        Returns SearchOk from the cache or the similarity path, or
        SearchDegraded with lexical results when the similarity path fails.
        Only a failure of the lexical fallback itself raises.
        """
        limit = self.default_limit if limit is None else limit
        threshold = self.default_threshold if threshold is None else threshold

        key = hash_query(user_id, query, limit, threshold, min_importance)
        cached = self.query_cache.get(key)
        if cached is not None:
            return SearchOk(results=_snapshot(cached), cached=True)

        try:
            results = self._similarity_path(user_id, query, limit, threshold, min_importance, timeout)
        except Exception as e:
            logger.warning(f"[MemoryStore] Similarity search failed for user {user_id}, using text fallback: {e!r}")
            return SearchDegraded(results=self._fallback_text_search(user_id, query, limit), cause=e)

        self.query_cache.set(key, _snapshot(results))
        self._remember_key(user_id, key)
        return SearchOk(results=results)

    def _similarity_path(self, user_id: str, query: str, limit: int, threshold: float,
                         min_importance: Importance | None, timeout: float | None) -> list[ScoredMemory]:
        if self.search_limiter is not None and not self.search_limiter.is_allowed(user_id):
            raise RateLimitExceeded(user_id, retry_after=self.search_limiter.retry_after(user_id))

        def _run() -> list[ScoredMemory]:
            query_vector = self.embedding_service.embed(query)
            return self.repository.similarity_search(user_id, query_vector, threshold, limit,
                                                     min_importance=min_importance)

        timeout = self.timeout if timeout is None else timeout
        if timeout is None:
            return _run()

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="MemorySearch")
        future = self._executor.submit(_run)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            future.cancel()
            raise OperationTimeout(f"Similarity search did not finish within {timeout}s") from None

    def _fallback_text_search(self, user_id: str, query: str, limit: int) -> list[ScoredMemory]:
        """Recent memories scored by case-insensitive containment of the query."""
        return [
            ScoredMemory(memory=m, similarity=fallback_score(m.content, query))
            for m in self.repository.recent(user_id, limit)
        ]

    # ------------------------------------------------------------------
    # Query cache bookkeeping
    # ------------------------------------------------------------------

    def _remember_key(self, user_id: str, key: str) -> None:
        with self._keys_lock:
            keys = self._user_keys.setdefault(user_id, set())
            keys.add(key)
            if len(keys) > self.query_cache.max_size:
                # evicted or expired keys no longer need tracking
                keys.intersection_update([k for k in keys if self.query_cache.has(k)])
            if len(self._user_keys) > 2 * self.query_cache.max_size:
                self._prune_tracked_keys()

    def _prune_tracked_keys(self) -> None:
        # Caller holds _keys_lock. Every live key belongs to one user, so at
        # most max_size users survive.
        for user_id in list(self._user_keys):
            live = {k for k in self._user_keys[user_id] if self.query_cache.has(k)}
            if live:
                self._user_keys[user_id] = live
            else:
                del self._user_keys[user_id]

    def _after_write(self, user_id: str) -> None:
        if self.invalidate_on_write:
            self.invalidate_user(user_id)

    def invalidate_user(self, user_id: str) -> int:
        """Drop every cached search result for user_id. Returns how many were present."""
        with self._keys_lock:
            keys = self._user_keys.pop(user_id, set())
        return sum(1 for k in keys if self.query_cache.delete(k))

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
