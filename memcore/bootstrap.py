"""
Assemble one process's memory system from settings.

Every cache and limiter is created here and passed explicitly to the
component that uses it; nothing in memcore is a module-level singleton.
Lifecycle is the process lifetime. There is no background scheduler:
call MemorySystem.cleanup() from whatever periodic hook the host has.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np
from dotenv import load_dotenv

from config.settings import Settings
from memcore.cache.lru_cache import LRUCache
from memcore.cache.rate_limiter import RateLimiter
from memcore.db.session import init_db
from memcore.logging_config import get_logger, setup_logging
from memcore.memory.memory_models import ScoredMemory
from memcore.memory.memory_repository import SQLiteMemoryRepository
from memcore.memory.memory_store import MemoryStore
from memcore.memory.memory_tools import MemoryTools
from memcore.vector.embedder import EmbeddingProvider, create_provider
from memcore.vector.embedding_service import EmbeddingService

logger = get_logger(__name__)


@dataclass
class MemorySystem:
    settings: Settings
    embedding_cache: LRUCache[str, np.ndarray]
    query_cache: LRUCache[str, list[ScoredMemory]]
    embedding_limiter: RateLimiter
    search_limiter: RateLimiter
    tool_limiter: RateLimiter
    embedding_service: EmbeddingService
    repository: SQLiteMemoryRepository
    store: MemoryStore
    tools: MemoryTools

    def cleanup(self) -> int:
        """Drop stale rate-limit buckets. Returns how many were dropped."""
        return sum(limiter.cleanup() for limiter in (self.embedding_limiter, self.search_limiter, self.tool_limiter))

    def stats(self) -> dict[str, Any]:
        return {
            "embedding_cache": self.embedding_cache.stats(),
            "query_cache": self.query_cache.stats(),
            "buckets": {
                "embedding": len(self.embedding_limiter),
                "search": len(self.search_limiter),
                "tool": len(self.tool_limiter),
            },
        }

    def close(self) -> None:
        self.embedding_service.close()
        self.store.close()


def build_memory_system(settings: Optional[Settings] = None,
                        provider: Optional[EmbeddingProvider] = None,
                        configure_logging: bool = False) -> MemorySystem:
    """
    Build and wire every memcore component.

    Args:
        settings: Settings instance (default: read from env / .env)
        provider: Embedding provider override (default: settings.embedding_provider)
        configure_logging: Also configure the root logger at settings.log_level
    """
    load_dotenv()  # provider SDK keys such as OPENAI_API_KEY
    start = time.perf_counter()
    settings = settings or Settings()

    if configure_logging:
        setup_logging(settings.log_level)

    init_db(settings.sqlite_path)

    if provider is None:
        provider = create_provider(settings.embedding_provider, model=settings.embedding_model,
                                   dimension=settings.embedding_dim)

    embedding_cache: LRUCache[str, np.ndarray] = LRUCache(settings.embedding_cache_size, settings.embedding_cache_ttl)
    query_cache: LRUCache[str, list[ScoredMemory]] = LRUCache(settings.query_cache_size, settings.query_cache_ttl)

    embedding_limiter = RateLimiter(settings.embedding_rate_capacity, settings.embedding_rate_refill,
                                    settings.embedding_rate_window)
    search_limiter = RateLimiter(settings.search_rate_capacity, settings.search_rate_refill,
                                 settings.search_rate_window)
    tool_limiter = RateLimiter(settings.tool_rate_capacity, settings.tool_rate_refill,
                               settings.tool_rate_window)

    embedding_service = EmbeddingService(provider, embedding_cache, embedding_limiter,
                                         timeout=settings.provider_timeout_seconds)
    repository = SQLiteMemoryRepository(settings.sqlite_path)
    store = MemoryStore(
        repository,
        embedding_service,
        query_cache,
        search_limiter=search_limiter,
        invalidate_on_write=settings.invalidate_queries_on_write,
        default_limit=settings.default_search_limit,
        default_threshold=settings.default_search_threshold,
    )
    tools = MemoryTools(store, rate_limiter=tool_limiter)

    logger.info(f"[Bootstrap] Memory system ready in {(time.perf_counter() - start) * 1000:.1f}ms "
                f"(db={settings.sqlite_path}, provider={type(provider).__name__}, dim={provider.dimension})")

    return MemorySystem(
        settings=settings,
        embedding_cache=embedding_cache,
        query_cache=query_cache,
        embedding_limiter=embedding_limiter,
        search_limiter=search_limiter,
        tool_limiter=tool_limiter,
        embedding_service=embedding_service,
        repository=repository,
        store=store,
        tools=tools,
    )
