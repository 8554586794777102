from __future__ import annotations

import pytest

from memcore.cache.lru_cache import LRUCache
from memcore.cache.rate_limiter import RateLimiter
from memcore.db.session import init_db
from memcore.fakes import CountingProvider, FakeClock
from memcore.memory.memory_repository import SQLiteMemoryRepository
from memcore.memory.memory_store import MemoryStore
from memcore.vector.embedding_service import EmbeddingService


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return CountingProvider()


@pytest.fixture
def limiter(clock):
    return RateLimiter(capacity=100, refill_rate=10, window=60, clock=clock)


@pytest.fixture
def embedding_service(provider, limiter, clock):
    service = EmbeddingService(provider, LRUCache(500, 86400, clock=clock), limiter)
    yield service
    service.close()


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "memcore.db")
    init_db(path)
    return path


@pytest.fixture
def repository(db_path):
    return SQLiteMemoryRepository(db_path)


@pytest.fixture
def store(repository, embedding_service, clock):
    s = MemoryStore(repository, embedding_service, LRUCache(200, 1800, clock=clock))
    yield s
    s.close()
