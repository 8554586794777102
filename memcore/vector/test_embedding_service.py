import threading

import numpy as np
import pytest

from config.settings import Settings
from memcore.cache.lru_cache import LRUCache
from memcore.cache.rate_limiter import RateLimiter
from memcore.errors import EmbeddingProviderError, OperationTimeout, RateLimitExceeded
from memcore.fakes import DIM, CountingProvider, FakeClock
from memcore.vector.embedder import HashEmbeddingProvider, create_provider
from memcore.vector.embedding_service import EmbeddingService, hash_text
from memcore.vector.vector_index import cosine_similarity, top_k_by_cosine


def test_embed_is_cached(embedding_service, provider):
    first = embedding_service.embed("hello")
    second = embedding_service.embed("hello")
    assert len(provider.calls) == 1
    assert first.shape == (DIM,)
    assert np.array_equal(first, second)
    assert not second.flags.writeable


def test_cache_hit_skips_rate_limiter(provider, clock):
    limiter = RateLimiter(capacity=1, refill_rate=0, window=60, clock=clock)
    service = EmbeddingService(provider, LRUCache(10, 60, clock=clock), limiter)
    service.embed("hello")
    assert limiter.get_remaining("embedding-global") == 0
    service.embed("hello")
    with pytest.raises(RateLimitExceeded) as exc:
        service.embed("other")
    assert exc.value.identifier == "embedding-global"
    assert len(provider.calls) == 1


def test_batch_only_fetches_uncached(embedding_service, provider, limiter):
    texts = ["a", "b", "c", "d", "e"]
    for t in ("a", "c", "e"):
        embedding_service.embed(t)
    provider.calls.clear()
    before = limiter.get_remaining("embedding-global")

    vectors = embedding_service.embed_batch(texts)

    assert provider.calls == [["b", "d"]]
    assert before - limiter.get_remaining("embedding-global") == pytest.approx(2)
    assert len(vectors) == 5
    expected = HashEmbeddingProvider(DIM).create_embedding(texts)
    for got, want in zip(vectors, expected):
        assert np.allclose(got, want)
    assert embedding_service.cache.has(hash_text("d"))


def test_fully_cached_batch_does_not_touch_limiter(embedding_service, provider, limiter):
    embedding_service.embed_batch(["x", "y"])
    remaining = limiter.get_remaining("embedding-global")
    provider.calls.clear()
    embedding_service.embed_batch(["y", "x"])
    assert provider.calls == []
    assert limiter.get_remaining("embedding-global") == remaining
    assert embedding_service.embed_batch([]) == []


def test_batch_denied_when_quota_short(provider, clock):
    limiter = RateLimiter(capacity=2, refill_rate=0, window=60, clock=clock)
    service = EmbeddingService(provider, LRUCache(10, 60, clock=clock), limiter)
    with pytest.raises(RateLimitExceeded) as exc:
        service.embed_batch(["a", "b", "c"])
    assert exc.value.cost == 3
    assert provider.calls == []
    assert limiter.get_remaining("embedding-global") == 2


def test_provider_errors_propagate(embedding_service, provider):
    provider.fail_with = ConnectionError("network down")
    with pytest.raises(ConnectionError):
        embedding_service.embed("hello")
    assert len(embedding_service.cache) == 0


def test_malformed_provider_output(clock):
    class ShortProvider:
        dimension = DIM

        def create_embedding(self, texts):
            return [np.zeros(DIM - 1, dtype=np.float32) for _ in texts]

    service = EmbeddingService(ShortProvider(), LRUCache(10, 60, clock=clock),
                               RateLimiter(10, 1, 60, clock=clock))
    with pytest.raises(EmbeddingProviderError):
        service.embed("x")
    assert len(service.cache) == 0


def test_timeout_is_all_or_nothing():
    release = threading.Event()

    class SlowProvider(CountingProvider):
        def create_embedding(self, texts):
            release.wait(5)
            return super().create_embedding(texts)

    clock = FakeClock()
    service = EmbeddingService(SlowProvider(), LRUCache(10, 60, clock=clock),
                               RateLimiter(10, 1, 60, clock=clock))
    try:
        with pytest.raises(OperationTimeout):
            service.embed("slow", timeout=0.05)
        assert not service.cache.has(hash_text("slow"))
    finally:
        release.set()
        service.close()


def test_hash_provider_is_deterministic_and_normalized():
    p = HashEmbeddingProvider(64)
    a, b = p.create_embedding(["same", "same"])
    assert np.array_equal(a, b)
    assert np.linalg.norm(a) == pytest.approx(1.0, abs=1e-5)
    assert create_provider("hash", dimension=8).dimension == 8


def test_create_provider_uses_each_providers_defaults(monkeypatch):
    local = create_provider("sentence-transformers", model=None, dimension=None)
    assert local.model_name == "all-MiniLM-L6-v2"
    assert local.dimension == 384

    assert create_provider("hash").dimension == 1536

    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    remote = create_provider("openai")
    assert remote.model == "text-embedding-3-small"
    assert remote.dimension == 1536


def test_default_settings_leave_model_and_dimension_to_provider(monkeypatch):
    monkeypatch.delenv("MEMCORE_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("MEMCORE_EMBEDDING_DIM", raising=False)
    s = Settings(_env_file=None, embedding_provider="sentence-transformers")
    assert s.embedding_model is None
    assert s.embedding_dim is None
    local = create_provider(s.embedding_provider, model=s.embedding_model, dimension=s.embedding_dim)
    assert (local.model_name, local.dimension) == ("all-MiniLM-L6-v2", 384)


def test_top_k_by_cosine_orders_and_filters():
    q = np.array([1.0, 0.0], dtype=np.float32)
    vectors = [np.array([0.0, 1.0]), np.array([1.0, 0.0]), np.array([1.0, 1.0])]
    ranked = top_k_by_cosine(q, vectors, k=5, threshold=0.5)
    assert [i for i, _ in ranked] == [1, 2]
    assert ranked[0][1] == pytest.approx(cosine_similarity(q, vectors[1]))
