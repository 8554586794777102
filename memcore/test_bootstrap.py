from config.settings import Settings
from memcore.bootstrap import build_memory_system
from memcore.fakes import CountingProvider


def test_build_memory_system(tmp_path):
    settings = Settings(sqlite_path=str(tmp_path / "db" / "memcore.db"), embedding_dim=16,
                        provider_timeout_seconds=None)
    system = build_memory_system(settings)
    try:
        assert system.embedding_service.dimension == 16
        result = system.tools.remember("u1", "likes jazz")
        assert result["success"] is True

        hits = system.store.search("u1", "likes jazz")
        assert hits[0].memory.id == result["memory_id"]

        stats = system.stats()
        assert stats["embedding_cache"].size == 1
        assert stats["query_cache"].size == 1
        assert system.cleanup() == 0
    finally:
        system.close()


def test_injected_provider_and_isolated_state(tmp_path):
    provider = CountingProvider()
    a = build_memory_system(Settings(sqlite_path=str(tmp_path / "a.db")), provider=provider)
    b = build_memory_system(Settings(sqlite_path=str(tmp_path / "b.db")), provider=provider)
    try:
        a.embedding_service.embed("shared text")
        b.embedding_service.embed("shared text")
        assert len(provider.calls) == 2
        assert a.embedding_cache is not b.embedding_cache
    finally:
        a.close()
        b.close()
