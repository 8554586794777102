import numpy as np
import pytest

from memcore.errors import VectorIndexError
from memcore.memory.memory_repository import SQLiteMemoryRepository


def _vec(*xs):
    return np.array(xs, dtype=np.float32)


def test_insert_and_get(repository):
    m = repository.insert("u1", "likes tea", _vec(1, 0), importance="high", metadata={"tags": ["drink"]})
    assert m.user_id == "u1"
    assert m.importance == "high"
    assert m.metadata == {"tags": ["drink"]}
    assert m.embedding == pytest.approx([1.0, 0.0])

    assert repository.get(m.id, "u1").content == "likes tea"
    assert repository.get(m.id, "u2") is None


def test_update_is_owner_scoped(repository):
    m = repository.insert("u1", "old", _vec(1, 0))
    assert repository.update(m.id, "u2", content="hijack") is None

    updated = repository.update(m.id, "u1", importance="low")
    assert updated.content == "old"
    assert updated.importance == "low"
    assert updated.updated_at >= m.updated_at


def test_delete_is_owner_scoped(repository):
    m = repository.insert("victim", "secret", _vec(1, 0))
    assert repository.delete(m.id, "attacker") is False
    assert repository.get(m.id, "victim") is not None
    assert repository.delete(m.id, "victim") is True
    assert repository.delete(m.id, "victim") is False


def test_recent_newest_first(repository):
    ids = [repository.insert("u1", f"m{i}", _vec(1, 0)).id for i in range(4)]
    repository.insert("u2", "other", _vec(1, 0))
    recent = repository.recent("u1", 3)
    assert [m.id for m in recent] == ids[::-1][:3]


def test_similarity_search(repository):
    repository.insert("u1", "east", _vec(1, 0))
    repository.insert("u1", "north", _vec(0, 1), importance="high")
    repository.insert("u1", "north-east", _vec(1, 1), importance="high")
    repository.insert("u2", "east too", _vec(1, 0))

    hits = repository.similarity_search("u1", _vec(1, 0), threshold=0.5, limit=5)
    assert [h.memory.content for h in hits] == ["east", "north-east"]
    assert hits[0].similarity >= hits[1].similarity

    hits = repository.similarity_search("u1", _vec(1, 0), threshold=0.0, limit=1)
    assert [h.memory.content for h in hits] == ["east"]

    hits = repository.similarity_search("u1", _vec(1, 0), threshold=0.0, limit=5, min_importance="high")
    assert [h.memory.content for h in hits] == ["north-east", "north"]


def test_similarity_search_dimension_mismatch(repository):
    repository.insert("u1", "x", _vec(1, 0))
    with pytest.raises(VectorIndexError):
        repository.similarity_search("u1", _vec(1, 0, 0), threshold=0.0, limit=5)


def test_separate_repositories_share_file(db_path):
    a = SQLiteMemoryRepository(db_path)
    b = SQLiteMemoryRepository(db_path)
    m = a.insert("u1", "shared", _vec(1, 0))
    assert b.get(m.id, "u1") is not None


def test_recent_negative_limit_is_empty(repository):
    repository.insert("u1", "m", _vec(1, 0))
    assert repository.recent("u1", -1) == []
    assert repository.recent("u1", 0) == []
