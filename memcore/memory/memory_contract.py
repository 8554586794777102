from __future__ import annotations

from typing import Any, Protocol

import numpy as np

from memcore.memory.memory_models import Importance, Memory, ScoredMemory


class MemoryRepository(Protocol):
    """
    Owner-scoped persistence plus cosine similarity query.

    Every method filters by user_id; a row owned by someone else behaves
    exactly like a missing row.
    """

    def insert(self, user_id: str, content: str, embedding: np.ndarray,
               importance: Importance = "medium", metadata: dict[str, Any] | None = None) -> Memory: ...

    def get(self, memory_id: str, user_id: str) -> Memory | None: ...

    def update(self, memory_id: str, user_id: str, *, content: str | None = None,
               embedding: np.ndarray | None = None, metadata: dict[str, Any] | None = None,
               importance: Importance | None = None) -> Memory | None: ...

    def delete(self, memory_id: str, user_id: str) -> bool: ...

    def recent(self, user_id: str, limit: int) -> list[Memory]: ...

    def similarity_search(self, user_id: str, query_vector: np.ndarray, threshold: float, limit: int,
                          min_importance: Importance | None = None) -> list[ScoredMemory]: ...


# Fields never returned to the chat model
MEMORY_PAYLOAD_FORBIDDEN_KEYS = {"embedding"}
