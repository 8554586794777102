"""
Memory tools exposed to the chat model: remember, forget, list.

Each call returns a plain dict with a `success` flag so the tool layer can
hand it straight back to the model. Quota denials carry `retry_after`
(the 429 equivalent); provider failures become a generic error message and
are logged. Degraded searches are reported as normal successes.
"""

from __future__ import annotations

from typing import Any

from config.thresholds import (
    FORGET_SCAN_LIMIT, FORGET_SUGGESTIONS, SUGGESTION_PREVIEW_CHARS,
    TOOL_LIST_DEFAULT, TOOL_LIST_MAX, TOOL_LIST_MIN,
)
from memcore.cache.rate_limiter import RateLimiter
from memcore.errors import RateLimitExceeded
from memcore.logging_config import get_logger
from memcore.memory.memory_contract import MEMORY_PAYLOAD_FORBIDDEN_KEYS
from memcore.memory.memory_models import Importance, Memory
from memcore.memory.memory_store import MemoryStore

logger = get_logger(__name__)


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return TOOL_LIST_DEFAULT
    return min(max(int(limit), TOOL_LIST_MIN), TOOL_LIST_MAX)


def memory_payload(memory: Memory, similarity: float | None = None) -> dict[str, Any]:
    payload = memory.model_dump(mode="json", exclude=MEMORY_PAYLOAD_FORBIDDEN_KEYS)
    if similarity is not None:
        payload["similarity"] = similarity
    return payload


def _rate_limited(e: RateLimitExceeded) -> dict[str, Any]:
    return {
        "success": False,
        "error": "Rate limit exceeded. Please try again later.",
        "retry_after": e.retry_after,
    }


class MemoryTools:
    def __init__(self, store: MemoryStore, rate_limiter: RateLimiter | None = None):
        """
        Args:
            store: Memory store every tool operates on
            rate_limiter: Optional per-user quota across all tool calls
        """
        self.store = store
        self.rate_limiter = rate_limiter

    def _check_quota(self, user_id: str) -> None:
        if self.rate_limiter is not None and not self.rate_limiter.is_allowed(user_id):
            raise RateLimitExceeded(user_id, retry_after=self.rate_limiter.retry_after(user_id))

    def remember(self, user_id: str, content: str, importance: Importance = "medium",
                 metadata: dict[str, Any] | None = None) -> dict[str, Any]:
        """Store information in persistent memory."""
        try:
            self._check_quota(user_id)
            memory = self.store.store(user_id, content, importance=importance, metadata=metadata)
        except RateLimitExceeded as e:
            return {**_rate_limited(e), "content": content}
        except Exception as e:
            logger.error(f"[RememberTool] Failed to store memory: {e}")
            return {"success": False, "error": "Failed to store memory. Please try again.", "content": content}

        return {
            "success": True,
            "message": "Information stored in memory successfully",
            "memory_id": memory.id,
            "content": content,
            "importance": importance,
        }

    def forget(self, user_id: str, memory_id: str | None = None, content: str | None = None) -> dict[str, Any]:
        """
        Delete one memory by id, or every recent memory whose content
        contains `content` (case-insensitive).
        """
        try:
            self._check_quota(user_id)

            if memory_id:
                if self.store.delete(memory_id, user_id):
                    return {"success": True, "message": "Memory deleted successfully", "memory_id": memory_id}
                return {
                    "success": False,
                    "error": "Memory not found or you do not have permission to delete it",
                    "memory_id": memory_id,
                }

            if content:
                memories = self.store.list_memories(user_id, limit=FORGET_SCAN_LIMIT)
                needle = content.lower()
                matching = [m for m in memories if needle in m.content.lower()]

                if not matching:
                    return {
                        "success": False,
                        "error": "No memories found matching the content",
                        "content": content,
                        "suggestions": [
                            {"id": m.id, "content": m.content[:SUGGESTION_PREVIEW_CHARS]}
                            for m in memories[:FORGET_SUGGESTIONS]
                        ],
                    }

                deleted = sum(1 for m in matching if self.store.delete(m.id, user_id))
                return {
                    "success": True,
                    "message": f"Deleted {deleted} matching memories",
                    "deleted_count": deleted,
                    "total_found": len(matching),
                }

            return {"success": False, "error": "Either memory_id or content must be provided"}

        except RateLimitExceeded as e:
            return _rate_limited(e)
        except Exception as e:
            logger.error(f"[ForgetTool] Failed to delete memory: {e}")
            return {"success": False, "error": "Failed to delete memory. Please try again."}

    def list_memories(self, user_id: str, query: str | None = None, limit: int | None = TOOL_LIST_DEFAULT) -> dict[str, Any]:
        """Semantic search when a query is given, otherwise the most recent memories."""
        safe_limit = clamp_limit(limit)
        try:
            self._check_quota(user_id)

            if query:
                hits = self.store.search(user_id, query, limit=safe_limit)
                memories = [memory_payload(h.memory, h.similarity) for h in hits]
                return {"success": True, "memories": memories, "count": len(memories), "query": query}

            memories = [memory_payload(m) for m in self.store.list_memories(user_id, limit=safe_limit)]
            return {"success": True, "memories": memories, "count": len(memories)}

        except RateLimitExceeded as e:
            return _rate_limited(e)
        except Exception as e:
            logger.error(f"[ListMemoriesTool] Failed to retrieve memories: {e}")
            return {"success": False, "error": "Failed to retrieve memories. Please try again."}
