from memcore.memory.memory_models import (
    Importance,
    Memory,
    ScoredMemory,
    SearchDegraded,
    SearchOk,
    SearchOutcome,
)
from memcore.memory.memory_repository import SQLiteMemoryRepository
from memcore.memory.memory_store import MemoryStore
from memcore.memory.memory_tools import MemoryTools

__all__ = [
    "Importance",
    "Memory",
    "ScoredMemory",
    "SearchDegraded",
    "SearchOk",
    "SearchOutcome",
    "SQLiteMemoryRepository",
    "MemoryStore",
    "MemoryTools",
]
