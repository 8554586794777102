from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

Importance = Literal["low", "medium", "high"]

class Memory(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    content: str
    embedding: list[float] | None = Field(default=None, repr=False)
    metadata: dict[str, Any] = {}
    importance: Importance = "medium"
    created_at: datetime
    updated_at: datetime

class ScoredMemory(BaseModel):
    model_config = ConfigDict(frozen=True)

    memory: Memory
    similarity: float


@dataclass(frozen=True)
class SearchOk:
    """Ranked results from the similarity path."""
    results: list[ScoredMemory]
    cached: bool = False

    @property
    def degraded(self) -> bool:
        return False


@dataclass(frozen=True)
class SearchDegraded:
    """Best-effort lexical results, returned because the similarity path failed."""
    results: list[ScoredMemory]
    cause: BaseException = field(repr=False)

    @property
    def degraded(self) -> bool:
        return True


SearchOutcome = Union[SearchOk, SearchDegraded]
