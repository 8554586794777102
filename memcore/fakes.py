"""Deterministic stand-ins shared by the test modules."""

from __future__ import annotations

from memcore.vector.embedder import HashEmbeddingProvider

DIM = 32


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingProvider(HashEmbeddingProvider):
    """Hash provider that records every call."""

    def __init__(self, dimension: int = DIM):
        super().__init__(dimension)
        self.calls: list[list[str]] = []
        self.fail_with: Exception | None = None

    def create_embedding(self, texts):
        self.calls.append(list(texts))
        if self.fail_with is not None:
            raise self.fail_with
        return super().create_embedding(texts)
