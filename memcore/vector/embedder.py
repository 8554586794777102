"""
Embedding providers.

Every provider exposes `dimension` and `create_embedding(texts)`, taking a
list of texts and returning one float32 vector per text in the same order.
Providers do no caching and no retrying; EmbeddingService owns both.

- HashEmbeddingProvider: deterministic hash-seeded vectors (tests/offline)
- SentenceTransformerProvider: local sentence-transformers model
- OpenAIEmbeddingProvider: OpenAI embeddings API (text-embedding-3-small, 1536d)
"""

from __future__ import annotations

import hashlib
import os
from typing import Protocol

import numpy as np

from memcore.errors import ConfigurationError, EmbeddingProviderError
from memcore.logging_config import get_logger

logger = get_logger(__name__)

OPENAI_DEFAULT_MODEL = "text-embedding-3-small"
OPENAI_DEFAULT_DIM = 1536


class EmbeddingProvider(Protocol):
    dimension: int

    def create_embedding(self, texts: list[str]) -> list[np.ndarray]: ...


def _stable_hash(text: str) -> int:
    """Hash function for deterministic mock embeddings."""
    h = hashlib.sha256(text.encode("utf-8")).digest()
    return int.from_bytes(h[:8], "little", signed=False)


def _embed_text_hash(text: str, dim: int) -> np.ndarray:
    rng = np.random.default_rng(_stable_hash(text))
    v = rng.normal(size=(dim,)).astype("float32")
    # normalize
    n = np.linalg.norm(v) + 1e-9
    return v / n


class HashEmbeddingProvider:
    """Deterministic, dependency-free embeddings. Same text -> same unit vector."""

    def __init__(self, dimension: int = OPENAI_DEFAULT_DIM):
        if dimension <= 0:
            raise ConfigurationError(f"dimension must be positive, got {dimension}")
        self.dimension = dimension

    def create_embedding(self, texts: list[str]) -> list[np.ndarray]:
        return [_embed_text_hash(t, self.dimension) for t in texts]


class SentenceTransformerProvider:
    """Local sentence-transformers model, loaded on first use (GPU if available)."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2", dimension: int = 384):
        self.model_name = model_name
        self.dimension = dimension
        self._model = None

    def _get_model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            import torch

            device = 'cuda' if torch.cuda.is_available() else 'cpu'
            self._model = SentenceTransformer(self.model_name, device=device)
            self.dimension = int(self._model.get_sentence_embedding_dimension() or self.dimension)
            logger.info(f"[Embedder] Loaded {self.model_name} on {device} ({self.dimension}d)")

        return self._model

    def create_embedding(self, texts: list[str]) -> list[np.ndarray]:
        model = self._get_model()
        embeddings = model.encode(texts, convert_to_numpy=True, normalize_embeddings=True)
        return [e.astype("float32") for e in embeddings]


class OpenAIEmbeddingProvider:
    """OpenAI embeddings API. A list input is sent as one request."""

    def __init__(self, model: str = OPENAI_DEFAULT_MODEL, dimension: int = OPENAI_DEFAULT_DIM,
                 api_key: str | None = None):
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY is required for embeddings")

        self.model = model
        self.dimension = dimension
        self._api_key = api_key
        self._client = None

    def _get_client(self):
        if self._client is None:
            from openai import OpenAI

            self._client = OpenAI(api_key=self._api_key)
            logger.info(f"[Embedder] OpenAI client ready for model: {self.model}")
        return self._client

    def create_embedding(self, texts: list[str]) -> list[np.ndarray]:
        from openai import OpenAIError

        try:
            response = self._get_client().embeddings.create(model=self.model, input=texts)
        except OpenAIError as e:
            logger.error(f"[Embedder] OpenAI embedding request failed: {e}")
            raise EmbeddingProviderError(f"OpenAI embedding failed: {e}") from e

        # The API returns items with an explicit index; do not trust list order
        data = sorted(response.data, key=lambda item: item.index)
        return [np.asarray(item.embedding, dtype=np.float32) for item in data]


def create_provider(name: str, model: str | None = None, dimension: int | None = None) -> EmbeddingProvider:
    """
    Build a provider by name.

    Args:
        name: "hash", "sentence-transformers" or "openai"
        model: Model name for the real providers
        dimension: Output dimension
    """
    name = name.lower()
    if name == "hash":
        return HashEmbeddingProvider(dimension=dimension or OPENAI_DEFAULT_DIM)
    if name in ("sentence-transformers", "local"):
        return SentenceTransformerProvider(model_name=model or "all-MiniLM-L6-v2", dimension=dimension or 384)
    if name == "openai":
        return OpenAIEmbeddingProvider(model=model or OPENAI_DEFAULT_MODEL, dimension=dimension or OPENAI_DEFAULT_DIM)
    raise ConfigurationError(f"Unknown embedding provider: {name}")
