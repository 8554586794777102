from memcore.vector.embedder import (
    EmbeddingProvider,
    HashEmbeddingProvider,
    OpenAIEmbeddingProvider,
    SentenceTransformerProvider,
    create_provider,
)
from memcore.vector.embedding_service import EmbeddingService, hash_text

__all__ = [
    "EmbeddingProvider",
    "HashEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "SentenceTransformerProvider",
    "create_provider",
    "EmbeddingService",
    "hash_text",
]
