"""
Cosine similarity helpers and vector <-> blob conversion for SQLite storage.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from memcore.errors import VectorIndexError


def to_blob(vector: np.ndarray) -> bytes:
    return np.asarray(vector, dtype=np.float32).tobytes()


def from_blob(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=np.float32)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """1 - cosine distance."""
    return float(np.dot(a, b) / ((np.linalg.norm(a) + 1e-9) * (np.linalg.norm(b) + 1e-9)))


def cosine_scores(query_vec: np.ndarray, vectors: Sequence[np.ndarray]) -> np.ndarray:
    """Cosine similarity of query_vec against every row, in row order."""
    if len(vectors) == 0:
        return np.zeros(0, dtype=np.float32)

    try:
        matrix = np.vstack(vectors).astype(np.float32, copy=False)
    except ValueError as e:
        raise VectorIndexError(f"Stored vectors have inconsistent dimensions: {e}") from e
    query = np.asarray(query_vec, dtype=np.float32)
    if matrix.shape[1] != query.shape[0]:
        raise VectorIndexError(
            f"Dimension mismatch: query has {query.shape[0]}, stored vectors have {matrix.shape[1]}"
        )

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query) + 1e-9
    return (matrix @ query) / norms


def top_k_by_cosine(query_vec: np.ndarray, vectors: Sequence[np.ndarray], k: int,
                    threshold: float | None = None) -> list[tuple[int, float]]:
    """
    Rank rows by cosine similarity.

    Args:
        query_vec: Query embedding
        vectors: Candidate embeddings
        k: Maximum number of results
        threshold: Optional similarity floor (inclusive)

    Returns:
        List of (row position, score), highest score first
    """
    scores = cosine_scores(query_vec, vectors)
    ranked = sorted(enumerate(scores.tolist()), key=lambda x: x[1], reverse=True)
    if threshold is not None:
        ranked = [(i, s) for i, s in ranked if s >= threshold]
    return ranked[:max(k, 0)]
