from __future__ import annotations
import json
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any

import numpy as np

from config.thresholds import IMPORTANCE_RANK
from memcore.db.session import get_db_context
from memcore.memory.memory_models import Importance, Memory, ScoredMemory
from memcore.vector.vector_index import from_blob, to_blob, top_k_by_cosine

_COLUMNS = "id, user_id, content, embedding, metadata, importance, created_at, updated_at"

def dt_to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat(timespec="microseconds")

def iso_to_dt(s: str) -> datetime:
    return datetime.fromisoformat(s)

def _row_to_memory(r: sqlite3.Row) -> Memory:
    emb = None
    if r["embedding"] is not None:
        emb = from_blob(r["embedding"]).tolist()
    return Memory(
        id=r["id"],
        user_id=r["user_id"],
        content=r["content"],
        embedding=emb,
        metadata=json.loads(r["metadata"] or "{}"),
        importance=r["importance"],
        created_at=iso_to_dt(r["created_at"]),
        updated_at=iso_to_dt(r["updated_at"]),
    )


class SQLiteMemoryRepository:
    """
    Memory rows in SQLite, embeddings stored as float32 blobs.

    similarity_search is brute force over one user's rows (numpy cosine),
    which is fine for per-user memory counts in the thousands.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path

    def insert(self, user_id: str, content: str, embedding: np.ndarray,
               importance: Importance = "medium", metadata: dict[str, Any] | None = None) -> Memory:
        now = dt_to_iso(datetime.now(timezone.utc))
        memory_id = str(uuid.uuid4())
        with get_db_context(self.db_path) as conn:
            conn.execute(
                f"""INSERT INTO memories({_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (memory_id, user_id, content, to_blob(embedding), json.dumps(metadata or {}),
                 importance, now, now),
            )
            conn.commit()
            row = conn.execute(f"SELECT {_COLUMNS} FROM memories WHERE id=?", (memory_id,)).fetchone()
        return _row_to_memory(row)

    def get(self, memory_id: str, user_id: str) -> Memory | None:
        with get_db_context(self.db_path) as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM memories WHERE id=? AND user_id=?", (memory_id, user_id)
            ).fetchone()
        return _row_to_memory(row) if row else None

    def update(self, memory_id: str, user_id: str, *, content: str | None = None,
               embedding: np.ndarray | None = None, metadata: dict[str, Any] | None = None,
               importance: Importance | None = None) -> Memory | None:
        """Patch the given fields. Returns None if not found or not owned."""
        sets: list[str] = []
        params: list[Any] = []
        if content is not None:
            sets.append("content=?")
            params.append(content)
        if embedding is not None:
            sets.append("embedding=?")
            params.append(to_blob(embedding))
        if metadata is not None:
            sets.append("metadata=?")
            params.append(json.dumps(metadata))
        if importance is not None:
            sets.append("importance=?")
            params.append(importance)
        sets.append("updated_at=?")
        params.append(dt_to_iso(datetime.now(timezone.utc)))

        with get_db_context(self.db_path) as conn:
            cur = conn.execute(
                f"UPDATE memories SET {', '.join(sets)} WHERE id=? AND user_id=?",
                (*params, memory_id, user_id),
            )
            conn.commit()
            if cur.rowcount == 0:
                return None
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM memories WHERE id=? AND user_id=?", (memory_id, user_id)
            ).fetchone()
        return _row_to_memory(row) if row else None

    def delete(self, memory_id: str, user_id: str) -> bool:
        """Returns True only if a row owned by user_id was removed."""
        with get_db_context(self.db_path) as conn:
            cur = conn.execute("DELETE FROM memories WHERE id=? AND user_id=?", (memory_id, user_id))
            conn.commit()
            return cur.rowcount > 0

    def recent(self, user_id: str, limit: int) -> list[Memory]:
        with get_db_context(self.db_path) as conn:
            rows = conn.execute(
                f"""SELECT {_COLUMNS} FROM memories WHERE user_id=?
                    ORDER BY created_at DESC, rowid DESC LIMIT ?""",
                (user_id, max(limit, 0)),  # LIMIT -1 means unlimited in SQLite
            ).fetchall()
        return [_row_to_memory(r) for r in rows]

    def similarity_search(self, user_id: str, query_vector: np.ndarray, threshold: float, limit: int,
                          min_importance: Importance | None = None) -> list[ScoredMemory]:
        """
        Owner-scoped cosine search.

        Returns rows with similarity >= threshold, highest first, at most
        `limit`. Rows without an embedding are skipped. Raises
        VectorIndexError when stored vectors have a different dimension.
        """
        with get_db_context(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM memories WHERE user_id=? AND embedding IS NOT NULL",
                (user_id,),
            ).fetchall()

        if min_importance is not None:
            floor = IMPORTANCE_RANK[min_importance]
            rows = [r for r in rows if IMPORTANCE_RANK.get(r["importance"], 0) >= floor]

        if not rows:
            return []

        vectors = [from_blob(r["embedding"]) for r in rows]
        top = top_k_by_cosine(query_vector, vectors, k=limit, threshold=threshold)

        return [ScoredMemory(memory=_row_to_memory(rows[idx]), similarity=float(sim)) for idx, sim in top]
