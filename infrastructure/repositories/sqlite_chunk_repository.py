"""SQLite repository for lease chunks and their embeddings."""
from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Iterable

from domain.entities import Chunk
from domain.errors import StoreUnavailable
from domain.interfaces import ChunkRepository


logger = logging.getLogger(__name__)

# Stay below SQLITE_MAX_VARIABLE_NUMBER on older builds.
_ID_BATCH = 500
_COLUMNS = "id, document_id, page, chunk_index, content, embedding"


class SqliteChunkRepository(ChunkRepository):
    """Stores chunks in the shared SQLite database."""

    def __init__(self, db_path: str | Path = "lease_retrieval.db") -> None:
        self._db_path = Path(db_path)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path)

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS lease_chunks (
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL,
                    page INTEGER NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    content TEXT NOT NULL,
                    embedding TEXT,
                    UNIQUE (document_id, chunk_index)
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_lease_chunks_document_id ON lease_chunks (document_id)")

    def add(self, chunk: Chunk) -> str:
        if not chunk.text.strip():
            raise ValueError(f"Chunk {chunk.id} has no text")
        embedding = json.dumps([float(value) for value in chunk.embedding]) if chunk.embedding is not None else None
        with self._connect() as conn:
            conn.execute(
                f"REPLACE INTO lease_chunks ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                (chunk.id, chunk.document_id, chunk.page, chunk.chunk_index, chunk.text, embedding),
            )
        return chunk.id

    def get(self, chunk_id: str) -> Chunk | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT {_COLUMNS} FROM lease_chunks WHERE id = ?",
                    (chunk_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"chunk store unavailable: {exc}") from exc
        return self._row_to_chunk(row) if row is not None else None

    def chunks_for_documents(self, document_ids: Iterable[str]) -> list[Chunk]:
        ids = sorted(set(document_ids))
        if not ids:
            return []
        rows: list[tuple] = []
        try:
            with self._connect() as conn:
                for start in range(0, len(ids), _ID_BATCH):
                    batch = ids[start : start + _ID_BATCH]
                    placeholders = ", ".join("?" for _ in batch)
                    rows.extend(
                        conn.execute(
                            f"SELECT {_COLUMNS} FROM lease_chunks WHERE document_id IN ({placeholders})",
                            batch,
                        ).fetchall()
                    )
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"chunk store unavailable: {exc}") from exc
        chunks = [self._row_to_chunk(row) for row in rows]
        chunks.sort(key=lambda chunk: chunk.sort_key)
        logger.debug("Loaded %d chunk(s) for %d document(s)", len(chunks), len(ids))
        return chunks

    def delete_document(self, document_id: str) -> int:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM lease_chunks WHERE document_id = ?", (document_id,))
            return cursor.rowcount

    @staticmethod
    def _row_to_chunk(row: tuple) -> Chunk:
        return Chunk(
            id=row[0],
            document_id=row[1],
            page=int(row[2]),
            chunk_index=int(row[3]),
            text=row[4],
            embedding=json.loads(row[5]) if row[5] is not None else None,
        )


__all__ = ["SqliteChunkRepository"]
