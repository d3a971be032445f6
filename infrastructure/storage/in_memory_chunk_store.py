"""In-memory chunk store for demos and tests."""
from __future__ import annotations

from typing import Iterable

from domain.entities import Chunk
from domain.errors import StoreUnavailable
from domain.interfaces import ChunkRepository


class InMemoryChunkStore(ChunkRepository):
    """Keeps chunks in Python dicts, grouped by document."""

    def __init__(self, chunks: Iterable[Chunk] = ()) -> None:
        self._by_document: dict[str, dict[int, Chunk]] = {}
        self._by_id: dict[str, Chunk] = {}
        self.available = True
        for chunk in chunks:
            self.add(chunk)

    def add(self, chunk: Chunk) -> str:
        if not chunk.text.strip():
            raise ValueError(f"Chunk {chunk.id} has no text")
        existing = self._by_document.get(chunk.document_id, {}).get(chunk.chunk_index)
        if existing is not None and existing.id != chunk.id:
            raise ValueError(
                f"Document {chunk.document_id} already has chunk_index {chunk.chunk_index} ({existing.id})"
            )
        previous = self._by_id.get(chunk.id)
        if previous is not None:
            self._by_document.get(previous.document_id, {}).pop(previous.chunk_index, None)
        self._by_document.setdefault(chunk.document_id, {})[chunk.chunk_index] = chunk
        self._by_id[chunk.id] = chunk
        return chunk.id

    def get(self, chunk_id: str) -> Chunk | None:
        self._check_available()
        return self._by_id.get(chunk_id)

    def chunks_for_documents(self, document_ids: Iterable[str]) -> list[Chunk]:
        self._check_available()
        chunks: list[Chunk] = []
        for document_id in sorted(set(document_ids)):
            positions = self._by_document.get(document_id, {})
            chunks.extend(positions[index] for index in sorted(positions))
        return chunks

    def delete_document(self, document_id: str) -> int:
        positions = self._by_document.pop(document_id, {})
        for chunk in positions.values():
            self._by_id.pop(chunk.id, None)
        return len(positions)

    def _check_available(self) -> None:
        if not self.available:
            raise StoreUnavailable("in-memory chunk store marked unavailable")


__all__ = ["InMemoryChunkStore"]
