"""Request-scoped index cache keyed by the validated document set."""
from __future__ import annotations

import hashlib
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Hashable, Iterable

import numpy as np

from application.services.bm25_index import BM25Index
from application.services.lexical_retriever import LexicalRetriever
from application.services.vector_retriever import EmbeddingMatrix
from domain.entities import Chunk


logger = logging.getLogger(__name__)


def fingerprint_chunks(chunks: Iterable[Chunk]) -> str:
    """Digest of chunk identity, text and embedding, independent of input order."""
    digest = hashlib.blake2b(digest_size=16)
    for chunk in sorted(chunks, key=lambda item: item.sort_key):
        digest.update(f"{chunk.id}\x1f{chunk.document_id}\x1f{chunk.chunk_index}\x1f{chunk.page}\x1f".encode("utf-8"))
        digest.update(chunk.text.encode("utf-8"))
        if chunk.embedding is not None:
            digest.update(b"\x1e")
            try:
                digest.update(np.asarray(chunk.embedding, dtype=np.float64).tobytes())
            except (TypeError, ValueError):
                digest.update(repr(chunk.embedding).encode("utf-8"))
        digest.update(b"\x1d")
    return digest.hexdigest()


@dataclass(slots=True, frozen=True)
class ScopeIndex:
    """Everything retrieval needs for one document scope. Never mutated."""

    fingerprint: str
    chunks: tuple[Chunk, ...]
    chunks_by_id: dict[str, Chunk]
    bm25: BM25Index
    embeddings: EmbeddingMatrix

    @classmethod
    def build(cls, chunks: Iterable[Chunk], lexical: LexicalRetriever, fingerprint: str | None = None) -> "ScopeIndex":
        ordered = tuple(sorted(chunks, key=lambda item: item.sort_key))
        return cls(
            fingerprint=fingerprint if fingerprint is not None else fingerprint_chunks(ordered),
            chunks=ordered,
            chunks_by_id={chunk.id: chunk for chunk in ordered},
            bm25=lexical.build_index(list(ordered)),
            embeddings=EmbeddingMatrix(ordered),
        )


@dataclass(slots=True)
class _Entry:
    index: ScopeIndex
    stored_at: float


class RetrievalCache:
    """TTL cache of :class:`ScopeIndex` objects.

    Instances are created by the caller and passed into each search; there is
    no module-level cache. Entries are keyed by the document set plus a
    ``variant`` naming how the index was built (the BM25 parameters), and are
    reused only while younger than ``ttl_seconds`` and while the fingerprint
    matches the chunks just read from the store.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 64,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[tuple[frozenset[str], Hashable], _Entry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def key(document_ids: Iterable[str], variant: Hashable = None) -> tuple[frozenset[str], Hashable]:
        return (frozenset(document_ids), variant)

    def get(self, document_ids: Iterable[str], fingerprint: str, variant: Hashable = None) -> ScopeIndex | None:
        key = self.key(document_ids, variant)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at > self._ttl_seconds:
            del self._entries[key]
            logger.debug("Scope index for %d document(s) expired", len(key[0]))
            return None
        if entry.index.fingerprint != fingerprint:
            del self._entries[key]
            logger.debug("Scope index for %d document(s) is stale", len(key[0]))
            return None
        return entry.index

    def put(self, document_ids: Iterable[str], index: ScopeIndex, variant: Hashable = None) -> None:
        key = self.key(document_ids, variant)
        self._entries.pop(key, None)
        self._entries[key] = _Entry(index=index, stored_at=self._clock())
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def invalidate(self, document_id: str) -> int:
        stale = [key for key in self._entries if document_id in key[0]]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()


__all__ = ["RetrievalCache", "ScopeIndex", "fingerprint_chunks"]
