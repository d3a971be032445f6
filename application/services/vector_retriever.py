"""Dense half of the ensemble: cosine similarity against chunk embeddings."""
from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Sequence

import numpy as np

from domain.entities import Chunk
from domain.interfaces import Embedder


logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class _Block:
    chunk_ids: list[str]
    unit_vectors: np.ndarray


class EmbeddingMatrix:
    """Unit-normalised chunk embeddings grouped by dimension.

    Chunks without an embedding or with a zero vector are not part of the
    matrix: the vector retriever has no opinion about them.
    """

    def __init__(self, chunks: Sequence[Chunk]) -> None:
        grouped: dict[int, tuple[list[str], list[np.ndarray]]] = {}
        for chunk in chunks:
            if chunk.embedding is None or len(chunk.embedding) == 0:
                continue
            try:
                vector = np.asarray(chunk.embedding, dtype=np.float64)
            except (TypeError, ValueError):
                logger.warning("Chunk %s has a malformed embedding", chunk.id)
                continue
            norm = float(np.linalg.norm(vector))
            if vector.ndim != 1 or norm == 0.0 or not np.isfinite(norm):
                logger.debug("Skipping unusable embedding of chunk %s", chunk.id)
                continue
            ids, rows = grouped.setdefault(vector.shape[0], ([], []))
            ids.append(chunk.id)
            rows.append(vector / norm)
        self._blocks = {
            dimension: _Block(chunk_ids=ids, unit_vectors=np.vstack(rows))
            for dimension, (ids, rows) in grouped.items()
        }

    def __len__(self) -> int:
        return sum(len(block.chunk_ids) for block in self._blocks.values())

    def cosine_scores(self, query_vector: Sequence[float]) -> dict[str, float] | None:
        """Cosine similarity of every embedded chunk to ``query_vector``.

        Returns ``None`` when the query vector itself is unusable (not a flat
        numeric vector, zero or non-finite, or of a dimension no chunk has),
        and an empty dict when the matrix holds no chunks.
        """
        if not self._blocks:
            return {}
        try:
            query = np.asarray(query_vector, dtype=np.float64)
        except (TypeError, ValueError):
            return None
        if query.ndim != 1:
            return None
        norm = float(np.linalg.norm(query))
        if norm == 0.0 or not np.isfinite(norm):
            return None
        block = self._blocks.get(query.shape[0])
        if block is None:
            return None
        # Negative similarities are kept; fusion rescales them.
        similarities = np.clip(block.unit_vectors @ (query / norm), -1.0, 1.0)
        return {chunk_id: float(score) for chunk_id, score in zip(block.chunk_ids, similarities)}


def cosine_scores(query_vector: Sequence[float], chunks: Sequence[Chunk]) -> dict[str, float] | None:
    return EmbeddingMatrix(chunks).cosine_scores(query_vector)


@dataclass(slots=True)
class VectorScores:
    scores: dict[str, float] = field(default_factory=dict)
    degraded: bool = False
    reason: str | None = None


class EmbeddingPool:
    """Bounded worker pool reserved for query embedding calls.

    A slot stays taken until the embedding call returns, even after the
    caller stopped waiting for it. When every slot is held by a stuck call,
    ``submit`` refuses new work instead of queueing it.
    """

    def __init__(self, max_workers: int = 4) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="query-embedding")
        self._slots = threading.BoundedSemaphore(max_workers)

    def submit(self, fn: Callable[..., list[float]], *args) -> Future | None:
        if not self._slots.acquire(blocking=False):
            return None
        try:
            future = self._executor.submit(fn, *args)
        except BaseException:
            self._slots.release()
            raise
        future.add_done_callback(lambda _: self._slots.release())
        return future

    def shutdown(self) -> None:
        # Never joins: a stuck embedding call must not hold up the caller.
        self._executor.shutdown(wait=False, cancel_futures=True)


class VectorRetriever:
    """Embeds the query once and scores it against an :class:`EmbeddingMatrix`.

    Embedding failures, timeouts, a saturated pool and unusable query vectors
    never propagate: the retriever reports an empty, degraded result so the
    caller can fall back to lexical ranking.
    """

    def __init__(self, embedder: Embedder, pool: EmbeddingPool, *, timeout_seconds: float = 10.0) -> None:
        self._embedder = embedder
        self._pool = pool
        self._timeout_seconds = timeout_seconds

    async def retrieve(self, query_text: str, matrix: EmbeddingMatrix) -> VectorScores:
        if not query_text.strip() or len(matrix) == 0:
            return VectorScores()
        future = self._pool.submit(self._embedder.embed_query, query_text)
        if future is None:
            logger.warning(
                "No free embedding worker for %s; continuing lexical-only",
                self._embedder.model_id,
            )
            return VectorScores(degraded=True, reason="embedding unavailable")
        try:
            query_vector = await asyncio.wait_for(asyncio.wrap_future(future), timeout=self._timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Query embedding with %s timed out after %.1fs; continuing lexical-only",
                self._embedder.model_id,
                self._timeout_seconds,
            )
            return VectorScores(degraded=True, reason="embedding timed out")
        except Exception as exc:
            logger.warning(
                "Query embedding with %s failed (%s); continuing lexical-only",
                self._embedder.model_id,
                exc,
            )
            return VectorScores(degraded=True, reason=f"embedding failed: {exc}")
        scores = matrix.cosine_scores(query_vector)
        if scores is None:
            logger.warning("Query embedding from %s is unusable; continuing lexical-only", self._embedder.model_id)
            return VectorScores(degraded=True, reason="query embedding unusable")
        logger.debug("Vector retriever scored %d of %d embedded chunks", len(scores), len(matrix))
        return VectorScores(scores=scores)


__all__ = ["EmbeddingMatrix", "EmbeddingPool", "VectorRetriever", "VectorScores", "cosine_scores"]
