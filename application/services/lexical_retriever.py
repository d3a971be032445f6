"""Lexical half of the ensemble: BM25 over the validated chunk scope."""
from __future__ import annotations

import logging

from application.services.bm25_index import BM25Index
from domain.entities import Chunk, RetrievalSettings


logger = logging.getLogger(__name__)


class LexicalRetriever:
    """Builds scoped BM25 indexes and scores queries against them."""

    def __init__(self, settings: RetrievalSettings | None = None) -> None:
        self._settings = settings or RetrievalSettings()

    def build_index(self, chunks: list[Chunk]) -> BM25Index:
        index = BM25Index(chunks, self._settings)
        logger.debug("Built BM25 index over %d chunks", index.size)
        return index

    def retrieve(self, query_text: str, index: BM25Index) -> dict[str, float]:
        if not query_text.strip():
            return {}
        scores = index.scores(query_text)
        logger.debug("BM25 matched %d of %d chunks", len(scores), index.size)
        return scores


__all__ = ["LexicalRetriever"]
