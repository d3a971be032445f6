"""BM25 index over a request-scoped set of chunks."""
from __future__ import annotations

import math
import re
from dataclasses import dataclass

from rank_bm25 import BM25Okapi

from domain.entities import Chunk, RetrievalSettings


_NON_WORD = re.compile(r"[\W_]+", re.UNICODE)


def tokenize(text: str) -> list[str]:
    """Lowercase, replace punctuation with spaces and split on whitespace.

    No stemming and no stop-word removal: identical input always yields
    identical tokens, which keeps BM25 scores reproducible.
    """
    return _NON_WORD.sub(" ", text.lower()).split()


class _PositiveIdfBM25(BM25Okapi):
    """Okapi BM25 with the non-negative IDF log(1 + (N - n + 0.5) / (n + 0.5)).

    Every chunk sharing a term with the query scores above zero, even when the
    term occurs in most of a small scope.
    """

    def _calc_idf(self, nd):
        for word, freq in nd.items():
            self.idf[word] = math.log(1.0 + (self.corpus_size - freq + 0.5) / (freq + 0.5))
        self.average_idf = sum(self.idf.values()) / len(self.idf) if self.idf else 0.0


@dataclass(slots=True, frozen=True)
class _State:
    index: _PositiveIdfBM25 | None
    chunk_ids: list[str]
    vocabularies: list[frozenset[str]]


class BM25Index:
    """Okapi BM25 statistics computed over exactly the chunks it was built from.

    Document frequency and average chunk length come from the scoped chunk set,
    not from the whole corpus, so scores depend on which documents a request
    covers.
    """

    def __init__(self, chunks: list[Chunk], settings: RetrievalSettings | None = None) -> None:
        cfg = settings or RetrievalSettings()
        corpus = [tokenize(chunk.text) for chunk in chunks]
        if not chunks or not any(corpus):
            self._state = _State(index=None, chunk_ids=[], vocabularies=[])
            return
        self._state = _State(
            index=_PositiveIdfBM25(corpus, k1=cfg.bm25_k1, b=cfg.bm25_b),
            chunk_ids=[chunk.id for chunk in chunks],
            vocabularies=[frozenset(tokens) for tokens in corpus],
        )

    @property
    def size(self) -> int:
        return len(self._state.chunk_ids)

    def scores(self, query_text: str) -> dict[str, float]:
        """Score chunks sharing at least one token with the query.

        Chunks without any overlap are left out entirely instead of being
        reported with a zero score.
        """
        if self._state.index is None:
            return {}
        query_tokens = list(dict.fromkeys(tokenize(query_text)))
        if not query_tokens:
            return {}
        query_vocabulary = frozenset(query_tokens)
        values = self._state.index.get_scores(query_tokens)
        return {
            chunk_id: float(score)
            for chunk_id, score, vocabulary in zip(self._state.chunk_ids, values, self._state.vocabularies)
            if vocabulary & query_vocabulary
        }


__all__ = ["BM25Index", "tokenize"]
