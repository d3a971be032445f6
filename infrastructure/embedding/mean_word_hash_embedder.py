"""Embedder that averages hashed word vectors (GloVe-like toy model)."""
from __future__ import annotations

import hashlib
import math
import re
from collections import Counter
from typing import Sequence

from domain.interfaces import Embedder


_WORD = re.compile(r"[^\W_]+", re.UNICODE)


class MeanWordHashEmbedder(Embedder):
    """Produces deterministic vectors by hashing individual words.

    Texts sharing words end up close in cosine space, which is enough for
    offline runs without a model download.
    """

    def __init__(self, dimension: int = 64) -> None:
        if dimension < 1:
            raise ValueError("dimension must be positive")
        self._dimension = dimension
        self._model_id = f"mean-word-hash-{dimension}"

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def dimension(self) -> int:
        return self._dimension

    def _word_vector(self, word: str) -> list[float]:
        digest = hashlib.md5(word.encode("utf-8")).digest()
        # Centre around zero so unrelated words are not all positively correlated.
        return [digest[i % len(digest)] / 127.5 - 1.0 for i in range(self._dimension)]

    def _combine(self, text: str) -> list[float]:
        counts = Counter(_WORD.findall(text.lower()))
        vector = [0.0] * self._dimension
        total = sum(counts.values())
        if not total:
            return vector
        for word, count in counts.items():
            for idx, value in enumerate(self._word_vector(word)):
                vector[idx] += value * count / total
        norm = math.sqrt(sum(value * value for value in vector)) or 1.0
        return [value / norm for value in vector]

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._combine(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._combine(text)


__all__ = ["MeanWordHashEmbedder"]
