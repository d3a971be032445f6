"""Embedder backed by sentence-transformers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import logging

from sentence_transformers import SentenceTransformer

from domain.errors import EmbeddingUnavailable
from domain.interfaces import Embedder


@dataclass(slots=True)
class SentenceTransformersConfig:
    model_name: str
    device: str = "cpu"
    normalize_embeddings: bool = True
    batch_size: int = 16
    query_prefix: str | None = None
    passage_prefix: str | None = None


logger = logging.getLogger(__name__)


class SentenceTransformersEmbedder(Embedder):
    """Embedder on top of a local sentence-transformers model."""

    def __init__(self, config: SentenceTransformersConfig) -> None:
        self._config = config
        logger.info("Loading sentence-transformers model %s", config.model_name)
        self._model = SentenceTransformer(config.model_name, device=config.device)
        self._dimension = int(self._model.get_sentence_embedding_dimension())

    @property
    def model_id(self) -> str:
        return self._config.model_name

    @property
    def dimension(self) -> int:
        return self._dimension

    def _apply_prefix(self, text: str, prefix: str | None) -> str:
        if prefix:
            return f"{prefix}{text}"
        return text

    def _encode(self, texts: list[str], batch_size: int):
        try:
            return self._model.encode(
                texts,
                batch_size=batch_size,
                normalize_embeddings=self._config.normalize_embeddings,
                show_progress_bar=False,
            )
        except Exception as exc:
            raise EmbeddingUnavailable(f"{self._config.model_name} failed to encode: {exc}") from exc

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        prefixed = [self._apply_prefix(text, self._config.passage_prefix) for text in texts]
        logger.debug("Encoding %d passages with %s", len(prefixed), self._config.model_name)
        return self._encode(prefixed, self._config.batch_size).tolist()

    def embed_query(self, text: str) -> list[float]:
        logger.debug("Encoding query with %s", self._config.model_name)
        embeddings = self._encode([self._apply_prefix(text, self._config.query_prefix)], 1)
        return embeddings[0].tolist()


__all__ = ["SentenceTransformersEmbedder", "SentenceTransformersConfig"]
