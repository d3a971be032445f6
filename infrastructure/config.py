"""Dependency wiring for the lease retrieval engine."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Literal, Mapping

from application.services.retrieval_cache import RetrievalCache
from application.services.vector_retriever import EmbeddingPool
from domain.entities import RetrievalSettings
from domain.interfaces import ChunkRepository, DocumentRepository, Embedder, EntitlementSource
from infrastructure.embedding.mean_word_hash_embedder import MeanWordHashEmbedder
from infrastructure.repositories.sqlite_chunk_repository import SqliteChunkRepository
from infrastructure.repositories.sqlite_document_repository import SqliteDocumentRepository


EmbedderName = Literal["mean_word", "sentence_transformers"]
ENV_PREFIX = "LEASE_RETRIEVAL_"

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Container:
    """Bundle of concrete collaborators handed to the search use cases."""

    document_repository: DocumentRepository
    entitlements: EntitlementSource
    chunk_store: ChunkRepository
    embedder: Embedder
    embedding_pool: EmbeddingPool
    cache: RetrievalCache
    settings: RetrievalSettings


@dataclass(slots=True)
class ContainerConfig:
    """Configuration for storage location, embedder and retrieval tuning."""

    data_root: str = "."
    db_name: str = "lease_retrieval.db"
    embedder: EmbedderName = "mean_word"
    embedding_dimension: int = 64
    st_model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    st_device: str = "cpu"
    settings: RetrievalSettings = field(default_factory=RetrievalSettings)

    @property
    def db_path(self) -> Path:
        return Path(self.data_root) / self.db_name

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ContainerConfig":
        env = os.environ if environ is None else environ
        defaults = cls()
        base = defaults.settings

        def _get(name: str, cast: Callable[[str], object], default: object):
            raw = env.get(f"{ENV_PREFIX}{name}")
            if raw is None or raw.strip() == "":
                return default
            try:
                return cast(raw)
            except ValueError as exc:
                raise ValueError(f"Invalid value for {ENV_PREFIX}{name}: {raw!r}") from exc

        settings = RetrievalSettings(
            bm25_k1=_get("BM25_K1", float, base.bm25_k1),
            bm25_b=_get("BM25_B", float, base.bm25_b),
            embedding_timeout_seconds=_get("EMBEDDING_TIMEOUT", float, base.embedding_timeout_seconds),
            embedding_workers=_get("EMBEDDING_WORKERS", int, base.embedding_workers),
            max_context_chars=_get("MAX_CONTEXT_CHARS", int, base.max_context_chars),
            default_top_k=_get("TOP_K", int, base.default_top_k),
            default_weights=_get("WEIGHTS", _parse_weights, base.default_weights),
            cache_ttl_seconds=_get("CACHE_TTL", float, base.cache_ttl_seconds),
            cache_max_entries=_get("CACHE_MAX_ENTRIES", int, base.cache_max_entries),
        )
        return cls(
            data_root=_get("DATA_ROOT", str, defaults.data_root),
            db_name=_get("DB_NAME", str, defaults.db_name),
            embedder=_get("EMBEDDER", str, defaults.embedder),
            embedding_dimension=_get("EMBEDDING_DIMENSION", int, defaults.embedding_dimension),
            st_model_name=_get("ST_MODEL", str, defaults.st_model_name),
            st_device=_get("ST_DEVICE", str, defaults.st_device),
            settings=settings,
        )


def _parse_weights(raw: str) -> tuple[float, float]:
    parts = [part.strip() for part in raw.split(",")]
    if len(parts) != 2:
        raise ValueError("expected 'lexical,vector'")
    return (float(parts[0]), float(parts[1]))


def _build_sentence_transformers(cfg: ContainerConfig) -> Embedder:
    from infrastructure.embedding.sentence_transformers_embedder import (  # noqa: PLC0415
        SentenceTransformersConfig,
        SentenceTransformersEmbedder,
    )

    return SentenceTransformersEmbedder(
        SentenceTransformersConfig(model_name=cfg.st_model_name, device=cfg.st_device)
    )


_EMBEDDER_FACTORIES: dict[str, Callable[[ContainerConfig], Embedder]] = {
    "mean_word": lambda cfg: MeanWordHashEmbedder(dimension=cfg.embedding_dimension),
    "sentence_transformers": _build_sentence_transformers,
}


def build_embedder(cfg: ContainerConfig) -> Embedder:
    try:
        factory = _EMBEDDER_FACTORIES[cfg.embedder]
    except KeyError as exc:
        raise ValueError(f"Unknown embedder '{cfg.embedder}'") from exc
    return factory(cfg)


def build_default_container(config: ContainerConfig | None = None) -> Container:
    """Instantiate the default infrastructure stack."""

    cfg = config or ContainerConfig()
    embedder = build_embedder(cfg)
    Path(cfg.data_root).mkdir(parents=True, exist_ok=True)
    document_repository = SqliteDocumentRepository(db_path=cfg.db_path)
    chunk_store = SqliteChunkRepository(db_path=cfg.db_path)
    cache = RetrievalCache(
        ttl_seconds=cfg.settings.cache_ttl_seconds,
        max_entries=cfg.settings.cache_max_entries,
    )
    logger.info("Retrieval stack ready: db=%s embedder=%s", cfg.db_path, embedder.model_id)

    return Container(
        document_repository=document_repository,
        entitlements=document_repository,
        chunk_store=chunk_store,
        embedder=embedder,
        embedding_pool=EmbeddingPool(max_workers=cfg.settings.embedding_workers),
        cache=cache,
        settings=cfg.settings,
    )


__all__ = ["Container", "ContainerConfig", "build_default_container", "build_embedder"]
