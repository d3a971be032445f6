"""Abstract interfaces for the collaborators of the retrieval engine."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Sequence

from domain.entities import Chunk, Document


class Embedder(ABC):
    """Turns text (passages or queries) into vector embeddings."""

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Return the stable identifier for this embedding model."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the embedding dimension for this model."""

    @abstractmethod
    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed passages into dense vectors."""

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        """Embed a user query for retrieval."""


class ChunkStore(ABC):
    """Read access to document chunks with their precomputed embeddings."""

    @abstractmethod
    def chunks_for_documents(self, document_ids: Iterable[str]) -> list[Chunk]:
        """Return every chunk of the given documents; unknown ids are omitted.

        Raises ``StoreUnavailable`` when the backing store cannot be reached.
        """


class ChunkRepository(ChunkStore):
    """Persists chunk content and embeddings."""

    @abstractmethod
    def add(self, chunk: Chunk) -> str:
        """Store a chunk and return its id."""

    @abstractmethod
    def get(self, chunk_id: str) -> Chunk | None:
        """Retrieve a chunk by id."""


class DocumentRepository(ABC):
    """Persists document metadata and organization membership."""

    @abstractmethod
    def add(self, document: Document) -> None:
        """Store a document record."""

    @abstractmethod
    def list(self) -> list[Document]:
        """Return all stored documents."""

    @abstractmethod
    def get(self, document_id: str) -> Document | None:
        """Retrieve a document by id."""

    @abstractmethod
    def add_member(self, user_id: str, organization_id: str) -> None:
        """Grant a user membership of an organization."""


class EntitlementSource(ABC):
    """Source of truth for which documents a user may read."""

    @abstractmethod
    def readable_documents(self, user_id: str, document_ids: Iterable[str]) -> list[Document]:
        """Return the subset of ``document_ids`` that exist and ``user_id`` may read."""

    @abstractmethod
    def organization_document_ids(self, organization_id: str) -> list[str]:
        """Return the ids of every document owned by an organization."""


__all__ = [
    "ChunkRepository",
    "ChunkStore",
    "DocumentRepository",
    "Embedder",
    "EntitlementSource",
]
