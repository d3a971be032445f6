"""Domain entities for the lease retrieval engine."""
from __future__ import annotations

import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum

from domain.errors import InvalidSearchOptions


DEFAULT_TOP_K = 8
DEFAULT_WEIGHTS: tuple[float, float] = (0.4, 0.6)
UNTITLED_DOCUMENT = "Untitled document"


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    ANALYZED = "analyzed"
    FAILED = "failed"


@dataclass(slots=True)
class Document:
    """A lease document owned by an organization."""

    id: str
    organization_id: str
    title: str
    status: DocumentStatus = DocumentStatus.PENDING


@dataclass(slots=True)
class Chunk:
    """A page-anchored slice of a document used for retrieval."""

    id: str
    document_id: str
    page: int
    chunk_index: int
    text: str
    embedding: list[float] | None = None

    @property
    def sort_key(self) -> tuple[str, int, str]:
        return (self.document_id, self.chunk_index, self.id)


@dataclass(slots=True, frozen=True)
class AccessValidation:
    """Outcome of checking a requested document set against entitlements."""

    valid_document_ids: list[str]
    document_titles: dict[str, str]


@dataclass(slots=True, frozen=True)
class RetrievalSettings:
    """Tuning knobs of the engine. Defaults are fixed for reproducible scoring."""

    bm25_k1: float = 1.5
    bm25_b: float = 0.75
    embedding_timeout_seconds: float = 10.0
    embedding_workers: int = 4
    max_context_chars: int = 12000
    default_top_k: int = DEFAULT_TOP_K
    default_weights: tuple[float, float] = DEFAULT_WEIGHTS
    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 64


@dataclass(slots=True, frozen=True)
class SearchOptions:
    """Validated retrieval configuration for a single query."""

    document_ids: tuple[str, ...] = ()
    top_k: int = DEFAULT_TOP_K
    weights: tuple[float, float] = DEFAULT_WEIGHTS
    require_documents: bool = False

    def __post_init__(self) -> None:
        # Accept any sequence from callers but store immutable tuples.
        object.__setattr__(self, "document_ids", tuple(str(doc_id) for doc_id in self.document_ids))
        object.__setattr__(self, "weights", tuple(float(value) for value in self.weights))
        if isinstance(self.top_k, bool) or not isinstance(self.top_k, int):
            raise InvalidSearchOptions(f"top_k must be an integer, got {self.top_k!r}")
        if self.top_k < 1:
            raise InvalidSearchOptions(f"top_k must be >= 1, got {self.top_k}")
        if len(self.weights) != 2:
            raise InvalidSearchOptions("weights must be a (lexical, vector) pair")
        for value in self.weights:
            if not math.isfinite(value) or value < 0:
                raise InvalidSearchOptions(f"weights must be finite and non-negative, got {self.weights}")
        if sum(self.weights) <= 0:
            raise InvalidSearchOptions("at least one weight must be positive")

    @property
    def normalized_weights(self) -> tuple[float, float]:
        lexical, vector = self.weights
        total = lexical + vector
        return (lexical / total, vector / total)


@dataclass(slots=True, frozen=True)
class ScoredChunk:
    """A chunk with the scores that placed it in a ranking."""

    chunk: Chunk
    lexical_score: float | None
    vector_score: float | None
    fused_score: float
    rank: int

    @property
    def chunk_id(self) -> str:
        return self.chunk.id

    @property
    def document_id(self) -> str:
        return self.chunk.document_id


class SearchStage(str, Enum):
    VALIDATING = "validating"
    RETRIEVING = "retrieving"
    FUSING = "fusing"
    DONE = "done"
    FAILED = "failed"


class SearchStatus(str, Enum):
    OK = "ok"
    EMPTY_QUERY = "empty_query"
    EMPTY_SCOPE = "empty_scope"


@dataclass(slots=True)
class RetrievalResult(Sequence):
    """Ranked chunks returned for a query plus how they were obtained."""

    chunks: list[ScoredChunk] = field(default_factory=list)
    status: SearchStatus = SearchStatus.OK
    degraded: bool = False
    degraded_reason: str | None = None
    valid_document_ids: list[str] = field(default_factory=list)
    document_titles: dict[str, str] = field(default_factory=dict)
    stage: SearchStage = SearchStage.DONE

    def __len__(self) -> int:
        return len(self.chunks)

    def __iter__(self) -> Iterator[ScoredChunk]:
        return iter(self.chunks)

    def __getitem__(self, index):  # type: ignore[override]
        return self.chunks[index]

    @property
    def is_empty(self) -> bool:
        return not self.chunks


__all__ = [
    "DEFAULT_TOP_K",
    "DEFAULT_WEIGHTS",
    "UNTITLED_DOCUMENT",
    "AccessValidation",
    "Chunk",
    "Document",
    "DocumentStatus",
    "RetrievalResult",
    "RetrievalSettings",
    "ScoredChunk",
    "SearchOptions",
    "SearchStage",
    "SearchStatus",
]
