"""Use cases that run hybrid BM25 + vector search over access-checked documents."""
from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from application.services.fusion import fuse
from application.services.lexical_retriever import LexicalRetriever
from application.services.retrieval_cache import RetrievalCache, ScopeIndex, fingerprint_chunks
from application.services.vector_retriever import EmbeddingPool, VectorRetriever
from application.use_cases.access import validate_document_access
from domain.entities import Chunk, RetrievalResult, RetrievalSettings, SearchOptions, SearchStage, SearchStatus
from domain.errors import EmptyScopeError, RetrievalError
from domain.interfaces import ChunkStore, Embedder, EntitlementSource


logger = logging.getLogger(__name__)


class _StageTracker:
    def __init__(self) -> None:
        self.stage = SearchStage.VALIDATING

    def advance(self, stage: SearchStage) -> None:
        logger.debug("Search stage %s -> %s", self.stage.value, stage.value)
        self.stage = stage


async def multi_doc_ensemble_search(
    query_text: str,
    options: SearchOptions,
    *,
    user_id: str,
    entitlements: EntitlementSource,
    chunk_store: ChunkStore,
    embedder: Embedder,
    settings: RetrievalSettings | None = None,
    cache: RetrievalCache | None = None,
    embedding_pool: EmbeddingPool | None = None,
) -> RetrievalResult:
    """Return the top chunks for ``query_text`` across the user's readable documents.

    Access is validated before any chunk is read, and chunks are only ever
    fetched for the validated ids. Lexical and vector retrieval run
    concurrently; if the embedding call fails, times out or finds no free
    worker in ``embedding_pool`` the result is the lexical ranking with
    ``degraded`` set. Without a pool a private single-worker pool is used for
    this call. ``StoreUnavailable`` propagates with ``stage`` set to the stage
    that failed.
    """

    cfg = settings or RetrievalSettings()
    pool = embedding_pool if embedding_pool is not None else EmbeddingPool(max_workers=1)
    try:
        return await _search(query_text, options, user_id, entitlements, chunk_store, embedder, cfg, cache, pool)
    finally:
        if embedding_pool is None:
            pool.shutdown()


async def _search(
    query_text: str,
    options: SearchOptions,
    user_id: str,
    entitlements: EntitlementSource,
    chunk_store: ChunkStore,
    embedder: Embedder,
    cfg: RetrievalSettings,
    cache: RetrievalCache | None,
    pool: EmbeddingPool,
) -> RetrievalResult:
    tracker = _StageTracker()
    try:
        validation = await asyncio.to_thread(
            validate_document_access,
            user_id,
            options.document_ids,
            entitlements=entitlements,
        )
        valid_ids = validation.valid_document_ids
        titles = validation.document_titles

        if not valid_ids:
            if options.require_documents:
                raise EmptyScopeError(len(options.document_ids))
            tracker.advance(SearchStage.DONE)
            return RetrievalResult(status=SearchStatus.EMPTY_SCOPE)

        if not query_text or not query_text.strip():
            tracker.advance(SearchStage.DONE)
            return RetrievalResult(
                status=SearchStatus.EMPTY_QUERY,
                valid_document_ids=list(valid_ids),
                document_titles=dict(titles),
            )

        tracker.advance(SearchStage.RETRIEVING)
        chunks = await asyncio.to_thread(chunk_store.chunks_for_documents, list(valid_ids))
        scope = _scoped(chunks, valid_ids)
        index = await _scope_index(scope, valid_ids, cfg, cache)

        lexical = LexicalRetriever(cfg)
        vector = VectorRetriever(embedder, pool, timeout_seconds=cfg.embedding_timeout_seconds)
        lexical_scores, vector_scores = await asyncio.gather(
            asyncio.to_thread(lexical.retrieve, query_text, index.bm25),
            vector.retrieve(query_text, index.embeddings),
        )

        tracker.advance(SearchStage.FUSING)
        ranked = fuse(
            lexical_scores,
            vector_scores.scores,
            index.chunks_by_id,
            weights=options.normalized_weights,
            top_k=options.top_k,
        )
    except RetrievalError as exc:
        exc.stage = tracker.stage
        logger.warning("Search failed while %s: %s", tracker.stage.value, exc)
        tracker.advance(SearchStage.FAILED)
        raise

    tracker.advance(SearchStage.DONE)
    logger.info(
        "Search over %d document(s) and %d chunk(s) returned %d result(s)%s",
        len(valid_ids),
        len(index.chunks),
        len(ranked),
        " (lexical-only)" if vector_scores.degraded else "",
    )
    return RetrievalResult(
        chunks=ranked,
        status=SearchStatus.OK,
        degraded=vector_scores.degraded,
        degraded_reason=vector_scores.reason,
        valid_document_ids=list(valid_ids),
        document_titles=dict(titles),
    )


def _scoped(chunks: Sequence[Chunk], valid_ids: Sequence[str]) -> list[Chunk]:
    allowed = set(valid_ids)
    scoped = [chunk for chunk in chunks if chunk.document_id in allowed]
    if len(scoped) != len(chunks):
        logger.error("Chunk store returned %d chunk(s) outside the requested scope", len(chunks) - len(scoped))
    return scoped


async def _scope_index(
    chunks: list[Chunk],
    valid_ids: Sequence[str],
    settings: RetrievalSettings,
    cache: RetrievalCache | None,
) -> ScopeIndex:
    lexical = LexicalRetriever(settings)
    if cache is None:
        return await asyncio.to_thread(ScopeIndex.build, chunks, lexical)
    variant = (settings.bm25_k1, settings.bm25_b)
    fingerprint = await asyncio.to_thread(fingerprint_chunks, chunks)
    index = cache.get(valid_ids, fingerprint, variant)
    if index is None:
        index = await asyncio.to_thread(ScopeIndex.build, chunks, lexical, fingerprint)
        cache.put(valid_ids, index, variant)
    else:
        logger.debug("Reusing cached scope index for %d document(s)", len(valid_ids))
    return index


async def document_ensemble_search(
    query_text: str,
    document_id: str,
    *,
    user_id: str,
    entitlements: EntitlementSource,
    chunk_store: ChunkStore,
    embedder: Embedder,
    top_k: int | None = None,
    weights: tuple[float, float] | None = None,
    settings: RetrievalSettings | None = None,
    cache: RetrievalCache | None = None,
    embedding_pool: EmbeddingPool | None = None,
) -> RetrievalResult:
    """Search inside a single document."""
    cfg = settings or RetrievalSettings()
    options = SearchOptions(
        document_ids=(document_id,),
        top_k=top_k if top_k is not None else cfg.default_top_k,
        weights=weights if weights is not None else cfg.default_weights,
    )
    return await multi_doc_ensemble_search(
        query_text,
        options,
        user_id=user_id,
        entitlements=entitlements,
        chunk_store=chunk_store,
        embedder=embedder,
        settings=cfg,
        cache=cache,
        embedding_pool=embedding_pool,
    )


async def company_ensemble_search(
    query_text: str,
    organization_id: str,
    *,
    user_id: str,
    entitlements: EntitlementSource,
    chunk_store: ChunkStore,
    embedder: Embedder,
    top_k: int | None = None,
    weights: tuple[float, float] | None = None,
    settings: RetrievalSettings | None = None,
    cache: RetrievalCache | None = None,
    embedding_pool: EmbeddingPool | None = None,
) -> RetrievalResult:
    """Search every document of an organization the user can read."""
    cfg = settings or RetrievalSettings()
    document_ids = await asyncio.to_thread(entitlements.organization_document_ids, organization_id)
    options = SearchOptions(
        document_ids=tuple(document_ids),
        top_k=top_k if top_k is not None else cfg.default_top_k,
        weights=weights if weights is not None else cfg.default_weights,
    )
    return await multi_doc_ensemble_search(
        query_text,
        options,
        user_id=user_id,
        entitlements=entitlements,
        chunk_store=chunk_store,
        embedder=embedder,
        settings=cfg,
        cache=cache,
        embedding_pool=embedding_pool,
    )


def multi_doc_ensemble_search_sync(query_text: str, options: SearchOptions, **kwargs) -> RetrievalResult:
    """Blocking variant for callers without a running event loop."""
    return asyncio.run(multi_doc_ensemble_search(query_text, options, **kwargs))


__all__ = [
    "SearchStage",
    "company_ensemble_search",
    "document_ensemble_search",
    "multi_doc_ensemble_search",
    "multi_doc_ensemble_search_sync",
]
