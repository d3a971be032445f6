"""Weighted min-max fusion of lexical and vector score lists."""
from __future__ import annotations

from typing import Mapping

from domain.entities import Chunk, ScoredChunk


def min_max_normalize(scores: Mapping[str, float]) -> dict[str, float]:
    """Rescale scores to [0, 1].

    A single score, or a list where every score is equal, maps to 1.0.
    """
    if not scores:
        return {}
    low = min(scores.values())
    high = max(scores.values())
    span = high - low
    if span <= 0:
        return {key: 1.0 for key in scores}
    return {key: (value - low) / span for key, value in scores.items()}


def fuse(
    lexical: Mapping[str, float],
    vector: Mapping[str, float],
    chunks_by_id: Mapping[str, Chunk],
    *,
    weights: tuple[float, float],
    top_k: int,
) -> list[ScoredChunk]:
    """Merge two score lists into a single deterministic ranking.

    Each list is normalised on its own before weighting, so BM25's open-ended
    range cannot drown out cosine similarity. A chunk missing from a list
    contributes 0 for that signal. Ties are broken by
    ``(document_id, chunk_index, chunk_id)``.
    """
    total = weights[0] + weights[1]
    w_lex, w_vec = (weights[0] / total, weights[1] / total) if total > 0 else (0.0, 0.0)
    norm_lex = min_max_normalize(lexical)
    norm_vec = min_max_normalize(vector)

    candidates: list[tuple[float, Chunk]] = []
    for chunk_id in set(norm_lex) | set(norm_vec):
        chunk = chunks_by_id.get(chunk_id)
        if chunk is None:
            continue
        fused = w_lex * norm_lex.get(chunk_id, 0.0) + w_vec * norm_vec.get(chunk_id, 0.0)
        candidates.append((fused, chunk))

    candidates.sort(key=lambda item: (-item[0], item[1].sort_key))
    return [
        ScoredChunk(
            chunk=chunk,
            lexical_score=lexical.get(chunk.id),
            vector_score=vector.get(chunk.id),
            fused_score=fused,
            rank=rank,
        )
        for rank, (fused, chunk) in enumerate(candidates[:top_k], start=1)
    ]


__all__ = ["fuse", "min_max_normalize"]
