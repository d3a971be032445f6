"""Render ranked chunks into a bounded, citation-marked prompt block."""
from __future__ import annotations

from typing import Iterable, Mapping

from domain.entities import UNTITLED_DOCUMENT, RetrievalResult, RetrievalSettings, ScoredChunk


DEFAULT_MAX_CHARS = 12000
BLOCK_SEPARATOR = "\n\n"
TRUNCATION_MARKER = " [truncated]"


def citation_header(position: int, title: str, page: int) -> str:
    return f"[{position}] {title} (page {page})"


def _omitted_note(count: int) -> str:
    noun = "passage" if count == 1 else "passages"
    return f"[{count} more {noun} omitted]"


def format_results_for_prompt(
    results: Iterable[ScoredChunk],
    titles: Mapping[str, str],
    *,
    max_chars: int = DEFAULT_MAX_CHARS,
) -> str:
    """Format results in rank order under a hard ``max_chars`` budget.

    Whole passages are dropped from the bottom of the ranking when the budget
    runs out. Only when the top passage alone is too long is it cut, and the
    cut is marked with ``[truncated]``. Budgets too small to hold that marker
    are rejected.
    """
    if max_chars < len(TRUNCATION_MARKER):
        raise ValueError(f"max_chars must be at least {len(TRUNCATION_MARKER)}")
    ordered = sorted(results, key=lambda item: item.rank)
    if not ordered:
        return ""

    parts: list[str] = []
    used = 0
    for position, item in enumerate(ordered, start=1):
        title = (titles.get(item.document_id) or "").strip() or UNTITLED_DOCUMENT
        header = citation_header(position, title, item.chunk.page)
        block = f"{header}\n{item.chunk.text.strip()}"
        cost = len(block) + (len(BLOCK_SEPARATOR) if parts else 0)
        if used + cost <= max_chars:
            parts.append(block)
            used += cost
            continue
        if not parts:
            room = max_chars - len(header) - 1 - len(TRUNCATION_MARKER)
            if room > 0:
                parts.append(f"{header}\n{item.chunk.text.strip()[:room].rstrip()}{TRUNCATION_MARKER}")
            else:
                parts.append(block[: max_chars - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER)
            used = len(parts[0])
            omitted = len(ordered) - 1
        else:
            omitted = len(ordered) - len(parts)
        if omitted:
            note = _omitted_note(omitted)
            if used + len(BLOCK_SEPARATOR) + len(note) <= max_chars:
                parts.append(note)
        break

    return BLOCK_SEPARATOR.join(parts)


def format_retrieval_result(result: RetrievalResult, settings: RetrievalSettings | None = None) -> str:
    """Format a search result with its own titles under the configured budget."""
    cfg = settings or RetrievalSettings()
    return format_results_for_prompt(result.chunks, result.document_titles, max_chars=cfg.max_context_chars)


__all__ = ["DEFAULT_MAX_CHARS", "citation_header", "format_results_for_prompt", "format_retrieval_result"]
