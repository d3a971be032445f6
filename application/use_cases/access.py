"""Use case that reduces a requested document set to what a user may read."""
from __future__ import annotations

import logging
from typing import Iterable

from domain.entities import UNTITLED_DOCUMENT, AccessValidation
from domain.interfaces import EntitlementSource


logger = logging.getLogger(__name__)


def validate_document_access(
    user_id: str,
    document_ids: Iterable[str],
    *,
    entitlements: EntitlementSource,
) -> AccessValidation:
    """Return the readable subset of ``document_ids`` with their titles.

    Unknown and unreadable ids are dropped without an error so callers cannot
    probe for documents they have no access to. Request order is preserved and
    duplicates are collapsed.
    """

    requested = list(dict.fromkeys(str(doc_id) for doc_id in document_ids if str(doc_id).strip()))
    if not requested:
        return AccessValidation(valid_document_ids=[], document_titles={})

    readable = {
        document.id: document
        for document in entitlements.readable_documents(user_id, requested)
    }
    valid_ids = [doc_id for doc_id in requested if doc_id in readable]
    titles = {
        doc_id: (readable[doc_id].title or "").strip() or UNTITLED_DOCUMENT
        for doc_id in valid_ids
    }
    dropped = len(requested) - len(valid_ids)
    if dropped:
        logger.info("Access validation dropped %d of %d requested document(s)", dropped, len(requested))
    return AccessValidation(valid_document_ids=valid_ids, document_titles=titles)


__all__ = ["validate_document_access"]
