"""Error taxonomy of the retrieval engine."""
from __future__ import annotations


class RetrievalError(Exception):
    """Base class for retrieval failures surfaced to callers.

    ``stage`` is set by the search use cases to the stage that was running
    when the failure happened.
    """

    stage = None


class StoreUnavailable(RetrievalError):
    """The chunk store or entitlement source could not be reached."""


class EmbeddingUnavailable(RetrievalError):
    """The embedding function failed or timed out."""


class EmptyScopeError(RetrievalError):
    """No requested document survived access validation."""

    def __init__(self, requested: int) -> None:
        super().__init__(f"none of the {requested} requested document(s) are accessible")
        self.requested = requested


class InvalidSearchOptions(ValueError):
    """Search options were rejected at construction time."""


__all__ = [
    "EmbeddingUnavailable",
    "EmptyScopeError",
    "InvalidSearchOptions",
    "RetrievalError",
    "StoreUnavailable",
]
