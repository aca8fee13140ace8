"""Exception hierarchy for the knowledge base.

Callers decide whether to retry, degrade to "no knowledge-base match" or fail
the request based on the exception type and its ``retryable`` flag. An empty
search result is never reported through an exception.
"""

from typing import Optional, Sequence


class KnowledgeBaseError(Exception):
    """Base class for all knowledge base failures."""

    retryable = False


class InvalidParameter(KnowledgeBaseError, ValueError):
    """A chunking or search parameter is out of range."""


class EmbeddingError(KnowledgeBaseError):
    """The embedding provider failed to produce one or more vectors.

    Attributes:
        failed_indices: Positions of the texts that could not be embedded
            when the failure happened inside a batch.
    """

    retryable = True

    def __init__(self, message: str, failed_indices: Optional[Sequence[int]] = None):
        super().__init__(message)
        self.failed_indices = list(failed_indices or [])


class StoreUnavailable(KnowledgeBaseError):
    """The chunk store could not be read or written."""

    retryable = True


class DimensionMismatch(KnowledgeBaseError):
    """A vector's length disagrees with the corpus or query dimension."""

    def __init__(self, expected: int, actual: int, message: Optional[str] = None):
        super().__init__(
            message or f"Expected vector of dimension {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class Cancelled(KnowledgeBaseError):
    """The caller cancelled the operation or its timeout elapsed."""
