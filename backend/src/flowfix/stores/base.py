from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from ..errors import DimensionMismatch
from ..models import Chunk


class BaseChunkStore(ABC):
    """Abstract base class for chunk stores.

    Stores keep chunks in insertion (corpus) order and are shared between
    callers; each operation is atomic on its own.
    """

    supports_native_search = False

    def __init__(self, dimension: Optional[int] = None, **kwargs: Any):
        self._dimension = dimension

    @property
    def dimension(self) -> Optional[int]:
        """Vector dimension of the corpus, or None while it is empty and unset."""
        return self._dimension

    def _check_dimensions(self, chunks: Sequence[Chunk]) -> int:
        """Return the batch dimension, rejecting mixed or foreign dimensions."""
        expected = self._dimension or chunks[0].dimension
        for chunk in chunks:
            if chunk.dimension != expected:
                raise DimensionMismatch(expected, chunk.dimension)
        return expected

    @abstractmethod
    def insert_many(self, chunks: Sequence[Chunk]) -> int:
        """Store all chunks or none of them. Returns the number stored."""
        pass

    @abstractmethod
    def find_all(self) -> list[Chunk]:
        """Return every chunk in corpus order."""
        pass

    @abstractmethod
    def delete_by_document_id(self, document_id: str) -> int:
        """Remove all chunks whose ``metadata.source`` is ``document_id``."""
        pass

    @abstractmethod
    def replace_document(self, document_id: str, chunks: Sequence[Chunk]) -> int:
        """Swap a document's chunks for ``chunks`` in one write.

        Readers see either the old chunk set or the new one, never neither.
        Returns the number of chunks removed.
        """
        pass

    def find_candidates(self, query_vector: Sequence[float], limit: int) -> list[Chunk]:
        """Return the chunks worth scoring for a query, in corpus order."""
        return self.find_all()

    @property
    @abstractmethod
    def count(self) -> int:
        """Return the number of chunks in the store."""
        pass
