import json
import logging
from pathlib import Path
from typing import Optional, Sequence

from pydantic import ValidationError

from ..errors import StoreUnavailable
from ..models import Chunk
from .base import BaseChunkStore
from .files import write_json_atomic
from .locking import StoreLock

logger = logging.getLogger(__name__)


class InMemoryChunkStore(BaseChunkStore):
    """Chunk list held in memory, optionally persisted to a JSON file.

    Search candidates are the whole corpus; suited to small knowledge bases.
    """

    def __init__(
        self,
        dimension: Optional[int] = None,
        path: Optional[Path] = None,
    ):
        super().__init__(dimension)
        self._path = path
        self._lock = StoreLock(path)
        self._chunks: list[Chunk] = self._load()
        if self._chunks and self._dimension is None:
            self._dimension = self._chunks[0].dimension

    def _load(self) -> list[Chunk]:
        if not self._path or not self._path.exists():
            return []
        try:
            with open(self._path, "r") as f:
                records = json.load(f)
            return [Chunk.model_validate(record) for record in records]
        except (OSError, ValueError, ValidationError) as e:
            raise StoreUnavailable(f"Could not load chunks from {self._path}: {e}") from e

    def save(self) -> None:
        if not self._path:
            return
        records = [chunk.model_dump(mode="json") for chunk in self._chunks]
        write_json_atomic(self._path, records)

    def _commit(self, chunks: list[Chunk], dimension: Optional[int]) -> None:
        """Swap in a new chunk list, restoring the old one if saving fails."""
        previous, previous_dimension = self._chunks, self._dimension
        self._chunks, self._dimension = chunks, dimension
        try:
            self.save()
        except OSError as e:
            self._chunks, self._dimension = previous, previous_dimension
            raise StoreUnavailable(f"Could not save chunks to {self._path}: {e}") from e

    def insert_many(self, chunks: Sequence[Chunk]) -> int:
        if not chunks:
            return 0

        with self._lock.hold():
            dimension = self._check_dimensions(chunks)
            self._commit(self._chunks + list(chunks), dimension)

        logger.debug(f"Stored {len(chunks)} chunks ({len(self._chunks)} total)")
        return len(chunks)

    def find_all(self) -> list[Chunk]:
        return list(self._chunks)

    def replace_document(self, document_id: str, chunks: Sequence[Chunk]) -> int:
        with self._lock.hold():
            kept = [c for c in self._chunks if c.metadata.source != document_id]
            removed = len(self._chunks) - len(kept)
            if not chunks and not removed:
                return 0
            dimension = self._check_dimensions(chunks) if chunks else self._dimension
            self._commit(kept + list(chunks), dimension)

        logger.debug(
            f"Replaced {removed} chunks of {document_id} with {len(chunks)} chunks"
        )
        return removed

    def delete_by_document_id(self, document_id: str) -> int:
        with self._lock.hold():
            kept = [c for c in self._chunks if c.metadata.source != document_id]
            removed = len(self._chunks) - len(kept)
            if removed:
                self._commit(kept, self._dimension)
        return removed

    @property
    def count(self) -> int:
        return len(self._chunks)
