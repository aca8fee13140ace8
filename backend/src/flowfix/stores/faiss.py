import json
import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Optional, Sequence

import faiss
import numpy as np
from pydantic import ValidationError

from ..errors import StoreUnavailable
from ..models import Chunk
from .base import BaseChunkStore
from .files import staged_path
from .locking import StoreLock

logger = logging.getLogger(__name__)


def _normalize(vectors: Sequence[Sequence[float]], dimension: int) -> np.ndarray:
    """L2-normalise rows so inner product equals cosine similarity."""
    matrix = np.array(vectors, dtype=np.float32).reshape(-1, dimension)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


class FAISSChunkStore(BaseChunkStore):
    """Chunk store backed by a FAISS inner-product index.

    The index pre-selects candidates for a query; chunk records, including
    their full-precision vectors, are persisted beside it so the engine can
    score candidates exactly.
    """

    supports_native_search = True

    def __init__(
        self,
        dimension: int,
        index_path: Optional[Path] = None,
        records_path: Optional[Path] = None,
    ):
        super().__init__(dimension)
        self._index_path = index_path
        self._records_path = records_path
        self._lock = StoreLock(records_path)

        self._chunks: list[Chunk] = self._load_records()
        self._index: faiss.Index = self._load_index()

    def _load_records(self) -> list[Chunk]:
        if not self._records_path or not self._records_path.exists():
            return []
        try:
            with open(self._records_path, "r") as f:
                return [Chunk.model_validate(record) for record in json.load(f)]
        except (OSError, ValueError, ValidationError) as e:
            raise StoreUnavailable(
                f"Could not load chunks from {self._records_path}: {e}"
            ) from e

    def _load_index(self) -> faiss.Index:
        if self._index_path and self._index_path.exists():
            try:
                index = faiss.read_index(str(self._index_path))
            except RuntimeError as e:
                logger.warning(f"Could not read index {self._index_path}, rebuilding: {e}")
            else:
                if index.ntotal == len(self._chunks) and index.d == self.dimension:
                    return index
                logger.warning(
                    f"Index at {self._index_path} is out of sync with its records, rebuilding"
                )
        return self._build_index(self._chunks)

    def _build_index(self, chunks: Sequence[Chunk]) -> faiss.Index:
        index = faiss.IndexFlatIP(self.dimension)
        if chunks:
            index.add(_normalize([c.vector for c in chunks], self.dimension))
        return index

    def save(self) -> None:
        """Write index and records to temporary files, then move both into place."""
        with ExitStack() as stack:
            if self._records_path:
                records_tmp = stack.enter_context(staged_path(self._records_path))
                with open(records_tmp, "w") as f:
                    json.dump([c.model_dump(mode="json") for c in self._chunks], f)
            if self._index_path:
                index_tmp = stack.enter_context(staged_path(self._index_path))
                faiss.write_index(self._index, str(index_tmp))

    def _commit(self, chunks: list[Chunk], index: faiss.Index) -> None:
        previous_chunks, previous_index = self._chunks, self._index
        self._chunks, self._index = chunks, index
        try:
            self.save()
        except (OSError, RuntimeError) as e:
            self._chunks, self._index = previous_chunks, previous_index
            raise StoreUnavailable(f"Could not save FAISS store: {e}") from e

    def insert_many(self, chunks: Sequence[Chunk]) -> int:
        if not chunks:
            return 0

        with self._lock.hold():
            self._check_dimensions(chunks)
            updated = self._chunks + list(chunks)
            self._commit(updated, self._build_index(updated))

        return len(chunks)

    def find_all(self) -> list[Chunk]:
        return list(self._chunks)

    def replace_document(self, document_id: str, chunks: Sequence[Chunk]) -> int:
        with self._lock.hold():
            if chunks:
                self._check_dimensions(chunks)
            kept = [c for c in self._chunks if c.metadata.source != document_id]
            removed = len(self._chunks) - len(kept)
            if chunks or removed:
                updated = kept + list(chunks)
                self._commit(updated, self._build_index(updated))
        return removed

    def find_candidates(self, query_vector: Sequence[float], limit: int) -> list[Chunk]:
        if not self._chunks:
            return []
        if len(query_vector) != self.dimension:
            # Let the engine flag every candidate as mismatched.
            logger.warning(
                f"Query dimension {len(query_vector)} does not match index dimension "
                f"{self.dimension}"
            )
            return self.find_all()

        k = min(max(limit, 1), self._index.ntotal)
        _, indices = self._index.search(_normalize([query_vector], self.dimension), k)
        selected = sorted(int(i) for i in indices[0] if 0 <= i < len(self._chunks))
        return [self._chunks[i] for i in selected]

    def delete_by_document_id(self, document_id: str) -> int:
        with self._lock.hold():
            kept = [c for c in self._chunks if c.metadata.source != document_id]
            removed = len(self._chunks) - len(kept)
            if removed:
                self._commit(kept, self._build_index(kept))
        return removed

    @property
    def count(self) -> int:
        return self._index.ntotal
