import logging
import math
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any, Callable, Optional, Sequence, TypeVar

from pydantic import ValidationError

from ..adapters import BaseEmbedder, create_embedder_from_config
from ..config import SearchSettings, get_config_value
from ..errors import (
    DimensionMismatch,
    EmbeddingError,
    InvalidParameter,
    KnowledgeBaseError,
    StoreUnavailable,
)
from ..models import Chunk, ChunkMetadata, SearchReport, SimilarityResult
from ..stores import BaseChunkStore, create_chunk_store_from_config
from .deadline import Deadline
from .similarity import cosine_similarity, rank_results

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_WORKERS = 4
DEFAULT_EMBED_BATCH_SIZE = 16
CANDIDATE_MULTIPLIER = 4


class SimilaritySearchEngine:
    """Rank stored chunks by cosine similarity to a query.

    The engine holds no state of its own besides its collaborators: an
    embedder turning text into vectors and a chunk store owning the corpus.
    Collaborator failures surface as ``EmbeddingError`` or
    ``StoreUnavailable`` and are never retried here.
    """

    def __init__(
        self,
        embedder: BaseEmbedder,
        store: BaseChunkStore,
        *,
        similarity_threshold: float = 0.7,
        top_k: int = 3,
        candidate_pool: Optional[int] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        embed_batch_size: int = DEFAULT_EMBED_BATCH_SIZE,
    ):
        _validate_search_params(similarity_threshold, top_k)
        if candidate_pool is not None and candidate_pool < 1:
            raise InvalidParameter("candidate_pool must be >= 1")
        if max_workers < 1 or embed_batch_size < 1:
            raise InvalidParameter("max_workers and embed_batch_size must be >= 1")

        self.embedder = embedder
        self.store = store
        self.similarity_threshold = similarity_threshold
        self.top_k = top_k
        self.candidate_pool = candidate_pool
        self.max_workers = max_workers
        self.embed_batch_size = embed_batch_size

    @classmethod
    def from_config(
        cls, config: dict[str, Any], config_path: Path
    ) -> "SimilaritySearchEngine":
        """Create an engine from configuration dictionary."""
        embedder = create_embedder_from_config(config)
        store = create_chunk_store_from_config(
            config, config_path, embedder.model, embedder.dimension
        )
        settings = SearchSettings.from_config(config)

        return cls(
            embedder,
            store,
            similarity_threshold=settings.similarity_threshold,
            top_k=settings.top_k,
            candidate_pool=settings.candidate_pool,
            max_workers=get_config_value(
                config, "ingestion.embedding_workers", DEFAULT_MAX_WORKERS
            ),
            embed_batch_size=get_config_value(
                config, "ingestion.embedding_batch_size", DEFAULT_EMBED_BATCH_SIZE
            ),
        )

    def ingest(
        self,
        document_id: str,
        chunks: Sequence[tuple[str, Sequence[float], int]],
        *,
        replace: bool = False,
    ) -> int:
        """Store ``(content, vector, page)`` chunks for a document in one batch.

        Every chunk is validated before the single store write, so either all
        chunks of the call are stored or none are. With ``replace`` the
        document's existing chunks are swapped out in that same write.
        """
        if not document_id:
            raise InvalidParameter("document_id must be a non-empty string")

        records = []
        for position, (content, vector, page) in enumerate(chunks):
            try:
                records.append(
                    Chunk(
                        content=content,
                        vector=tuple(float(v) for v in vector),
                        metadata=ChunkMetadata(source=document_id, page=page),
                    )
                )
            except ValidationError as e:
                raise InvalidParameter(
                    f"Chunk {position} of {document_id} is invalid: {e}"
                ) from e

        if not records and not replace:
            return 0

        expected = self.store.dimension or (records[0].dimension if records else None)
        for record in records:
            if record.dimension != expected:
                raise DimensionMismatch(
                    expected,
                    record.dimension,
                    f"Chunk of {document_id} has dimension {record.dimension}, "
                    f"corpus dimension is {expected}",
                )

        if replace:
            removed = self._call_store(
                "replace", self.store.replace_document, document_id, records
            )
            logger.info(
                f"Ingested {len(records)} chunks for {document_id}, "
                f"replacing {removed}"
            )
            return len(records)

        stored = self._call_store("insert", self.store.insert_many, records)
        logger.info(f"Ingested {stored} chunks for {document_id}")
        return stored

    def ingest_texts(
        self,
        document_id: str,
        segments: Sequence[tuple[str, int]],
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        replace: bool = False,
    ) -> int:
        """Embed ``(content, page)`` segments and store them as one batch.

        All vectors are buffered in memory before anything is written. If any
        segment fails to embed, or the call is cancelled, the store is left
        untouched; ``EmbeddingError`` lists the failed indices. With
        ``replace`` the document's previous chunks stay searchable until the
        new ones are written in their place.
        """
        if not document_id:
            raise InvalidParameter("document_id must be a non-empty string")
        if not segments and not replace:
            return 0

        deadline = Deadline(timeout, cancel_event)
        texts = [content for content, _ in segments]
        vectors: list[list[float]] = []
        if texts:
            logger.info(f"Embedding {len(texts)} segments for {document_id}")
            vectors = self._embed_texts(document_id, texts, deadline)

        # The write itself is never abandoned half way.
        deadline.check("ingest")
        return self.ingest(
            document_id,
            [
                (content, vector, page)
                for (content, page), vector in zip(segments, vectors)
            ],
            replace=replace,
        )

    def _embed_texts(
        self, document_id: str, texts: list[str], deadline: Deadline
    ) -> list[list[float]]:
        vectors: list[Optional[list[float]]] = [None] * len(texts)
        failed: list[int] = []
        first_error: Optional[Exception] = None

        executor = ThreadPoolExecutor(max_workers=self.max_workers)
        try:
            futures = {}
            for start in range(0, len(texts), self.embed_batch_size):
                batch = texts[start : start + self.embed_batch_size]
                futures[executor.submit(self.embedder.embed_batch, batch)] = (
                    start,
                    len(batch),
                )

            pending = set(futures)
            while pending:
                deadline.check("ingest")
                done, pending = wait(
                    pending,
                    timeout=deadline.poll_interval(),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    start, size = futures[future]
                    try:
                        embeddings = future.result()
                    except Exception as e:
                        first_error = first_error or e
                        failed.extend(start + i for i in _failed_positions(e, size))
                        continue

                    if len(embeddings) != size:
                        first_error = first_error or EmbeddingError(
                            f"Expected {size} embeddings, got {len(embeddings)}"
                        )
                        failed.extend(range(start + len(embeddings), start + size))
                    for offset, embedding in enumerate(embeddings[:size]):
                        vectors[start + offset] = embedding
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if failed:
            failed = sorted(set(failed))
            raise EmbeddingError(
                f"Embedding failed for {len(failed)}/{len(texts)} segments of "
                f"{document_id} at indices {failed}. First error: {first_error}",
                failed_indices=failed,
            ) from first_error

        return vectors  # type: ignore

    def search(
        self,
        query: str,
        threshold: Optional[float] = None,
        top_k: Optional[int] = None,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> list[SimilarityResult]:
        """Return the chunks most similar to ``query``, best first.

        An empty list means nothing scored above the threshold; failures to
        embed the query or read the store raise instead.
        """
        return self.search_with_report(
            query,
            threshold,
            top_k,
            timeout=timeout,
            cancel_event=cancel_event,
        ).results

    def search_with_report(
        self,
        query: str,
        threshold: Optional[float] = None,
        top_k: Optional[int] = None,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SearchReport:
        """Run ``search`` and also report candidates scored and skipped."""
        threshold = self.similarity_threshold if threshold is None else threshold
        top_k = self.top_k if top_k is None else top_k
        _validate_search_params(threshold, top_k)
        if not isinstance(query, str) or not query.strip():
            raise InvalidParameter("query must be a non-empty string")

        deadline = Deadline(timeout, cancel_event)
        query_vector = self._embed_query(query, deadline)
        candidates = self._fetch_candidates(query_vector, top_k, deadline)

        scored = []
        skipped = []
        for position, chunk in enumerate(candidates):
            if chunk.dimension != len(query_vector):
                logger.warning(
                    f"Skipping chunk {position} from {chunk.metadata.source}: "
                    f"dimension {chunk.dimension} does not match query "
                    f"dimension {len(query_vector)}"
                )
                skipped.append(position)
                continue
            scored.append(
                SimilarityResult(
                    content=chunk.content,
                    similarity=cosine_similarity(query_vector, chunk.vector),
                    metadata=chunk.metadata,
                )
            )

        results = rank_results(scored, threshold=threshold, top_k=top_k)
        logger.info(
            f"Found {len(results)} similar chunks among {len(candidates)} candidates"
        )
        return SearchReport(results=results, candidates=len(candidates), skipped=skipped)

    def _embed_query(self, query: str, deadline: Deadline) -> list[float]:
        logger.debug(f"Embedding query: {query[:50]}...")
        try:
            vector = deadline.run("search", self.embedder.embed, query)
        except KnowledgeBaseError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Query embedding failed: {e}") from e

        if not vector:
            raise EmbeddingError("Query embedding is empty")
        return [float(v) for v in vector]

    def _fetch_candidates(
        self, query_vector: list[float], top_k: int, deadline: Deadline
    ) -> list[Chunk]:
        if self.store.supports_native_search:
            limit = self.candidate_pool or top_k * CANDIDATE_MULTIPLIER
            return self._call_store(
                "search",
                deadline.run,
                "search",
                self.store.find_candidates,
                query_vector,
                limit,
            )
        return self._call_store("search", deadline.run, "search", self.store.find_all)

    def delete_document(self, document_id: str) -> int:
        """Remove every chunk of a document. Unknown ids remove nothing."""
        removed = self._call_store(
            "delete", self.store.delete_by_document_id, document_id
        )
        logger.info(f"Deleted {removed} chunks for {document_id}")
        return removed

    def _call_store(self, operation: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return fn(*args)
        except KnowledgeBaseError:
            raise
        except Exception as e:
            raise StoreUnavailable(f"Chunk store {operation} failed: {e}") from e


def _validate_search_params(threshold: float, top_k: int) -> None:
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise InvalidParameter("threshold must be a number")
    if math.isnan(threshold):
        raise InvalidParameter("threshold must not be NaN")
    if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k < 1:
        raise InvalidParameter("top_k must be a positive integer")


def _failed_positions(error: Exception, size: int) -> Sequence[int]:
    if isinstance(error, EmbeddingError) and error.failed_indices:
        return error.failed_indices
    return range(size)
