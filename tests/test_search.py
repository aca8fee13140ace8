import math
import random
import threading
from unittest.mock import MagicMock

import pytest

from conftest import BlockingEmbedder, MockEmbedder, StaticEmbedder
from flowfix.errors import (
    Cancelled,
    DimensionMismatch,
    EmbeddingError,
    InvalidParameter,
    StoreUnavailable,
)
from flowfix.models import Chunk, ChunkMetadata, SimilarityResult
from flowfix.search import SimilaritySearchEngine, cosine_similarity, rank_results
from flowfix.stores import BaseChunkStore, InMemoryChunkStore


def _unit(similarity: float) -> list[float]:
    """2-d vector whose cosine with [1, 0] is ``similarity``."""
    return [similarity, math.sqrt(1.0 - similarity * similarity)]


def _chunk(content: str, vector: list[float], source: str = "doc.pdf") -> Chunk:
    return Chunk(content=content, vector=vector, metadata=ChunkMetadata(source=source))


class TestCosineSimilarity:
    def test_is_symmetric(self) -> None:
        rng = random.Random(7)
        for _ in range(50):
            a = [rng.uniform(-1, 1) for _ in range(16)]
            b = [rng.uniform(-1, 1) for _ in range(16)]
            assert cosine_similarity(a, b) == cosine_similarity(b, a)

    def test_self_similarity_is_one(self) -> None:
        rng = random.Random(11)
        for _ in range(50):
            a = [rng.uniform(-10, 10) for _ in range(32)]
            assert cosine_similarity(a, a) == pytest.approx(1.0, abs=1e-9)

    def test_zero_vector_scores_zero(self) -> None:
        assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0
        assert cosine_similarity([1.0, 2.0, 3.0], [0.0, 0.0, 0.0]) == 0.0

    def test_length_mismatch_scores_zero(self) -> None:
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0]) == 0.0

    def test_known_values(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == -1.0
        assert cosine_similarity([3.0, 4.0], [3.0, 4.0]) == 1.0


class TestRankResults:
    def _result(self, content: str, similarity: float) -> SimilarityResult:
        return SimilarityResult(
            content=content,
            similarity=similarity,
            metadata=ChunkMetadata(source="doc.pdf"),
        )

    def test_threshold_is_strict(self) -> None:
        scored = [self._result("equal", 0.7), self._result("above", 0.7000001)]
        ranked = rank_results(scored, threshold=0.7, top_k=5)
        assert [r.content for r in ranked] == ["above"]

    def test_ties_keep_corpus_order(self) -> None:
        scored = [
            self._result("first", 0.8),
            self._result("best", 0.9),
            self._result("second", 0.8),
            self._result("third", 0.8),
        ]
        ranked = rank_results(scored, threshold=0.0, top_k=4)
        assert [r.content for r in ranked] == ["best", "first", "second", "third"]

    def test_truncates_to_top_k(self) -> None:
        scored = [self._result(str(i), 0.9 - i * 0.01) for i in range(10)]
        assert len(rank_results(scored, threshold=0.0, top_k=3)) == 3


class TestSearch:
    def test_threshold_and_ordering_scenario(self) -> None:
        store = InMemoryChunkStore()
        engine = SimilaritySearchEngine(StaticEmbedder([1.0, 0.0]), store)
        engine.ingest(
            "guide.pdf",
            [
                ("restart the pool", _unit(0.91), 0),
                ("check the logs", _unit(0.72), 1),
                ("unrelated", _unit(0.40), 2),
            ],
        )

        results = engine.search("pool crashed", threshold=0.7, top_k=3)

        assert [r.content for r in results] == ["restart the pool", "check the logs"]
        assert results[0].similarity == pytest.approx(0.91)
        assert results[1].similarity == pytest.approx(0.72)
        assert results[0].metadata == ChunkMetadata(source="guide.pdf", page=0)

    def test_chunk_at_threshold_is_excluded(self) -> None:
        engine = SimilaritySearchEngine(StaticEmbedder([3.0, 4.0]), InMemoryChunkStore())
        engine.ingest("a.pdf", [("exact", [3.0, 4.0], 0)])

        assert engine.search("q", threshold=1.0, top_k=3) == []
        assert len(engine.search("q", threshold=0.99, top_k=3)) == 1

    def test_never_returns_more_than_top_k(self, engine: SimilaritySearchEngine) -> None:
        engine.ingest_texts(
            "db.md", [(f"database timeout number {i}", i) for i in range(10)]
        )

        results = engine.search("database timeout", threshold=0.0, top_k=4)

        assert len(results) == 4
        assert all(r.similarity > 0.0 for r in results)
        similarities = [r.similarity for r in results]
        assert similarities == sorted(similarities, reverse=True)

    def test_equal_scores_keep_insertion_order(self) -> None:
        engine = SimilaritySearchEngine(StaticEmbedder([1.0, 0.0]), InMemoryChunkStore())
        engine.ingest("a.pdf", [("a1", [1.0, 1.0], 0)])
        engine.ingest("b.pdf", [("b1", [1.0, 1.0], 0), ("b2", [1.0, 0.0], 1)])
        engine.ingest("c.pdf", [("c1", [1.0, 1.0], 0)])

        results = engine.search("q", threshold=0.5, top_k=4)

        assert [r.content for r in results] == ["b2", "a1", "b1", "c1"]

    def test_search_is_idempotent(self, engine: SimilaritySearchEngine) -> None:
        engine.ingest_texts(
            "ops.md",
            [
                ("network timeout on the database", 0),
                ("memory pressure", 1),
                ("permission denied on network share", 2),
            ],
        )

        first = engine.search("network timeout", threshold=0.1, top_k=3)
        second = engine.search("network timeout", threshold=0.1, top_k=3)

        assert first == second
        assert first

    def test_empty_corpus_returns_empty_list(self, engine: SimilaritySearchEngine) -> None:
        assert engine.search("database timeout") == []

    def test_uses_configured_defaults(self, mock_embedder: MockEmbedder) -> None:
        engine = SimilaritySearchEngine(
            mock_embedder, InMemoryChunkStore(), similarity_threshold=0.9, top_k=1
        )
        engine.ingest_texts("a.md", [("database", 0), ("database", 1), ("memory", 2)])

        results = engine.search("database")

        assert len(results) == 1
        assert results[0].metadata.page == 0

    def test_embedding_failure_raises(self, engine: SimilaritySearchEngine) -> None:
        engine.ingest_texts("a.md", [("database", 0)])

        with pytest.raises(EmbeddingError):
            engine.search("boom")

    def test_unexpected_embedder_error_is_wrapped(self) -> None:
        embedder = MagicMock()
        embedder.embed.side_effect = ConnectionError("provider down")
        engine = SimilaritySearchEngine(embedder, InMemoryChunkStore())

        with pytest.raises(EmbeddingError, match="provider down"):
            engine.search("anything")

    def test_store_failure_raises(self, mock_embedder: MockEmbedder) -> None:
        store = MagicMock(spec=BaseChunkStore)
        store.supports_native_search = False
        store.find_all.side_effect = OSError("disk gone")
        engine = SimilaritySearchEngine(mock_embedder, store)

        with pytest.raises(StoreUnavailable) as exc_info:
            engine.search("database")

        assert exc_info.value.retryable

    def test_dimension_mismatch_skips_only_that_chunk(
        self, mock_embedder: MockEmbedder
    ) -> None:
        store = MagicMock(spec=BaseChunkStore)
        store.supports_native_search = False
        store.find_all.return_value = [
            _chunk("good", [1.0, 0.0, 0.0, 0.0, 0.0]),
            _chunk("corrupt", [1.0, 0.0]),
            _chunk("also good", [1.0, 1.0, 0.0, 0.0, 0.0]),
        ]
        engine = SimilaritySearchEngine(mock_embedder, store)

        report = engine.search_with_report("database", threshold=0.5, top_k=5)

        assert [r.content for r in report.results] == ["good", "also good"]
        assert report.candidates == 3
        assert report.skipped == [1]

    @pytest.mark.parametrize(
        "threshold, top_k",
        [(0.7, 0), (0.7, -1), (float("nan"), 3), ("high", 3)],
    )
    def test_invalid_parameters_rejected_before_io(
        self, threshold, top_k, mock_embedder: MockEmbedder
    ) -> None:
        engine = SimilaritySearchEngine(mock_embedder, InMemoryChunkStore())

        with pytest.raises(InvalidParameter):
            engine.search("database", threshold=threshold, top_k=top_k)

        assert mock_embedder.calls == []

    def test_empty_query_rejected(self, engine: SimilaritySearchEngine) -> None:
        with pytest.raises(InvalidParameter):
            engine.search("   ")


class TestCancellation:
    def test_preset_cancel_event_aborts_before_embedding(
        self, mock_embedder: MockEmbedder
    ) -> None:
        engine = SimilaritySearchEngine(mock_embedder, InMemoryChunkStore())
        cancel_event = threading.Event()
        cancel_event.set()

        with pytest.raises(Cancelled):
            engine.search("database", cancel_event=cancel_event)

        assert mock_embedder.calls == []

    def test_timeout_aborts_blocked_embedding(self) -> None:
        embedder = BlockingEmbedder()
        engine = SimilaritySearchEngine(embedder, InMemoryChunkStore())

        try:
            with pytest.raises(Cancelled, match="timed out"):
                engine.search("database", timeout=0.1)
        finally:
            embedder.release.set()

    def test_cancel_event_aborts_ingest_without_writes(self) -> None:
        embedder = BlockingEmbedder()
        store = InMemoryChunkStore()
        engine = SimilaritySearchEngine(embedder, store)
        cancel_event = threading.Event()
        timer = threading.Timer(0.1, cancel_event.set)
        timer.start()

        try:
            with pytest.raises(Cancelled):
                engine.ingest_texts(
                    "a.md", [("database", 0), ("memory", 1)], cancel_event=cancel_event
                )
        finally:
            embedder.release.set()
            timer.cancel()

        assert store.count == 0

    def test_fast_calls_complete_within_timeout(self, engine: SimilaritySearchEngine) -> None:
        engine.ingest_texts("a.md", [("database", 0)], timeout=5)

        results = engine.search("database", timeout=5)

        assert len(results) == 1


class TestIngest:
    def test_ingest_tags_chunks_with_document_id(
        self, engine: SimilaritySearchEngine, memory_store: InMemoryChunkStore
    ) -> None:
        stored = engine.ingest("runbook.pdf", [("database", [1.0, 0, 0, 0, 0], 4)])

        assert stored == 1
        chunk = memory_store.find_all()[0]
        assert chunk.metadata == ChunkMetadata(source="runbook.pdf", page=4)
        assert chunk.vector == (1.0, 0.0, 0.0, 0.0, 0.0)

    def test_mixed_dimensions_store_nothing(
        self, engine: SimilaritySearchEngine, memory_store: InMemoryChunkStore
    ) -> None:
        with pytest.raises(DimensionMismatch):
            engine.ingest("a.pdf", [("one", [1.0, 0.0], 0), ("two", [1.0, 0.0, 0.0], 1)])

        assert memory_store.count == 0

    def test_dimension_must_match_existing_corpus(
        self, engine: SimilaritySearchEngine, memory_store: InMemoryChunkStore
    ) -> None:
        engine.ingest("a.pdf", [("one", [1.0, 0.0], 0)])

        with pytest.raises(DimensionMismatch):
            engine.ingest("b.pdf", [("two", [1.0, 0.0, 0.0], 0)])

        assert memory_store.count == 1

    def test_invalid_chunk_rejected(self, engine: SimilaritySearchEngine) -> None:
        with pytest.raises(InvalidParameter):
            engine.ingest("a.pdf", [("", [1.0], 0)])
        with pytest.raises(InvalidParameter):
            engine.ingest("a.pdf", [("text", [1.0], -1)])

    def test_ingest_texts_embeds_in_parallel_batches(
        self, mock_embedder: MockEmbedder, memory_store: InMemoryChunkStore
    ) -> None:
        engine = SimilaritySearchEngine(
            mock_embedder, memory_store, max_workers=4, embed_batch_size=2
        )
        segments = [(f"database {i}", i) for i in range(7)]

        stored = engine.ingest_texts("a.md", segments)

        assert stored == 7
        assert sorted(mock_embedder.calls) == sorted(text for text, _ in segments)
        assert [c.metadata.page for c in memory_store.find_all()] == list(range(7))

    def test_partial_embedding_failure_reports_indices_and_writes_nothing(
        self, mock_embedder: MockEmbedder, memory_store: InMemoryChunkStore
    ) -> None:
        engine = SimilaritySearchEngine(mock_embedder, memory_store, embed_batch_size=1)
        segments = [("database", 0), ("boom one", 1), ("memory", 2), ("boom two", 3)]

        with pytest.raises(EmbeddingError) as exc_info:
            engine.ingest_texts("a.md", segments)

        assert exc_info.value.failed_indices == [1, 3]
        assert memory_store.count == 0

    def test_store_write_failure_raises_store_unavailable(
        self, engine: SimilaritySearchEngine, memory_store: InMemoryChunkStore, monkeypatch
    ) -> None:
        def failing_save() -> None:
            raise OSError("read-only file system")

        monkeypatch.setattr(memory_store, "save", failing_save)

        with pytest.raises(StoreUnavailable):
            engine.ingest_texts("a.md", [("database", 0)])

        assert memory_store.count == 0

    def test_replace_swaps_document_chunks(
        self, engine: SimilaritySearchEngine, memory_store: InMemoryChunkStore
    ) -> None:
        engine.ingest_texts("a.md", [("database", 0), ("memory", 1)])
        engine.ingest_texts("b.md", [("network", 0)])

        stored = engine.ingest_texts("a.md", [("network", 3)], replace=True)

        assert stored == 1
        assert [(c.metadata.source, c.metadata.page) for c in memory_store.find_all()] == [
            ("b.md", 0),
            ("a.md", 3),
        ]

    def test_failed_replace_keeps_previous_chunks(
        self, mock_embedder: MockEmbedder, memory_store: InMemoryChunkStore
    ) -> None:
        engine = SimilaritySearchEngine(mock_embedder, memory_store, embed_batch_size=1)
        engine.ingest_texts("a.md", [("database", 0), ("memory", 1)])

        with pytest.raises(EmbeddingError):
            engine.ingest_texts("a.md", [("network", 0), ("boom", 1)], replace=True)

        assert [c.content for c in memory_store.find_all()] == ["database", "memory"]

    def test_replace_with_no_segments_clears_document(
        self, engine: SimilaritySearchEngine, memory_store: InMemoryChunkStore
    ) -> None:
        engine.ingest_texts("a.md", [("database", 0)])

        assert engine.ingest_texts("a.md", [], replace=True) == 0
        assert memory_store.count == 0


class TestDeleteDocument:
    def test_removes_only_that_document(
        self, engine: SimilaritySearchEngine, memory_store: InMemoryChunkStore
    ) -> None:
        engine.ingest_texts("a.md", [("database", 0), ("memory", 1)])
        engine.ingest_texts("b.md", [("network", 0)])

        assert engine.delete_document("a.md") == 2
        assert [c.metadata.source for c in memory_store.find_all()] == ["b.md"]

    def test_second_delete_returns_zero(self, engine: SimilaritySearchEngine) -> None:
        engine.ingest_texts("a.md", [("database", 0)])

        assert engine.delete_document("a.md") == 1
        assert engine.delete_document("a.md") == 0
        assert engine.delete_document("never-uploaded.pdf") == 0


class TestNativeSearch:
    def test_faiss_store_matches_in_memory_results(self, faiss_store) -> None:
        segments = [
            ("database timeout", 0),
            ("network permission", 1),
            ("database memory", 2),
            ("timeout timeout", 3),
        ]
        native = SimilaritySearchEngine(MockEmbedder(), faiss_store)
        exhaustive = SimilaritySearchEngine(MockEmbedder(), InMemoryChunkStore())
        native.ingest_texts("ops.md", segments)
        exhaustive.ingest_texts("ops.md", segments)

        expected = exhaustive.search("database timeout", threshold=0.3, top_k=2)
        actual = native.search("database timeout", threshold=0.3, top_k=2)

        assert [r.content for r in actual] == [r.content for r in expected]
        for a, e in zip(actual, expected):
            assert a.similarity == pytest.approx(e.similarity)
