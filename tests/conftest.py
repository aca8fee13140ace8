import threading
from pathlib import Path
from typing import Any

import pytest

from flowfix.adapters.base import BaseEmbedder
from flowfix.errors import EmbeddingError
from flowfix.search import SimilaritySearchEngine
from flowfix.stores import FAISSChunkStore, InMemoryChunkStore

VOCABULARY = ["database", "timeout", "memory", "network", "permission"]


class MockEmbedder(BaseEmbedder):
    """Deterministic embedder: one dimension per vocabulary word."""

    def __init__(self, **kwargs: Any):
        super().__init__("mock-embedder", **kwargs)
        self.calls: list[str] = []

    @property
    def dimension(self) -> int:
        return len(VOCABULARY)

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if "boom" in text:
            raise EmbeddingError(f"cannot embed {text!r}")
        lowered = text.lower()
        return [float(lowered.count(word)) for word in VOCABULARY]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]


class StaticEmbedder(BaseEmbedder):
    """Returns the same query vector for every text."""

    def __init__(self, vector: list[float], **kwargs: Any):
        super().__init__("static-embedder", **kwargs)
        self.vector = vector

    @property
    def dimension(self) -> int:
        return len(self.vector)

    def embed(self, text: str) -> list[float]:
        return list(self.vector)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [list(self.vector) for _ in texts]


class BlockingEmbedder(MockEmbedder):
    """Blocks every call until ``release`` is set."""

    def __init__(self, **kwargs: Any):
        super().__init__(**kwargs)
        self.release = threading.Event()

    def embed(self, text: str) -> list[float]:
        self.release.wait(timeout=5)
        return super().embed(text)


@pytest.fixture
def mock_embedder() -> MockEmbedder:
    return MockEmbedder()


@pytest.fixture
def memory_store() -> InMemoryChunkStore:
    return InMemoryChunkStore()


@pytest.fixture
def temp_storage_dir(tmp_path: Path) -> Path:
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return storage_dir


@pytest.fixture
def faiss_store(temp_storage_dir: Path, mock_embedder: MockEmbedder) -> FAISSChunkStore:
    return FAISSChunkStore(
        dimension=mock_embedder.dimension,
        index_path=temp_storage_dir / "test.index",
        records_path=temp_storage_dir / "test.json",
    )


@pytest.fixture
def engine(mock_embedder: MockEmbedder, memory_store: InMemoryChunkStore) -> SimilaritySearchEngine:
    return SimilaritySearchEngine(
        mock_embedder, memory_store, similarity_threshold=0.5, top_k=3
    )


@pytest.fixture
def temp_config(tmp_path: Path) -> Path:
    config_content = """
[embedding]
provider = "ollama"
model = "nomic-embed-text"
dimension = 5

[storage]
backend = "memory"
directory = "storage"

[ingestion]
directory = "data/docs"
chunk_size = 1000
chunk_overlap = 200

[retrieval]
similarity_threshold = 0.7
top_k = 3
"""
    config_path = tmp_path / "config.toml"
    config_path.write_text(config_content)
    return config_path
