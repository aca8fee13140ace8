"""
FlowFix knowledge base: semantic search over an internal document corpus.

Example usage:
    >>> from flowfix import SimilaritySearchEngine, InMemoryChunkStore
    >>> engine = SimilaritySearchEngine(embedder, InMemoryChunkStore())
    >>> engine.ingest_texts("guide.pdf", [("Restart the worker pool.", 0)])
    >>> engine.search("worker pool crashed", threshold=0.7, top_k=3)
"""

from .config import AzureOpenAIConfig, SearchSettings
from .errors import (
    Cancelled,
    DimensionMismatch,
    EmbeddingError,
    InvalidParameter,
    KnowledgeBaseError,
    StoreUnavailable,
)
from .models import Chunk, ChunkMetadata, Document, DocumentStatus, SimilarityResult
from .search import SimilaritySearchEngine, cosine_similarity
from .splitters import RecursiveTextSplitter
from .stores import BaseChunkStore, FAISSChunkStore, InMemoryChunkStore

__all__ = [
    # Engine
    "SimilaritySearchEngine",
    "cosine_similarity",
    "RecursiveTextSplitter",
    # Stores
    "BaseChunkStore",
    "InMemoryChunkStore",
    "FAISSChunkStore",
    # Models
    "Chunk",
    "ChunkMetadata",
    "Document",
    "DocumentStatus",
    "SimilarityResult",
    # Config
    "AzureOpenAIConfig",
    "SearchSettings",
    # Errors
    "KnowledgeBaseError",
    "InvalidParameter",
    "EmbeddingError",
    "StoreUnavailable",
    "DimensionMismatch",
    "Cancelled",
]
