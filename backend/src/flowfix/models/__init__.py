from .chunk import (
    Chunk,
    ChunkMetadata,
    Document,
    DocumentStatus,
    SearchReport,
    SimilarityResult,
)

__all__ = [
    "Chunk",
    "ChunkMetadata",
    "Document",
    "DocumentStatus",
    "SearchReport",
    "SimilarityResult",
]
