"""Data models for the FlowFix knowledge base."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ChunkMetadata(BaseModel):
    """Provenance of a chunk.

    Attributes:
        source: Identifier of the originating document (file name or id).
        page: 1-based page within the source, or 0 when unknown. Used for
            attribution only.
    """

    model_config = ConfigDict(frozen=True)

    source: str
    page: int = Field(default=0, ge=0)


class Chunk(BaseModel):
    """A retrievable text span together with its embedding.

    Attributes:
        content: The literal text span.
        vector: Embedding of ``content`` produced by the corpus embedder.
        metadata: Source document and page.
    """

    model_config = ConfigDict(frozen=True)

    content: str = Field(min_length=1)
    vector: tuple[float, ...]
    metadata: ChunkMetadata

    @property
    def dimension(self) -> int:
        return len(self.vector)


class SimilarityResult(BaseModel):
    """A chunk matched by a query, with its cosine similarity."""

    content: str
    similarity: float
    metadata: ChunkMetadata


class SearchReport(BaseModel):
    """Ranked results plus the bookkeeping of a single search.

    Attributes:
        results: Matches above the threshold, best first.
        candidates: Number of chunks scored.
        skipped: Candidate positions excluded for a dimension mismatch.
    """

    results: list[SimilarityResult] = Field(default_factory=list)
    candidates: int = 0
    skipped: list[int] = Field(default_factory=list)


class DocumentStatus(str, Enum):
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class Document(BaseModel):
    """Catalog record for an uploaded document."""

    id: str
    name: str
    upload_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: DocumentStatus = DocumentStatus.PROCESSING
    chunk_count: int = 0
    error: Optional[str] = None
