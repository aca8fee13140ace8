from .catalog import DocumentCatalog
from .ingestion import IngestionPipeline
from .retrieval import (
    DEFAULT_MAX_CONTEXT_TOKENS,
    NO_MATCH_MESSAGE,
    KnowledgeBaseAnswer,
    RetrievalPipeline,
    count_tokens,
)

__all__ = [
    "DocumentCatalog",
    "IngestionPipeline",
    "KnowledgeBaseAnswer",
    "RetrievalPipeline",
    "count_tokens",
    "DEFAULT_MAX_CONTEXT_TOKENS",
    "NO_MATCH_MESSAGE",
]
