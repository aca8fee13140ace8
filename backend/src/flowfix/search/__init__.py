"""Similarity search over embedded document chunks."""

from .engine import SimilaritySearchEngine
from .similarity import cosine_similarity, rank_results

__all__ = [
    "SimilaritySearchEngine",
    "cosine_similarity",
    "rank_results",
]
