"""
Cosine similarity and ranking over scored chunks.
"""

import math
from typing import Iterable, Sequence

from ..models import SimilarityResult


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors.

    Sums are accumulated in index order with Python floats so the result is
    reproducible bit for bit. Returns exactly 0.0 when the lengths differ or
    either vector has zero norm.
    """
    if len(a) != len(b):
        return 0.0

    dot_product = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        x = float(x)
        y = float(y)
        dot_product += x * y
        norm_a += x * x
        norm_b += y * y

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return dot_product / (math.sqrt(norm_a) * math.sqrt(norm_b))


def rank_results(
    scored: Iterable[SimilarityResult], *, threshold: float, top_k: int
) -> list[SimilarityResult]:
    """Keep results strictly above ``threshold``, best first, at most ``top_k``.

    The sort is stable, so equal similarities keep their corpus order.
    """
    matches = [result for result in scored if result.similarity > threshold]
    matches.sort(key=lambda result: result.similarity, reverse=True)
    return matches[:top_k]
