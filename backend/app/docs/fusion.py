"""Reciprocal Rank Fusion of vector and lexical result lists."""

from collections.abc import Sequence
from uuid import UUID

from backend.app.models.policy import LexicalHit, SearchResult, VectorHit

DEFAULT_RRF_K = 60


def rrf_contribution(rank: int, k: int = DEFAULT_RRF_K) -> float:
    """Score contributed by an item at 1-based `rank` in one list."""
    return 1.0 / (k + rank)


def reciprocal_rank_fusion(
    vector_hits: Sequence[VectorHit],
    lexical_hits: Sequence[LexicalHit],
    *,
    k: int = DEFAULT_RRF_K,
) -> list[SearchResult]:
    """Merge two ranked lists by summing 1/(k + rank) per chunk.

    Ranks come from list position (index + 1), never from raw scores. A
    chunk found by both lists sums both contributions. The first list to
    produce a chunk seeds its record; a later list only adds its own score
    field (similarity or rank). Output is sorted by fused score, ties kept
    in first-seen order (vector list before lexical list), and is not
    truncated.

    Args:
        vector_hits: Vector search results, best first
        lexical_hits: Lexical search results, best first
        k: Smoothing constant

    Returns:
        Fused results, highest score first
    """
    if k < 0:
        raise ValueError("k must be non-negative")

    fused: dict[UUID, SearchResult] = {}

    for index, hit in enumerate(vector_hits):
        contribution = rrf_contribution(index + 1, k)
        existing = fused.get(hit.chunk_id)
        if existing is None:
            fused[hit.chunk_id] = SearchResult(
                **hit.model_dump(exclude={"similarity"}),
                similarity=hit.similarity,
                score=contribution,
            )
        else:
            existing.score += contribution
            if existing.similarity is None:
                existing.similarity = hit.similarity

    for index, hit in enumerate(lexical_hits):
        contribution = rrf_contribution(index + 1, k)
        existing = fused.get(hit.chunk_id)
        if existing is None:
            fused[hit.chunk_id] = SearchResult(
                **hit.model_dump(exclude={"rank"}),
                rank=hit.rank,
                score=contribution,
            )
        else:
            existing.score += contribution
            if existing.rank is None:
                existing.rank = hit.rank

    # sorted() is stable; dict order is first-seen order
    return sorted(fused.values(), key=lambda result: -result.score)
