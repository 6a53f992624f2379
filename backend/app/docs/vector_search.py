"""Vector search engine - cosine nearest neighbors above a threshold."""

from collections.abc import Sequence

from backend.app.db.repositories import VectorIndex
from backend.app.docs.errors import ValidationFailure
from backend.app.models.policy import VectorHit


class VectorSearchEngine:
    """Query the vector index and enforce the result contract.

    Whatever the backing index, results have similarity >= threshold, come
    back best first and never exceed the configured count.
    """

    def __init__(
        self,
        index: VectorIndex,
        *,
        dimensions: int,
        threshold: float = 0.3,
        match_count: int = 10,
    ) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold must be between 0 and 1")
        if match_count < 1:
            raise ValueError("match_count must be at least 1")

        self._index = index
        self._dimensions = dimensions
        self.threshold = threshold
        self.match_count = match_count

    async def search(
        self,
        query_embedding: Sequence[float],
        *,
        threshold: float | None = None,
        match_count: int | None = None,
    ) -> list[VectorHit]:
        """Return chunks similar to the query vector.

        Raises:
            ValidationFailure: If the vector has the wrong dimensionality
        """
        if len(query_embedding) != self._dimensions:
            raise ValidationFailure(
                f"query embedding has {len(query_embedding)} dimensions, "
                f"expected {self._dimensions}"
            )

        threshold = self.threshold if threshold is None else threshold
        limit = self.match_count if match_count is None else match_count

        hits = await self._index.match_chunks(query_embedding, threshold=threshold, limit=limit)

        # Stable sort keeps index order among equal similarities
        hits = sorted(
            (hit for hit in hits if hit.similarity >= threshold),
            key=lambda hit: -hit.similarity,
        )
        return hits[:limit]
