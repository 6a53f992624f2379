"""Lexical search engine - full-text relevance ranking."""

from backend.app.db.repositories import LexicalIndex
from backend.app.models.policy import LexicalHit


class LexicalSearchEngine:
    """Query the full-text index with a result cap.

    Normalization parity lives in the index: the SQL store applies the same
    text search configuration to chunk text and query, and the in-memory
    store runs both through tokenize().
    """

    def __init__(self, index: LexicalIndex, *, match_count: int = 10) -> None:
        if match_count < 1:
            raise ValueError("match_count must be at least 1")

        self._index = index
        self.match_count = match_count

    async def search(self, query_text: str, *, match_count: int | None = None) -> list[LexicalHit]:
        """Return chunks matching the query text, most relevant first."""
        if not query_text.strip():
            return []

        limit = self.match_count if match_count is None else match_count
        hits = await self._index.search_text(query_text, limit=limit)
        return sorted(hits, key=lambda hit: -hit.rank)[:limit]
