"""Models package - re-exports for convenience."""

from backend.app.models.policy import (
    ChunkDraft,
    ChunkMatch,
    DocumentStatus,
    EmbeddingStatus,
    EmbedSummary,
    IngestOutcome,
    LexicalHit,
    PolicyAnswer,
    PolicyChunk,
    PolicyDocument,
    SearchResult,
    VectorHit,
)

__all__ = [
    "ChunkDraft",
    "ChunkMatch",
    "DocumentStatus",
    "EmbedSummary",
    "EmbeddingStatus",
    "IngestOutcome",
    "LexicalHit",
    "PolicyAnswer",
    "PolicyChunk",
    "PolicyDocument",
    "SearchResult",
    "VectorHit",
]
