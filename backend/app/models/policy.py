"""Policy document domain models."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    """Document lifecycle status."""

    draft = "draft"
    review = "review"
    published = "published"
    archived = "archived"


class PolicyDocument(BaseModel):
    """Policy document metadata."""

    document_id: UUID
    title: str
    status: DocumentStatus = DocumentStatus.draft
    description: str | None = None
    version: str | None = None
    effective_date: date | None = None
    review_date: date | None = None
    storage_path: str | None = None  # relative to document_root
    file_type: str | None = None
    created_at: datetime
    updated_at: datetime


class ChunkDraft(BaseModel):
    """Chunk produced by the chunker, not yet persisted."""

    document_id: UUID
    chunk_index: int = Field(..., ge=0)
    chunk_text: str = Field(..., min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class PolicyChunk(BaseModel):
    """Persisted chunk. The vector itself stays in the store."""

    chunk_id: UUID
    document_id: UUID
    chunk_index: int  # 0-based
    chunk_text: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    has_embedding: bool = False


class EmbeddingStatus(BaseModel):
    """Embedding progress for one document, derived from its chunks."""

    embedded: int
    total: int
    pending: int
    complete: bool

    @classmethod
    def from_counts(cls, embedded: int, total: int) -> "EmbeddingStatus":
        return cls(
            embedded=embedded,
            total=total,
            pending=total - embedded,
            complete=total > 0 and embedded == total,
        )


class ChunkMatch(BaseModel):
    """Chunk text with denormalized document fields for display."""

    chunk_id: UUID
    document_id: UUID
    chunk_index: int
    chunk_text: str
    document_title: str | None = None
    document_status: DocumentStatus | None = None


class VectorHit(ChunkMatch):
    """Vector search hit annotated with cosine similarity."""

    similarity: float


class LexicalHit(ChunkMatch):
    """Full-text search hit annotated with the engine's relevance score."""

    rank: float


class SearchResult(ChunkMatch):
    """Fused result. Carries whichever source scores were observed."""

    similarity: float | None = None
    rank: float | None = None
    score: float


class IngestOutcome(str, Enum):
    """Classification of an embedding run."""

    success = "success"
    partial = "partial"
    failure = "failure"


class EmbedSummary(BaseModel):
    """Per-document embedding run summary."""

    successful: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def outcome(self) -> IngestOutcome:
        if self.failed == 0:
            return IngestOutcome.success
        if self.successful == 0:
            return IngestOutcome.failure
        return IngestOutcome.partial


class PolicyAnswer(BaseModel):
    """Synthesized answer with the chunks handed to the completion provider."""

    answer: str
    sources: list[SearchResult] = Field(default_factory=list)
    synthesis_source: Literal["stub", "openai", "none"] = "stub"
