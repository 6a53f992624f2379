"""Repository protocol interfaces for data access."""

from collections.abc import Sequence
from typing import Protocol
from uuid import UUID

from backend.app.models.policy import (
    ChunkDraft,
    ChunkMatch,
    DocumentStatus,
    LexicalHit,
    PolicyChunk,
    PolicyDocument,
    VectorHit,
)


class PolicyRepository(Protocol):
    """Repository for policy documents and their chunks."""

    async def create_document(self, document: PolicyDocument) -> PolicyDocument:
        """Persist a new document.

        Args:
            document: Document metadata (status usually draft)

        Returns:
            Stored document
        """
        ...

    async def get_document(self, document_id: UUID) -> PolicyDocument | None:
        """Get document by ID, or None if not found."""
        ...

    async def list_documents(self, status: DocumentStatus | None = None) -> list[PolicyDocument]:
        """List documents newest first, optionally filtered by status."""
        ...

    async def update_document_status(
        self, document_id: UUID, status: DocumentStatus
    ) -> PolicyDocument | None:
        """Transition document status.

        Returns:
            Updated document or None if not found
        """
        ...

    async def add_chunks(self, document_id: UUID, drafts: Sequence[ChunkDraft]) -> list[PolicyChunk]:
        """Insert the full chunk set for a document.

        Raises:
            ChunksAlreadyExistError: If the document already has chunks
        """
        ...

    async def list_chunks(self, document_id: UUID) -> list[PolicyChunk]:
        """List a document's chunks ordered by chunk_index."""
        ...

    async def list_unembedded_chunks(self, document_id: UUID) -> list[PolicyChunk]:
        """List chunks whose embedding is still null, ordered by chunk_index."""
        ...

    async def set_chunk_embedding(self, chunk_id: UUID, embedding: Sequence[float]) -> bool:
        """Store an embedding on a chunk that has none.

        Returns:
            False if the chunk already had an embedding (nothing written)
        """
        ...

    async def embedding_counts(self, document_id: UUID) -> tuple[int, int]:
        """Count (embedded, total) chunks for a document."""
        ...

    async def get_chunks_by_ids(self, chunk_ids: Sequence[UUID]) -> list[ChunkMatch]:
        """Fetch chunks with document title/status, in the requested order.

        Unknown IDs are skipped.
        """
        ...


class VectorIndex(Protocol):
    """Nearest-neighbor query over chunk embeddings."""

    async def match_chunks(
        self, query_embedding: Sequence[float], *, threshold: float, limit: int
    ) -> list[VectorHit]:
        """Return chunks with cosine similarity >= threshold, best first."""
        ...


class LexicalIndex(Protocol):
    """Full-text query over chunk text."""

    async def search_text(self, query_text: str, *, limit: int) -> list[LexicalHit]:
        """Return matching chunks ordered by native relevance, best first."""
        ...


class PolicyStore(PolicyRepository, VectorIndex, LexicalIndex, Protocol):
    """A backend providing documents, chunks and both search indexes."""

    pass
