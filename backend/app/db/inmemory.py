"""In-memory implementations of repository interfaces.

Used when no DATABASE_URL is configured and by tests. Vector search is a
numpy cosine scan and lexical search is BM25+ over tokenize() output, so
both honor the same contracts as the SQL store.
"""

import uuid
from collections.abc import Sequence
from datetime import datetime, timezone

import numpy as np
from rank_bm25 import BM25Plus

from backend.app.docs.errors import ChunksAlreadyExistError
from backend.app.docs.text import tokenize
from backend.app.models.policy import (
    ChunkDraft,
    ChunkMatch,
    DocumentStatus,
    LexicalHit,
    PolicyChunk,
    PolicyDocument,
    VectorHit,
)


class InMemoryPolicyStore:
    """In-memory implementation of PolicyRepository, VectorIndex and LexicalIndex."""

    def __init__(self) -> None:
        self._documents: dict[uuid.UUID, PolicyDocument] = {}
        self._chunks: dict[uuid.UUID, PolicyChunk] = {}
        self._embeddings: dict[uuid.UUID, np.ndarray] = {}

    async def create_document(self, document: PolicyDocument) -> PolicyDocument:
        """Persist a new document."""
        self._documents[document.document_id] = document
        return document

    async def get_document(self, document_id: uuid.UUID) -> PolicyDocument | None:
        """Get document by ID."""
        return self._documents.get(document_id)

    async def list_documents(self, status: DocumentStatus | None = None) -> list[PolicyDocument]:
        """List documents newest first."""
        docs = [d for d in self._documents.values() if status is None or d.status == status]
        return sorted(docs, key=lambda d: d.created_at, reverse=True)

    async def update_document_status(
        self, document_id: uuid.UUID, status: DocumentStatus
    ) -> PolicyDocument | None:
        """Transition document status."""
        document = self._documents.get(document_id)
        if document is None:
            return None

        updated = document.model_copy(
            update={"status": status, "updated_at": datetime.now(timezone.utc)}
        )
        self._documents[document_id] = updated
        return updated

    async def add_chunks(
        self, document_id: uuid.UUID, drafts: Sequence[ChunkDraft]
    ) -> list[PolicyChunk]:
        """Insert the full chunk set for a document."""
        if any(c.document_id == document_id for c in self._chunks.values()):
            raise ChunksAlreadyExistError(f"document {document_id} already has chunks")

        created = [
            PolicyChunk(
                chunk_id=uuid.uuid4(),
                document_id=document_id,
                chunk_index=draft.chunk_index,
                chunk_text=draft.chunk_text,
                metadata=draft.metadata,
            )
            for draft in drafts
        ]
        for chunk in created:
            self._chunks[chunk.chunk_id] = chunk
        return created

    async def list_chunks(self, document_id: uuid.UUID) -> list[PolicyChunk]:
        """List a document's chunks in index order."""
        chunks = [c for c in self._chunks.values() if c.document_id == document_id]
        return sorted(chunks, key=lambda c: c.chunk_index)

    async def list_unembedded_chunks(self, document_id: uuid.UUID) -> list[PolicyChunk]:
        """List chunks without an embedding in index order."""
        return [c for c in await self.list_chunks(document_id) if not c.has_embedding]

    async def set_chunk_embedding(self, chunk_id: uuid.UUID, embedding: Sequence[float]) -> bool:
        """Store an embedding on a chunk that has none."""
        chunk = self._chunks.get(chunk_id)
        if chunk is None or chunk.has_embedding:
            return False

        self._embeddings[chunk_id] = np.asarray(embedding, dtype=np.float32)
        self._chunks[chunk_id] = chunk.model_copy(update={"has_embedding": True})
        return True

    async def embedding_counts(self, document_id: uuid.UUID) -> tuple[int, int]:
        """Count (embedded, total) chunks for a document."""
        chunks = await self.list_chunks(document_id)
        return sum(1 for c in chunks if c.has_embedding), len(chunks)

    async def get_chunks_by_ids(self, chunk_ids: Sequence[uuid.UUID]) -> list[ChunkMatch]:
        """Fetch chunks with document fields in the requested order."""
        return [
            ChunkMatch(**self._match_fields(self._chunks[chunk_id]))
            for chunk_id in chunk_ids
            if chunk_id in self._chunks
        ]

    async def match_chunks(
        self, query_embedding: Sequence[float], *, threshold: float, limit: int
    ) -> list[VectorHit]:
        """Cosine similarity scan over embedded chunks."""
        if not self._embeddings:
            return []

        chunk_ids = list(self._embeddings)
        matrix = np.stack([self._embeddings[cid] for cid in chunk_ids])
        query = np.asarray(query_embedding, dtype=np.float32)

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        with np.errstate(divide="ignore", invalid="ignore"):
            similarities = np.where(norms > 0, matrix @ query / norms, 0.0)

        scored = [
            (float(sim), self._chunks[cid])
            for cid, sim in zip(chunk_ids, similarities)
            if float(sim) >= threshold
        ]
        scored.sort(key=lambda x: (-x[0], str(x[1].document_id), x[1].chunk_index))

        return [
            VectorHit(**self._match_fields(chunk), similarity=similarity)
            for similarity, chunk in scored[:limit]
        ]

    async def search_text(self, query_text: str, *, limit: int) -> list[LexicalHit]:
        """BM25+ ranking over chunks containing every query term, like plainto_tsquery."""
        query_terms = tokenize(query_text)
        if not query_terms or not self._chunks:
            return []

        chunks = list(self._chunks.values())
        corpus = [tokenize(c.chunk_text) for c in chunks]
        # BM25Plus rejects an all-empty corpus
        if not any(corpus):
            return []

        scores = BM25Plus(corpus).get_scores(query_terms)
        wanted = set(query_terms)

        scored = [
            (float(score), chunk)
            for chunk, terms, score in zip(chunks, corpus, scores)
            if wanted.issubset(terms)
        ]
        scored.sort(key=lambda x: (-x[0], str(x[1].document_id), x[1].chunk_index))

        return [
            LexicalHit(**self._match_fields(chunk), rank=rank) for rank, chunk in scored[:limit]
        ]

    def _match_fields(self, chunk: PolicyChunk) -> dict:
        document = self._documents.get(chunk.document_id)
        return {
            "chunk_id": chunk.chunk_id,
            "document_id": chunk.document_id,
            "chunk_index": chunk.chunk_index,
            "chunk_text": chunk.chunk_text,
            "document_title": document.title if document else None,
            "document_status": document.status if document else None,
        }
