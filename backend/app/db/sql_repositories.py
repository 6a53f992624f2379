"""SQL implementations of repository interfaces.

Each call opens its own session from the factory so vector and lexical
queries can run concurrently. match_chunks and search_text need Postgres
(pgvector and full-text search); the document and chunk methods also run
on SQLite.
"""

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime, timezone

from sqlalchemy import func, literal_column, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import defer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.db.models import PolicyChunkRow, PolicyDocumentRow
from backend.app.docs.errors import ChunksAlreadyExistError
from backend.app.models.policy import (
    ChunkDraft,
    ChunkMatch,
    DocumentStatus,
    LexicalHit,
    PolicyChunk,
    PolicyDocument,
    VectorHit,
)

logger = logging.getLogger(__name__)


def _to_document(row: PolicyDocumentRow) -> PolicyDocument:
    return PolicyDocument(
        document_id=row.document_id,
        title=row.title,
        status=DocumentStatus(row.status),
        description=row.description,
        version=row.version,
        effective_date=row.effective_date,
        review_date=row.review_date,
        storage_path=row.storage_path,
        file_type=row.file_type,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


# Chunk reads never load the vector column itself
WITHOUT_VECTOR = defer(PolicyChunkRow.embedding)
HAS_EMBEDDING = PolicyChunkRow.embedding.is_not(None).label("has_embedding")


def _to_chunk(row: PolicyChunkRow, has_embedding: bool) -> PolicyChunk:
    return PolicyChunk(
        chunk_id=row.chunk_id,
        document_id=row.document_id,
        chunk_index=row.chunk_index,
        chunk_text=row.chunk_text,
        metadata=row.metadata_ or {},
        has_embedding=bool(has_embedding),
    )


def _match_fields(chunk: PolicyChunkRow, title: str, status: str) -> dict:
    return {
        "chunk_id": chunk.chunk_id,
        "document_id": chunk.document_id,
        "chunk_index": chunk.chunk_index,
        "chunk_text": chunk.chunk_text,
        "document_title": title,
        "document_status": DocumentStatus(status),
    }


class SqlPolicyStore:
    """SQL implementation of PolicyRepository, VectorIndex and LexicalIndex."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        text_search_config: str = "english",
    ) -> None:
        self._session_factory = session_factory
        self._text_search_config = text_search_config

    async def create_document(self, document: PolicyDocument) -> PolicyDocument:
        """Persist a new document."""
        row = PolicyDocumentRow(
            document_id=document.document_id,
            title=document.title,
            status=document.status.value,
            description=document.description,
            version=document.version,
            effective_date=document.effective_date,
            review_date=document.review_date,
            storage_path=document.storage_path,
            file_type=document.file_type,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )

        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return _to_document(row)

    async def get_document(self, document_id: uuid.UUID) -> PolicyDocument | None:
        """Get document by ID."""
        async with self._session_factory() as session:
            row = await session.get(PolicyDocumentRow, document_id)
            return _to_document(row) if row else None

    async def list_documents(self, status: DocumentStatus | None = None) -> list[PolicyDocument]:
        """List documents newest first."""
        stmt = select(PolicyDocumentRow)
        if status is not None:
            stmt = stmt.where(PolicyDocumentRow.status == status.value)
        stmt = stmt.order_by(PolicyDocumentRow.created_at.desc())

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_document(row) for row in result.scalars().all()]

    async def update_document_status(
        self, document_id: uuid.UUID, status: DocumentStatus
    ) -> PolicyDocument | None:
        """Transition document status."""
        async with self._session_factory() as session:
            row = await session.get(PolicyDocumentRow, document_id)
            if row is None:
                return None

            row.status = status.value
            row.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(row)
            return _to_document(row)

    async def add_chunks(
        self, document_id: uuid.UUID, drafts: Sequence[ChunkDraft]
    ) -> list[PolicyChunk]:
        """Insert the full chunk set for a document in one transaction."""
        async with self._session_factory() as session:
            existing = await session.scalar(
                select(func.count())
                .select_from(PolicyChunkRow)
                .where(PolicyChunkRow.document_id == document_id)
            )
            if existing:
                raise ChunksAlreadyExistError(f"document {document_id} already has chunks")

            rows = [
                PolicyChunkRow(
                    chunk_id=uuid.uuid4(),
                    document_id=document_id,
                    chunk_index=draft.chunk_index,
                    chunk_text=draft.chunk_text,
                    metadata_=draft.metadata,
                )
                for draft in drafts
            ]
            session.add_all(rows)

            try:
                await session.commit()
            except IntegrityError as e:
                # Concurrent ingest won the unique (document_id, chunk_index) race
                await session.rollback()
                raise ChunksAlreadyExistError(
                    f"document {document_id} already has chunks"
                ) from e

            return [_to_chunk(row, False) for row in rows]

    async def list_chunks(self, document_id: uuid.UUID) -> list[PolicyChunk]:
        """List a document's chunks in index order."""
        stmt = (
            select(PolicyChunkRow, HAS_EMBEDDING)
            .options(WITHOUT_VECTOR)
            .where(PolicyChunkRow.document_id == document_id)
            .order_by(PolicyChunkRow.chunk_index)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_chunk(row, has_embedding) for row, has_embedding in result.all()]

    async def list_unembedded_chunks(self, document_id: uuid.UUID) -> list[PolicyChunk]:
        """List chunks without an embedding in index order."""
        stmt = (
            select(PolicyChunkRow, HAS_EMBEDDING)
            .options(WITHOUT_VECTOR)
            .where(
                PolicyChunkRow.document_id == document_id,
                PolicyChunkRow.embedding.is_(None),
            )
            .order_by(PolicyChunkRow.chunk_index)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_chunk(row, has_embedding) for row, has_embedding in result.all()]

    async def set_chunk_embedding(self, chunk_id: uuid.UUID, embedding: Sequence[float]) -> bool:
        """Store an embedding on a chunk that has none. Single-row write."""
        stmt = (
            update(PolicyChunkRow)
            .where(PolicyChunkRow.chunk_id == chunk_id, PolicyChunkRow.embedding.is_(None))
            .values(embedding=list(embedding))
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1

    async def embedding_counts(self, document_id: uuid.UUID) -> tuple[int, int]:
        """Count (embedded, total) chunks for a document."""
        stmt = select(
            func.count(PolicyChunkRow.embedding),
            func.count(PolicyChunkRow.chunk_id),
        ).where(PolicyChunkRow.document_id == document_id)

        async with self._session_factory() as session:
            embedded, total = (await session.execute(stmt)).one()
            return int(embedded), int(total)

    async def get_chunks_by_ids(self, chunk_ids: Sequence[uuid.UUID]) -> list[ChunkMatch]:
        """Fetch chunks with document fields in the requested order."""
        if not chunk_ids:
            return []

        stmt = (
            select(PolicyChunkRow, PolicyDocumentRow.title, PolicyDocumentRow.status)
            .join(PolicyDocumentRow, PolicyChunkRow.document_id == PolicyDocumentRow.document_id)
            .options(WITHOUT_VECTOR)
            .where(PolicyChunkRow.chunk_id.in_(list(chunk_ids)))
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            by_id = {
                chunk.chunk_id: ChunkMatch(**_match_fields(chunk, title, status))
                for chunk, title, status in result.all()
            }

        return [by_id[chunk_id] for chunk_id in chunk_ids if chunk_id in by_id]

    async def match_chunks(
        self, query_embedding: Sequence[float], *, threshold: float, limit: int
    ) -> list[VectorHit]:
        """Index-backed cosine search (pgvector HNSW, vector_cosine_ops)."""
        distance = PolicyChunkRow.embedding.cosine_distance(list(query_embedding))
        stmt = (
            select(
                PolicyChunkRow,
                PolicyDocumentRow.title,
                PolicyDocumentRow.status,
                (1 - distance).label("similarity"),
            )
            .join(PolicyDocumentRow, PolicyChunkRow.document_id == PolicyDocumentRow.document_id)
            .options(WITHOUT_VECTOR)
            .where(PolicyChunkRow.embedding.is_not(None))
            .where(distance <= 1 - threshold)
            # Plain ORDER BY distance LIMIT n keeps the HNSW index usable
            .order_by(distance)
            .limit(limit)
        )

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [
                VectorHit(**_match_fields(chunk, title, status), similarity=float(similarity))
                for chunk, title, status, similarity in result.all()
            ]

    async def search_text(self, query_text: str, *, limit: int) -> list[LexicalHit]:
        """Postgres full-text search ranked by ts_rank.

        Indexed text and query use the same text search configuration, and
        the inlined constant lets the planner use the GIN expression index.
        """
        config = literal_column(f"'{self._text_search_config}'::regconfig")
        document = func.to_tsvector(config, PolicyChunkRow.chunk_text)
        query = func.plainto_tsquery(config, query_text)
        rank = func.ts_rank(document, query)

        stmt = (
            select(
                PolicyChunkRow,
                PolicyDocumentRow.title,
                PolicyDocumentRow.status,
                rank.label("rank"),
            )
            .join(PolicyDocumentRow, PolicyChunkRow.document_id == PolicyDocumentRow.document_id)
            .options(WITHOUT_VECTOR)
            .where(document.bool_op("@@")(query))
            .order_by(rank.desc(), PolicyChunkRow.document_id, PolicyChunkRow.chunk_index)
            .limit(limit)
        )

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [
                LexicalHit(**_match_fields(chunk, title, status), rank=float(rank_value))
                for chunk, title, status, rank_value in result.all()
            ]
