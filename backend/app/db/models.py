"""SQLAlchemy ORM models for policy documents and chunks."""

import uuid
from datetime import date, datetime
from typing import Any

import numpy as np
from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from backend.app.config import settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class PolicyDocumentRow(Base):
    """Policy document table - archived instead of deleted."""

    __tablename__ = "policy_document"
    __table_args__ = (Index("idx_policy_document_status", "status", "created_at"),)

    document_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="draft")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[str | None] = mapped_column(Text, nullable=True)
    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    review_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    storage_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    chunks: Mapped[list["PolicyChunkRow"]] = relationship(
        "PolicyChunkRow", back_populates="document", order_by="PolicyChunkRow.chunk_index"
    )


class PolicyChunkRow(Base):
    """Policy chunk table - text is immutable, embedding goes null to populated once.

    The HNSW and full-text GIN indexes are Postgres-only and live in the
    alembic migration.
    """

    __tablename__ = "policy_chunk"
    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_policy_chunk_document_index"),
        Index("idx_policy_chunk_document", "document_id"),
    )

    chunk_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("policy_document.document_id"), nullable=False
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    chunk_text: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    embedding: Mapped[np.ndarray | None] = mapped_column(
        Vector(settings.embedding_dimensions), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    document: Mapped["PolicyDocumentRow"] = relationship(
        "PolicyDocumentRow", back_populates="chunks"
    )
