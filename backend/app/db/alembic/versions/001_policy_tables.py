"""Create policy document and chunk tables

Revision ID: 001
Revises:
Create Date: 2026-10-19

1. pgvector extension
2. policy_document table (status-filtered listing index)
3. policy_chunk table
   - unique (document_id, chunk_index) so re-ingest cannot duplicate chunks
   - nullable embedding vector(embedding_dimensions), populated once by the indexer
   - HNSW index with vector_cosine_ops for the similarity query
   - GIN index on to_tsvector(text_search_config, chunk_text) for full-text search;
     the expression must match the one the lexical query builds

embedding_dimensions and text_search_config are read from settings at upgrade
time; the schema must match the ORM column and the query the application issues.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from pgvector.sqlalchemy import Vector

from backend.app.config import get_settings

# revision identifiers
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create extension, tables and search indexes."""
    settings = get_settings()

    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.create_table(
        "policy_document",
        sa.Column("document_id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="draft"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("version", sa.Text(), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=True),
        sa.Column("review_date", sa.Date(), nullable=True),
        sa.Column("storage_path", sa.Text(), nullable=True),
        sa.Column("file_type", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "status IN ('draft', 'review', 'published', 'archived')",
            name="ck_policy_document_status",
        ),
    )
    op.create_index("idx_policy_document_status", "policy_document", ["status", "created_at"])

    op.create_table(
        "policy_chunk",
        sa.Column("chunk_id", sa.Uuid(), primary_key=True),
        sa.Column("document_id", sa.Uuid(), nullable=False),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("chunk_text", sa.Text(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("embedding", Vector(settings.embedding_dimensions), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["document_id"], ["policy_document.document_id"]),
        sa.UniqueConstraint(
            "document_id", "chunk_index", name="uq_policy_chunk_document_index"
        ),
        sa.CheckConstraint("chunk_index >= 0", name="ck_policy_chunk_index"),
        sa.CheckConstraint("length(btrim(chunk_text)) > 0", name="ck_policy_chunk_text"),
    )
    op.create_index("idx_policy_chunk_document", "policy_chunk", ["document_id"])

    op.execute(
        "CREATE INDEX idx_policy_chunk_embedding ON policy_chunk "
        "USING hnsw (embedding vector_cosine_ops)"
    )
    op.execute(
        "CREATE INDEX idx_policy_chunk_fts ON policy_chunk "
        f"USING gin (to_tsvector('{settings.text_search_config}'::regconfig, chunk_text))"
    )

def downgrade() -> None:
    """Drop tables and indexes."""
    op.drop_index("idx_policy_chunk_fts", table_name="policy_chunk")
    op.drop_index("idx_policy_chunk_embedding", table_name="policy_chunk")
    op.drop_index("idx_policy_chunk_document", table_name="policy_chunk")
    op.drop_table("policy_chunk")

    op.drop_index("idx_policy_document_status", table_name="policy_document")
    op.drop_table("policy_document")
