"""PostgreSQL-only tests for pgvector and full-text search.

Run with DATABASE_URL pointing at a Postgres server that has pgvector.
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.db.sql_repositories import SqlPolicyStore
from backend.app.docs.embedder import DeterministicHashEmbeddingProvider
from backend.app.docs.indexer import EmbeddingIndexer
from backend.app.docs.ingest import register_document
from backend.app.docs.lexical_search import LexicalSearchEngine
from backend.app.docs.retriever import HybridRetriever
from backend.app.docs.vector_search import VectorSearchEngine
from backend.app.models.policy import ChunkDraft

TEXTS = [
    "Employees accrue twenty vacation days per year.",
    "Vacation requests must be approved by a manager.",
    "Remote work requires a secure VPN connection.",
]


async def seed(store: SqlPolicyStore, provider: DeterministicHashEmbeddingProvider):
    document = await register_document(store, title="Employee Handbook")
    chunks = await store.add_chunks(
        document.document_id,
        [
            ChunkDraft(document_id=document.document_id, chunk_index=i, chunk_text=text)
            for i, text in enumerate(TEXTS)
        ],
    )
    await EmbeddingIndexer(store, provider, batch_delay_ms=0).index_document(document.document_id)
    return chunks


@pytest.mark.postgres
@pytest.mark.asyncio
async def test_pgvector_match_respects_threshold_and_order(
    postgres_session_factory: async_sessionmaker[AsyncSession],
) -> None:
    store = SqlPolicyStore(postgres_session_factory)
    provider = DeterministicHashEmbeddingProvider(dimensions=1536)
    chunks = await seed(store, provider)

    hits = await VectorSearchEngine(store, dimensions=1536, threshold=0.3).search(
        await provider.embed(TEXTS[2])
    )

    assert hits[0].chunk_id == chunks[2].chunk_id
    assert hits[0].similarity == pytest.approx(1.0, abs=1e-5)
    assert all(h.similarity >= 0.3 for h in hits)
    similarities = [h.similarity for h in hits]
    assert similarities == sorted(similarities, reverse=True)


@pytest.mark.postgres
@pytest.mark.asyncio
async def test_full_text_search_stems_query_like_index(
    postgres_session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Test that query terms are stemmed like the indexed text and all must match."""
    store = SqlPolicyStore(postgres_session_factory)
    chunks = await seed(store, DeterministicHashEmbeddingProvider(dimensions=1536))

    hits = await LexicalSearchEngine(store).search("Vacation request")

    assert [h.chunk_id for h in hits] == [chunks[1].chunk_id]
    assert all(h.rank > 0 for h in hits)
    assert await LexicalSearchEngine(store).search("quantum") == []


@pytest.mark.postgres
@pytest.mark.asyncio
async def test_hybrid_search_on_postgres(
    postgres_session_factory: async_sessionmaker[AsyncSession],
) -> None:
    store = SqlPolicyStore(postgres_session_factory)
    provider = DeterministicHashEmbeddingProvider(dimensions=1536)
    chunks = await seed(store, provider)
    retriever = HybridRetriever(
        provider,
        VectorSearchEngine(store, dimensions=1536),
        LexicalSearchEngine(store),
    )

    results = await retriever.search("vacation requests")

    assert results[0].chunk_id == chunks[1].chunk_id
    assert results[0].similarity is not None
    assert results[0].rank is not None
