"""FastAPI dependency providers.

Every component receives its store and providers explicitly; tests swap
them through app.dependency_overrides.
"""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from backend.app.config import get_settings
from backend.app.db.engine import create_session_factory, get_async_engine
from backend.app.db.inmemory import InMemoryPolicyStore
from backend.app.db.repositories import PolicyStore
from backend.app.db.sql_repositories import SqlPolicyStore
from backend.app.docs.embedder import EmbeddingProvider, get_embedding_provider
from backend.app.docs.extract import FileSystemTextExtractor
from backend.app.docs.indexer import EmbeddingIndexer
from backend.app.docs.ingest import IngestionService
from backend.app.docs.lexical_search import LexicalSearchEngine
from backend.app.docs.retriever import HybridRetriever
from backend.app.docs.vector_search import VectorSearchEngine
from backend.app.llm.client import LLMClient, get_llm_client
from backend.app.utils.metrics import PrometheusRetrievalMetrics, RetrievalMetrics

logger = logging.getLogger(__name__)


@lru_cache
def get_policy_store() -> PolicyStore:
    """SQL store when DATABASE_URL is set, in-memory store otherwise."""
    settings = get_settings()
    if settings.database_url:
        return SqlPolicyStore(
            create_session_factory(get_async_engine()),
            text_search_config=settings.text_search_config,
        )

    logger.warning("No DATABASE_URL configured, using in-memory policy store")
    return InMemoryPolicyStore()


@lru_cache
def get_provider() -> EmbeddingProvider:
    """Process-wide embedding provider built from settings."""
    return get_embedding_provider(get_settings())


@lru_cache
def get_metrics() -> RetrievalMetrics:
    return PrometheusRetrievalMetrics()


def get_indexer(
    store: Annotated[PolicyStore, Depends(get_policy_store)],
    provider: Annotated[EmbeddingProvider, Depends(get_provider)],
    metrics: Annotated[RetrievalMetrics, Depends(get_metrics)],
) -> EmbeddingIndexer:
    settings = get_settings()
    return EmbeddingIndexer(
        store,
        provider,
        batch_size=settings.embedding_batch_size,
        batch_delay_ms=settings.embedding_batch_delay_ms,
        max_input_chars=settings.embedding_max_input_chars,
        request_timeout_seconds=settings.provider_timeout_seconds,
        metrics=metrics,
    )


def get_ingestion_service(
    store: Annotated[PolicyStore, Depends(get_policy_store)],
    indexer: Annotated[EmbeddingIndexer, Depends(get_indexer)],
) -> IngestionService:
    settings = get_settings()
    return IngestionService(
        store,
        indexer,
        FileSystemTextExtractor(settings.document_root),
        chunk_max_chars=settings.chunk_max_chars,
    )


def get_retriever(
    store: Annotated[PolicyStore, Depends(get_policy_store)],
    provider: Annotated[EmbeddingProvider, Depends(get_provider)],
    metrics: Annotated[RetrievalMetrics, Depends(get_metrics)],
) -> HybridRetriever:
    settings = get_settings()
    return HybridRetriever(
        provider,
        VectorSearchEngine(
            store,
            dimensions=settings.embedding_dimensions,
            threshold=settings.vector_match_threshold,
            match_count=settings.vector_match_count,
        ),
        LexicalSearchEngine(store, match_count=settings.lexical_match_count),
        rrf_k=settings.rrf_k,
        allow_degraded=settings.allow_degraded_search,
        max_query_chars=settings.embedding_max_input_chars,
        request_timeout_seconds=settings.provider_timeout_seconds,
        metrics=metrics,
    )


async def get_answer_client() -> LLMClient:
    return await get_llm_client(get_settings())
