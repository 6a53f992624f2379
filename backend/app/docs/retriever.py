"""Hybrid retriever - embed query, search both signals, fuse."""

import asyncio
import logging
import time
from collections.abc import Awaitable
from typing import TypeVar

from backend.app.docs.embedder import EmbeddingProvider, truncate_for_embedding
from backend.app.docs.errors import PolicyEngineError, RetrievalError, ValidationFailure
from backend.app.docs.fusion import DEFAULT_RRF_K, reciprocal_rank_fusion
from backend.app.docs.lexical_search import LexicalSearchEngine
from backend.app.docs.vector_search import VectorSearchEngine
from backend.app.models.policy import LexicalHit, SearchResult, VectorHit
from backend.app.utils.metrics import RetrievalMetrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HybridRetriever:
    """Retrieval facade over vector search, lexical search and RRF.

    Failure policy:
    - Query embedding failure always fails the search; there is no
      lexical-only fallback.
    - Vector or lexical search failure fails the search unless
      `allow_degraded` is set, in which case a single failing signal is
      dropped and the other is fused alone. Both failing always fails.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        vector_engine: VectorSearchEngine,
        lexical_engine: LexicalSearchEngine,
        *,
        rrf_k: int = DEFAULT_RRF_K,
        allow_degraded: bool = False,
        max_query_chars: int = 25000,
        request_timeout_seconds: float | None = 30.0,
        metrics: RetrievalMetrics | None = None,
    ) -> None:
        self._provider = provider
        self._vector_engine = vector_engine
        self._lexical_engine = lexical_engine
        self._rrf_k = rrf_k
        self._allow_degraded = allow_degraded
        self._max_query_chars = max_query_chars
        self._request_timeout_seconds = request_timeout_seconds
        self._metrics = metrics or RetrievalMetrics()

    async def search(self, query: str) -> list[SearchResult]:
        """Run hybrid retrieval for a query.

        Returns:
            Fused results, highest score first; empty when nothing matches

        Raises:
            ValidationFailure: If the query is empty
            RetrievalError: If a required stage fails
        """
        query = query.strip()
        if not query:
            raise ValidationFailure("query must not be empty")

        start = time.perf_counter()

        query_embedding = await self._timed(
            "embed_query",
            self._provider.embed(truncate_for_embedding(query, self._max_query_chars)),
        )

        vector_result, lexical_result = await asyncio.gather(
            self._timed("vector", self._vector_engine.search(query_embedding)),
            self._timed("lexical", self._lexical_engine.search(query)),
            return_exceptions=True,
        )
        vector_failed = isinstance(vector_result, BaseException)
        lexical_failed = isinstance(lexical_result, BaseException)
        vector_hits = self._resolve("vector", vector_result, other_failed=lexical_failed)
        lexical_hits = self._resolve("lexical", lexical_result, other_failed=vector_failed)

        fusion_start = time.perf_counter()
        results = reciprocal_rank_fusion(vector_hits, lexical_hits, k=self._rrf_k)
        self._metrics.record_latency("fusion", (time.perf_counter() - fusion_start) * 1000)

        self._metrics.record_latency("total", (time.perf_counter() - start) * 1000)
        self._metrics.observe_results(len(results))
        logger.info(
            "Hybrid search completed",
            extra={
                "structured": {
                    "vector_hits": len(vector_hits),
                    "lexical_hits": len(lexical_hits),
                    "results": len(results),
                }
            },
        )
        return results

    async def _timed(self, stage: str, awaitable: Awaitable[T]) -> T:
        """Await one stage under the provider timeout, mapping failures to RetrievalError."""
        start = time.perf_counter()
        try:
            return await asyncio.wait_for(awaitable, timeout=self._request_timeout_seconds)
        except asyncio.TimeoutError as e:
            self._metrics.inc_error(stage)
            raise RetrievalError(
                f"{stage} timed out after {self._request_timeout_seconds}s", stage
            ) from e
        except PolicyEngineError as e:
            self._metrics.inc_error(stage)
            raise RetrievalError(f"{stage} failed: {e}", stage) from e
        except Exception as e:
            self._metrics.inc_error(stage)
            logger.error(f"Retrieval stage {stage} raised {type(e).__name__}: {e}")
            raise RetrievalError(f"{stage} failed: {e}", stage) from e
        finally:
            self._metrics.record_latency(stage, (time.perf_counter() - start) * 1000)

    def _resolve(
        self,
        stage: str,
        result: list[VectorHit] | list[LexicalHit] | BaseException,
        *,
        other_failed: bool,
    ) -> list:
        if not isinstance(result, BaseException):
            return result

        if not isinstance(result, Exception):
            # CancelledError and friends are never swallowed
            raise result

        if self._allow_degraded and not other_failed and isinstance(result, RetrievalError):
            logger.warning(
                f"Degraded search: dropping {stage} results",
                extra={"structured": {"stage": stage, "error": str(result)}},
            )
            return []

        raise result
