"""Embedding indexer - embeds a document's pending chunks in batches."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from uuid import UUID

from backend.app.db.repositories import PolicyRepository
from backend.app.docs.embedder import EmbeddingProvider, truncate_for_embedding, validate_embedding
from backend.app.docs.errors import CancelToken, DocumentNotFoundError
from backend.app.models.policy import EmbeddingStatus, EmbedSummary, PolicyChunk
from backend.app.utils.metrics import RetrievalMetrics

logger = logging.getLogger(__name__)


class EmbeddingIndexer:
    """Embeds chunks whose vector is still null, one document at a time.

    Chunks go to the provider in batches of `batch_size` concurrent calls with
    a pause between batches. A failing chunk is recorded in the summary and
    never aborts the rest of the run. Each vector is written as its own
    single-row update, so work finished before a cancellation stays committed
    and a re-run only picks up what is left.

    A `CancelToken` is checked before each batch, so provider calls already in
    flight finish first. Cancelling the task running `index_document` stops
    them at once: `asyncio.CancelledError` is not caught per chunk and
    propagates after the in-flight calls are cancelled.
    """

    def __init__(
        self,
        repository: PolicyRepository,
        provider: EmbeddingProvider,
        *,
        batch_size: int = 20,
        batch_delay_ms: int = 200,
        max_input_chars: int = 25000,
        request_timeout_seconds: float | None = 30.0,
        metrics: RetrievalMetrics | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self._repository = repository
        self._provider = provider
        self._batch_size = batch_size
        self._batch_delay_ms = batch_delay_ms
        self._max_input_chars = max_input_chars
        self._request_timeout_seconds = request_timeout_seconds
        self._metrics = metrics or RetrievalMetrics()
        self._sleep = sleep_fn or asyncio.sleep

    async def index_document(
        self, document_id: UUID, *, cancel_token: CancelToken | None = None
    ) -> EmbedSummary:
        """Embed every chunk of the document that has no vector yet.

        Args:
            document_id: Document to process
            cancel_token: Checked before each batch

        Returns:
            EmbedSummary with successful/failed counts and "chunk N: msg" errors

        Raises:
            DocumentNotFoundError: If the document does not exist
            OperationCancelledError: If cancelled between batches
        """
        if await self._repository.get_document(document_id) is None:
            raise DocumentNotFoundError(f"document {document_id} not found")

        pending = await self._repository.list_unembedded_chunks(document_id)
        summary = EmbedSummary()

        if not pending:
            logger.info(
                "No chunks require embedding",
                extra={"structured": {"document_id": str(document_id)}},
            )
            return summary

        batches = [
            pending[i : i + self._batch_size] for i in range(0, len(pending), self._batch_size)
        ]

        for batch_number, batch in enumerate(batches):
            if cancel_token:
                cancel_token.throw_if_cancelled()

            if batch_number > 0 and self._batch_delay_ms > 0:
                await self._sleep(self._batch_delay_ms / 1000)

            results = await asyncio.gather(*(self._embed_chunk(chunk) for chunk in batch))

            for chunk, (vector, error) in zip(batch, results):
                if vector is not None:
                    error = await self._persist(chunk, vector)

                if error is None:
                    summary.successful += 1
                    self._metrics.inc_chunk("success")
                else:
                    summary.failed += 1
                    summary.errors.append(f"chunk {chunk.chunk_index}: {error}")
                    self._metrics.inc_chunk("failure")

        self._metrics.inc_ingestion(summary.outcome.value)
        logger.info(
            f"Embedding run finished: {summary.outcome.value}",
            extra={
                "structured": {
                    "document_id": str(document_id),
                    "successful": summary.successful,
                    "failed": summary.failed,
                    "batches": len(batches),
                }
            },
        )
        return summary

    async def _embed_chunk(self, chunk: PolicyChunk) -> tuple[list[float] | None, str | None]:
        """Request one embedding. Returns (vector, None) or (None, error message)."""
        text = truncate_for_embedding(chunk.chunk_text, self._max_input_chars)
        start = time.perf_counter()

        try:
            vector = await asyncio.wait_for(
                self._provider.embed(text), timeout=self._request_timeout_seconds
            )
            vector = validate_embedding(vector, self._provider.dimensions)
        except asyncio.TimeoutError:
            return None, f"embedding timed out after {self._request_timeout_seconds}s"
        except Exception as e:
            logger.warning(
                f"Embedding failed for chunk {chunk.chunk_index}: {e}",
                extra={"structured": {"chunk_id": str(chunk.chunk_id)}},
            )
            return None, str(e) or type(e).__name__
        finally:
            self._metrics.record_latency("embed_chunk", (time.perf_counter() - start) * 1000)

        return vector, None

    async def _persist(self, chunk: PolicyChunk, vector: list[float]) -> str | None:
        try:
            written = await self._repository.set_chunk_embedding(chunk.chunk_id, vector)
        except Exception as e:
            logger.error(f"Failed to store embedding for chunk {chunk.chunk_index}: {e}")
            return f"failed to store embedding: {e}"

        if not written:
            # Another run embedded it first; the chunk is populated either way
            logger.info(f"Chunk {chunk.chunk_index} already embedded")
        return None


async def get_embedding_status(
    repository: PolicyRepository, document_id: UUID
) -> EmbeddingStatus:
    """Compute embedding progress from the current chunk set.

    Raises:
        DocumentNotFoundError: If the document does not exist
    """
    if await repository.get_document(document_id) is None:
        raise DocumentNotFoundError(f"document {document_id} not found")

    embedded, total = await repository.embedding_counts(document_id)
    return EmbeddingStatus.from_counts(embedded, total)
