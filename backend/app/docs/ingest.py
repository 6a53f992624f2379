"""Document ingestion - register documents, chunk once, embed."""

import logging
from datetime import date, datetime, timezone
from uuid import UUID, uuid4

from backend.app.db.repositories import PolicyRepository
from backend.app.docs.chunker import build_chunk_drafts
from backend.app.docs.errors import (
    CancelToken,
    ChunksAlreadyExistError,
    DocumentNotFoundError,
    ValidationFailure,
)
from backend.app.docs.extract import TextExtractor
from backend.app.docs.indexer import EmbeddingIndexer
from backend.app.models.policy import DocumentStatus, EmbedSummary, PolicyDocument

logger = logging.getLogger(__name__)


async def register_document(
    repository: PolicyRepository,
    *,
    title: str,
    description: str | None = None,
    version: str | None = None,
    effective_date: date | None = None,
    review_date: date | None = None,
    storage_path: str | None = None,
    file_type: str | None = None,
) -> PolicyDocument:
    """Create a document record in draft status.

    Returns domain model (PolicyDocument), not ORM instance.
    """
    now = datetime.now(timezone.utc)
    document = PolicyDocument(
        document_id=uuid4(),
        title=title,
        status=DocumentStatus.draft,
        description=description,
        version=version,
        effective_date=effective_date,
        review_date=review_date,
        storage_path=storage_path,
        file_type=file_type,
        created_at=now,
        updated_at=now,
    )
    return await repository.create_document(document)


class IngestionService:
    """Chunks a document the first time it is ingested, then embeds what is pending.

    Ingestion is idempotent per document: existing chunks are never re-split,
    so chunk IDs referenced elsewhere stay valid, and the indexer only
    touches chunks without a vector.
    """

    def __init__(
        self,
        repository: PolicyRepository,
        indexer: EmbeddingIndexer,
        extractor: TextExtractor,
        *,
        chunk_max_chars: int = 1000,
    ) -> None:
        self._repository = repository
        self._indexer = indexer
        self._extractor = extractor
        self._chunk_max_chars = chunk_max_chars

    async def ingest(
        self,
        document_id: UUID,
        *,
        text: str | None = None,
        cancel_token: CancelToken | None = None,
    ) -> EmbedSummary:
        """Chunk (if not already done) and embed a document.

        Args:
            document_id: Document to ingest
            text: Extracted text; when omitted the extractor reads the
                document's storage path
            cancel_token: Passed to the indexer

        Returns:
            EmbedSummary from the indexer

        Raises:
            DocumentNotFoundError: If the document does not exist
            ValidationFailure: If there is no text to chunk
            ExtractionError: If the stored file cannot be read
        """
        document = await self._repository.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(f"document {document_id} not found")

        existing = await self._repository.list_chunks(document_id)
        if existing:
            logger.info(
                "Document already chunked, skipping chunking",
                extra={"structured": {"document_id": str(document_id), "chunks": len(existing)}},
            )
        else:
            await self._chunk(document, text)

        return await self._indexer.index_document(document_id, cancel_token=cancel_token)

    async def _chunk(self, document: PolicyDocument, text: str | None) -> None:
        if text is None:
            if not document.storage_path:
                raise ValidationFailure(
                    f"document {document.document_id} has no text and no stored file"
                )
            text = await self._extractor.extract_text(document.storage_path)

        drafts = build_chunk_drafts(
            document.document_id,
            text,
            title=document.title,
            document_status=document.status.value,
            max_chars=self._chunk_max_chars,
        )
        if not drafts:
            raise ValidationFailure(f"document {document.document_id} has no extractable text")

        try:
            await self._repository.add_chunks(document.document_id, drafts)
        except ChunksAlreadyExistError:
            # A concurrent ingest chunked it first; embed what it stored
            logger.info(f"Chunks for {document.document_id} created concurrently")
            return

        logger.info(
            "Document chunked",
            extra={"structured": {"document_id": str(document.document_id), "chunks": len(drafts)}},
        )
