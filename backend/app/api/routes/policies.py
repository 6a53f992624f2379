"""Policy endpoints - documents, ingestion, hybrid search, Q&A."""

import logging
from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field

from backend.app.api.deps import (
    get_answer_client,
    get_ingestion_service,
    get_policy_store,
    get_retriever,
)
from backend.app.config import get_settings
from backend.app.db.repositories import PolicyStore
from backend.app.docs.errors import (
    AnswerSynthesisError,
    DocumentNotFoundError,
    EmbeddingProviderError,
    ExtractionError,
    PolicyEngineError,
    RetrievalError,
    ValidationFailure,
)
from backend.app.docs.indexer import get_embedding_status
from backend.app.docs.ingest import IngestionService, register_document
from backend.app.docs.retriever import HybridRetriever
from backend.app.llm.client import LLMClient, answer_question
from backend.app.models.policy import (
    ChunkMatch,
    DocumentStatus,
    EmbeddingStatus,
    IngestOutcome,
    PolicyAnswer,
    PolicyChunk,
    PolicyDocument,
    SearchResult,
)
from backend.app.utils.logging import audit_logger

router = APIRouter(prefix="/policies", tags=["policies"])
logger = logging.getLogger(__name__)

Store = Annotated[PolicyStore, Depends(get_policy_store)]

_OUTCOME_STATUS = {
    IngestOutcome.success: status.HTTP_200_OK,
    IngestOutcome.partial: status.HTTP_207_MULTI_STATUS,
    IngestOutcome.failure: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _http_error(e: PolicyEngineError) -> HTTPException:
    """Map engine errors to HTTP responses carrying the error message."""
    if isinstance(e, DocumentNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ValidationFailure):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(
        e, (RetrievalError, EmbeddingProviderError, ExtractionError, AnswerSynthesisError)
    ):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="internal error")


class CreatePolicyRequest(BaseModel):
    """Request body for POST /policies."""

    title: str = Field(..., min_length=1, max_length=200, description="Document title")
    description: str | None = Field(None, max_length=2000)
    version: str | None = Field(None, max_length=50)
    effective_date: date | None = None
    review_date: date | None = None
    storage_path: str | None = Field(None, description="File path under the document root")
    file_type: str | None = Field(None, pattern="^(txt|md|pdf|docx|doc)$")


class PolicyListResponse(BaseModel):
    """Response for GET /policies."""

    documents: list[PolicyDocument]


class StatusUpdateRequest(BaseModel):
    """Request body for PATCH /policies/{id}/status."""

    status: DocumentStatus


class IngestRequest(BaseModel):
    """Request body for POST /policies/{id}/ingest."""

    text: str | None = Field(None, description="Extracted text; omit to read the stored file")


class IngestResponse(BaseModel):
    """Response for POST /policies/{id}/ingest."""

    document_id: UUID
    outcome: IngestOutcome
    successful: int
    failed: int
    errors: list[str]


class ChunkListResponse(BaseModel):
    """Response for GET /policies/{id}/chunks."""

    chunks: list[PolicyChunk]


class SearchRequest(BaseModel):
    """Request body for POST /policies/search."""

    query: str = Field(..., max_length=2000)


class SearchResponse(BaseModel):
    """Response for POST /policies/search."""

    query: str
    results: list[SearchResult]


class ChunkLookupRequest(BaseModel):
    """Request body for POST /policies/chunks/lookup."""

    chunk_ids: list[UUID] = Field(..., min_length=1, max_length=100)


class ChunkLookupResponse(BaseModel):
    """Response for POST /policies/chunks/lookup."""

    chunks: list[ChunkMatch]


class AskRequest(BaseModel):
    """Request body for POST /policies/ask."""

    question: str = Field(..., max_length=2000)


@router.post("", response_model=PolicyDocument, status_code=status.HTTP_201_CREATED)
async def create_policy(request: CreatePolicyRequest, store: Store) -> PolicyDocument:
    """Register a policy document in draft status."""
    document = await register_document(store, **request.model_dump())
    audit_logger.log_event(
        "create", "policy_document", str(document.document_id), details={"title": document.title}
    )
    return document


@router.get("", response_model=PolicyListResponse)
async def list_policies(
    store: Store,
    status_filter: Annotated[DocumentStatus | None, Query(alias="status")] = None,
) -> PolicyListResponse:
    """List documents newest first, optionally filtered by status."""
    return PolicyListResponse(documents=await store.list_documents(status_filter))


@router.post("/search", response_model=SearchResponse)
async def search_policies(
    request: SearchRequest,
    retriever: Annotated[HybridRetriever, Depends(get_retriever)],
) -> SearchResponse:
    """Hybrid (vector + full-text) search over policy chunks."""
    try:
        results = await retriever.search(request.query)
    except PolicyEngineError as e:
        audit_logger.log_event("search", "policy_chunk", success=False, error_reason=str(e))
        raise _http_error(e) from e

    audit_logger.log_event("search", "policy_chunk", details={"results": len(results)})
    return SearchResponse(query=request.query, results=results)


@router.post("/chunks/lookup", response_model=ChunkLookupResponse)
async def lookup_chunks(request: ChunkLookupRequest, store: Store) -> ChunkLookupResponse:
    """Fetch chunks by ID, e.g. to resolve Q&A citations."""
    chunks = await store.get_chunks_by_ids(request.chunk_ids)
    return ChunkLookupResponse(chunks=chunks)


@router.post("/ask", response_model=PolicyAnswer)
async def ask_policy_question(
    request: AskRequest,
    retriever: Annotated[HybridRetriever, Depends(get_retriever)],
    client: Annotated[LLMClient, Depends(get_answer_client)],
) -> PolicyAnswer:
    """Answer a question from the top-ranked policy chunks."""
    try:
        answer = await answer_question(
            request.question,
            retriever=retriever,
            client=client,
            context_chunks=get_settings().qa_context_chunks,
        )
    except PolicyEngineError as e:
        audit_logger.log_event("ask", "policy_chunk", success=False, error_reason=str(e))
        raise _http_error(e) from e

    audit_logger.log_event(
        "ask",
        "policy_chunk",
        details={"sources": len(answer.sources), "synthesis_source": answer.synthesis_source},
    )
    return answer


@router.get("/{document_id}", response_model=PolicyDocument)
async def get_policy(document_id: UUID, store: Store) -> PolicyDocument:
    """Get one document."""
    document = await store.get_document(document_id)
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return document


@router.patch("/{document_id}/status", response_model=PolicyDocument)
async def update_policy_status(
    document_id: UUID, request: StatusUpdateRequest, store: Store
) -> PolicyDocument:
    """Move a document through draft/review/published/archived. Nothing is deleted."""
    document = await store.update_document_status(document_id, request.status)
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")

    audit_logger.log_event(
        "update_status",
        "policy_document",
        str(document_id),
        details={"status": request.status.value},
    )
    return document


@router.post("/{document_id}/ingest", response_model=IngestResponse)
async def ingest_policy(
    document_id: UUID,
    request: IngestRequest,
    response: Response,
    service: Annotated[IngestionService, Depends(get_ingestion_service)],
) -> IngestResponse:
    """Chunk (first time only) and embed a document.

    Returns 200 when every pending chunk was embedded, 207 when some failed
    and 500 when all failed.
    """
    try:
        summary = await service.ingest(document_id, text=request.text)
    except PolicyEngineError as e:
        audit_logger.log_event(
            "ingest", "policy_document", str(document_id), success=False, error_reason=str(e)
        )
        raise _http_error(e) from e

    outcome = summary.outcome
    response.status_code = _OUTCOME_STATUS[outcome]
    audit_logger.log_event(
        "ingest",
        "policy_document",
        str(document_id),
        success=outcome != IngestOutcome.failure,
        details={"successful": summary.successful, "failed": summary.failed},
    )

    return IngestResponse(
        document_id=document_id,
        outcome=outcome,
        successful=summary.successful,
        failed=summary.failed,
        errors=summary.errors,
    )


@router.get("/{document_id}/embedding-status", response_model=EmbeddingStatus)
async def policy_embedding_status(document_id: UUID, store: Store) -> EmbeddingStatus:
    """Embedding progress, recomputed from the chunk set on every call."""
    try:
        return await get_embedding_status(store, document_id)
    except PolicyEngineError as e:
        raise _http_error(e) from e


@router.get("/{document_id}/chunks", response_model=ChunkListResponse)
async def list_policy_chunks(document_id: UUID, store: Store) -> ChunkListResponse:
    """List a document's chunks in index order."""
    if await store.get_document(document_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return ChunkListResponse(chunks=await store.list_chunks(document_id))
