"""LLM client for policy question answering with OpenAI integration.

Security: Reads API key from environment only, never hardcoded.
Provides deterministic stub when no key present for testing.
"""

import logging
from typing import Protocol

from openai import APIError, AsyncOpenAI

from backend.app.config import Settings, get_settings
from backend.app.docs.errors import AnswerSynthesisError
from backend.app.docs.retriever import HybridRetriever
from backend.app.models.policy import PolicyAnswer, SearchResult

logger = logging.getLogger(__name__)

NO_CONTEXT_ANSWER = "I couldn't find any relevant policy information to answer that question."

MAX_ANSWER_CHARS = 10000


class LLMClient(Protocol):
    """Protocol for LLM client implementations."""

    async def synthesize_answer(self, *, question: str, chunks: list[SearchResult]) -> PolicyAnswer:
        """Answer a question from ranked policy chunks.

        Args:
            question: User's question
            chunks: Ranked context chunks, best first

        Returns:
            PolicyAnswer citing the chunks used
        """
        ...


class DeterministicStubClient:
    """Deterministic stub client for testing (no API key required)."""

    async def synthesize_answer(self, *, question: str, chunks: list[SearchResult]) -> PolicyAnswer:
        """Generate deterministic stub answer."""
        titles: list[str] = []
        for chunk in chunks:
            title = chunk.document_title or "Untitled"
            if title not in titles:
                titles.append(title)

        answer = (
            f"Found {len(chunks)} relevant policy excerpt(s) for: {question}\n\n"
            f"Sources: {', '.join(titles)}\n\n"
            f"*This is a stub response generated without LLM synthesis.*"
        )
        return PolicyAnswer(answer=answer, sources=list(chunks), synthesis_source="stub")


class OpenAIClient:
    """OpenAI-backed LLM client for real synthesis."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        *,
        base_url: str | None = None,
        timeout_seconds: float = 30.0,
        max_tokens: int = 500,
        temperature: float = 0.2,
    ):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from environment)
            model: Model name to use (default: gpt-4o-mini for cost efficiency)
            base_url: Optional API base URL
            timeout_seconds: Per-request timeout
            max_tokens: Completion token cap
            temperature: Sampling temperature (low for factual answers)
        """
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout_seconds)
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def synthesize_answer(self, *, question: str, chunks: list[SearchResult]) -> PolicyAnswer:
        """Generate answer using OpenAI API."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self._build_system_prompt()},
                    {"role": "user", "content": self._build_user_prompt(question, chunks)},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except APIError as e:
            logger.error(f"OpenAI API call failed: {e}")
            raise AnswerSynthesisError(f"completion provider failed: {e}") from e

        answer = (response.choices[0].message.content or "").strip() if response.choices else ""

        if not answer:
            raise AnswerSynthesisError("completion provider returned an empty answer")

        if len(answer) > MAX_ANSWER_CHARS:
            logger.warning(
                f"OpenAI response unexpectedly large ({len(answer)} chars), "
                f"truncating to {MAX_ANSWER_CHARS}"
            )
            answer = answer[:MAX_ANSWER_CHARS] + "\n\n[Truncated]"

        return PolicyAnswer(answer=answer, sources=list(chunks), synthesis_source="openai")

    def _build_system_prompt(self) -> str:
        """Build system prompt for synthesis."""
        return """You answer questions about company policies using ONLY the provided
context chunks.

- Answer accurately from the information in the policy chunks.
- Do NOT use prior knowledge or information outside the given context.
- If the answer is not in the context, say the information is not available in
  the provided documents.
- Be concise and answer the question directly.
- Reference the document title(s) the answer comes from where possible.
- Do not mention chunk numbers or similarity scores.
- Do not open with phrases like "Based on the provided context"."""

    def _build_context(self, chunks: list[SearchResult]) -> str:
        """Format ranked chunks as numbered context blocks."""
        blocks = []
        for i, chunk in enumerate(chunks, start=1):
            status = chunk.document_status.value if chunk.document_status else "N/A"
            similarity = f"{chunk.similarity:.3f}" if chunk.similarity is not None else "N/A"
            blocks.append(
                f"Chunk {i} (Document: {chunk.document_title or 'N/A'}, Status: {status}, "
                f"Similarity: {similarity}):\n---\n{chunk.chunk_text}\n---"
            )
        return "\n\n".join(blocks)

    def _build_user_prompt(self, question: str, chunks: list[SearchResult]) -> str:
        return (
            f"Context Chunks:\n------\n{self._build_context(chunks)}\n------\n\n"
            f"User Query: {question}\n\nAnswer:"
        )


async def get_llm_client(settings: Settings | None = None) -> LLMClient:
    """Factory function to get appropriate LLM client based on config.

    Returns:
        OpenAIClient if API key is configured, DeterministicStubClient otherwise
    """
    settings = settings or get_settings()
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI client for synthesis")
        return OpenAIClient(
            api_key=api_key.get_secret_value(),
            model=settings.chat_model,
            base_url=settings.openai_base_url,
            timeout_seconds=settings.provider_timeout_seconds,
            max_tokens=settings.qa_max_tokens,
            temperature=settings.qa_temperature,
        )
    else:
        logger.warning("No OpenAI API key configured, using deterministic stub client")
        return DeterministicStubClient()


async def answer_question(
    question: str,
    *,
    retriever: HybridRetriever,
    client: LLMClient,
    context_chunks: int = 5,
) -> PolicyAnswer:
    """Main entry point for policy Q&A.

    Runs hybrid retrieval and hands the top `context_chunks` results to the
    completion client. When nothing is retrieved the client is not called.

    Raises:
        ValidationFailure: If the question is empty
        RetrievalError: If retrieval fails
        AnswerSynthesisError: If the completion provider fails
    """
    results = await retriever.search(question)

    if not results:
        return PolicyAnswer(answer=NO_CONTEXT_ANSWER, sources=[], synthesis_source="none")

    return await client.synthesize_answer(question=question, chunks=results[:context_chunks])
