"""Tests for LLM client and policy Q&A.

All tests are deterministic and do not make real network calls.
"""

import uuid
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from openai import APIConnectionError
from pydantic import SecretStr

from backend.app.config import Settings
from backend.app.docs.errors import AnswerSynthesisError
from backend.app.llm.client import (
    MAX_ANSWER_CHARS,
    NO_CONTEXT_ANSWER,
    DeterministicStubClient,
    OpenAIClient,
    answer_question,
    get_llm_client,
)
from backend.app.models.policy import DocumentStatus, SearchResult


@pytest.fixture
def sample_chunks() -> list[SearchResult]:
    """Create ranked chunks for testing."""
    return [
        SearchResult(
            chunk_id=uuid.uuid4(),
            document_id=uuid.uuid4(),
            chunk_index=0,
            chunk_text="Employees accrue 20 vacation days per year.",
            document_title="Leave Policy",
            document_status=DocumentStatus.published,
            similarity=0.8123,
            rank=0.4,
            score=0.0327,
        ),
        SearchResult(
            chunk_id=uuid.uuid4(),
            document_id=uuid.uuid4(),
            chunk_index=3,
            chunk_text="Unused days expire at year end.",
            document_title="Leave Policy",
            document_status=DocumentStatus.review,
            rank=0.2,
            score=0.0161,
        ),
    ]


def mock_completion(content: str | None) -> AsyncMock:
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return AsyncMock(return_value=response)


class StaticRetriever:
    def __init__(self, results: list[SearchResult]) -> None:
        self.results = results
        self.queries: list[str] = []

    async def search(self, query: str) -> list[SearchResult]:
        self.queries.append(query)
        return self.results


@pytest.mark.asyncio
async def test_deterministic_stub_client_generates_answer(
    sample_chunks: list[SearchResult],
) -> None:
    """Test that DeterministicStubClient generates deterministic answer."""
    client = DeterministicStubClient()

    answer = await client.synthesize_answer(question="How many days?", chunks=sample_chunks)

    assert "Found 2 relevant policy excerpt(s) for: How many days?" in answer.answer
    assert "Sources: Leave Policy" in answer.answer
    assert answer.sources == sample_chunks
    assert answer.synthesis_source == "stub"


@pytest.mark.asyncio
async def test_deterministic_stub_client_is_deterministic(
    sample_chunks: list[SearchResult],
) -> None:
    client = DeterministicStubClient()

    answer1 = await client.synthesize_answer(question="q", chunks=sample_chunks)
    answer2 = await client.synthesize_answer(question="q", chunks=sample_chunks)

    assert answer1 == answer2


def test_openai_client_builds_context_correctly(sample_chunks: list[SearchResult]) -> None:
    """Test that OpenAIClient numbers chunks and labels each with its document."""
    client = OpenAIClient(api_key="test_key")

    context = client._build_context(sample_chunks)

    assert context.startswith(
        "Chunk 1 (Document: Leave Policy, Status: published, Similarity: 0.812):\n---\n"
        "Employees accrue 20 vacation days per year.\n---"
    )
    assert "Chunk 2 (Document: Leave Policy, Status: review, Similarity: N/A)" in context


def test_openai_user_prompt_contains_question_and_context(
    sample_chunks: list[SearchResult],
) -> None:
    client = OpenAIClient(api_key="test_key")

    prompt = client._build_user_prompt("How many days?", sample_chunks)

    assert prompt.startswith("Context Chunks:\n------\nChunk 1")
    assert prompt.endswith("User Query: How many days?\n\nAnswer:")


@pytest.mark.asyncio
async def test_openai_client_calls_api_and_returns_answer(
    sample_chunks: list[SearchResult],
) -> None:
    """Test that OpenAIClient calls API and returns answer (mocked)."""
    client = OpenAIClient(api_key="test_key", max_tokens=123, temperature=0.1)
    client.client = MagicMock()
    client.client.chat.completions.create = mock_completion("  Twenty days per year.  ")

    answer = await client.synthesize_answer(question="How many days?", chunks=sample_chunks)

    client.client.chat.completions.create.assert_called_once()
    kwargs = client.client.chat.completions.create.call_args.kwargs
    assert kwargs["max_tokens"] == 123
    assert kwargs["temperature"] == 0.1
    assert kwargs["messages"][0]["role"] == "system"
    assert "How many days?" in kwargs["messages"][1]["content"]
    assert answer.answer == "Twenty days per year."
    assert answer.synthesis_source == "openai"


@pytest.mark.asyncio
async def test_openai_client_raises_on_api_error(sample_chunks: list[SearchResult]) -> None:
    """Test that provider failures surface as AnswerSynthesisError."""
    client = OpenAIClient(api_key="test_key")
    client.client = MagicMock()
    client.client.chat.completions.create = AsyncMock(
        side_effect=APIConnectionError(
            request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        )
    )

    with pytest.raises(AnswerSynthesisError):
        await client.synthesize_answer(question="q", chunks=sample_chunks)


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["", None, "   "])
async def test_openai_client_raises_on_empty_answer(
    sample_chunks: list[SearchResult], content: str | None
) -> None:
    client = OpenAIClient(api_key="test_key")
    client.client = MagicMock()
    client.client.chat.completions.create = mock_completion(content)

    with pytest.raises(AnswerSynthesisError):
        await client.synthesize_answer(question="q", chunks=sample_chunks)


@pytest.mark.asyncio
async def test_openai_client_truncates_huge_answer(sample_chunks: list[SearchResult]) -> None:
    client = OpenAIClient(api_key="test_key")
    client.client = MagicMock()
    client.client.chat.completions.create = mock_completion("x" * (MAX_ANSWER_CHARS + 50))

    answer = await client.synthesize_answer(question="q", chunks=sample_chunks)

    assert answer.answer.endswith("[Truncated]")
    assert answer.answer.startswith("x" * MAX_ANSWER_CHARS)


@pytest.mark.asyncio
async def test_get_llm_client_returns_stub_when_no_api_key() -> None:
    client = await get_llm_client(Settings(openai_api_key=None))

    assert isinstance(client, DeterministicStubClient)


@pytest.mark.asyncio
async def test_get_llm_client_returns_openai_when_api_key_present() -> None:
    client = await get_llm_client(
        Settings(openai_api_key=SecretStr("test_key"), chat_model="gpt-4o")
    )

    assert isinstance(client, OpenAIClient)
    assert client.model == "gpt-4o"


@pytest.mark.asyncio
async def test_answer_question_without_results_skips_client() -> None:
    """Test the fixed answer when retrieval finds nothing."""
    client = AsyncMock()

    answer = await answer_question(
        "What is the pet policy?", retriever=StaticRetriever([]), client=client
    )

    assert answer.answer == NO_CONTEXT_ANSWER
    assert answer.sources == []
    assert answer.synthesis_source == "none"
    client.synthesize_answer.assert_not_called()


@pytest.mark.asyncio
async def test_answer_question_passes_top_chunks(sample_chunks: list[SearchResult]) -> None:
    retriever = StaticRetriever(sample_chunks)

    answer = await answer_question(
        "How many days?",
        retriever=retriever,
        client=DeterministicStubClient(),
        context_chunks=1,
    )

    assert retriever.queries == ["How many days?"]
    assert answer.sources == sample_chunks[:1]
    assert "Found 1 relevant policy excerpt(s)" in answer.answer
