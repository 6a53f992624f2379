"""Integration tests for policy API routes."""

import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from backend.app.api.deps import get_answer_client, get_policy_store, get_provider
from backend.app.db.inmemory import InMemoryPolicyStore
from backend.app.docs.embedder import DeterministicHashEmbeddingProvider
from backend.app.docs.errors import EmbeddingErrorKind, EmbeddingProviderError
from backend.app.llm.client import NO_CONTEXT_ANSWER, DeterministicStubClient
from backend.app.main import app

HANDBOOK = (
    "Employees accrue twenty vacation days per year.\n\n"
    "Remote work requires manager approval and a secure VPN connection.\n\n"
    "Expense reports are due within thirty days of travel."
)


class SwitchableProvider(DeterministicHashEmbeddingProvider):
    """Hash embeddings that can be told to fail for marked texts or entirely."""

    def __init__(self) -> None:
        super().__init__(dimensions=1536)
        self.fail_marker: str | None = None
        self.down = False

    async def embed(self, text: str) -> list[float]:
        if self.down or (self.fail_marker and self.fail_marker in text):
            raise EmbeddingProviderError("rate limit exceeded", EmbeddingErrorKind.RATE_LIMITED)
        return await super().embed(text)


@pytest.fixture
def provider() -> SwitchableProvider:
    return SwitchableProvider()


@pytest.fixture
def client(provider: SwitchableProvider) -> Generator[TestClient, None, None]:
    """Test client wired to a fresh in-memory store and offline providers."""
    store = InMemoryPolicyStore()
    app.dependency_overrides[get_policy_store] = lambda: store
    app.dependency_overrides[get_provider] = lambda: provider
    app.dependency_overrides[get_answer_client] = DeterministicStubClient

    yield TestClient(app)

    app.dependency_overrides.clear()


def create_policy(client: TestClient, title: str = "Employee Handbook") -> str:
    response = client.post("/policies", json={"title": title, "version": "1.0"})
    assert response.status_code == 201
    return response.json()["document_id"]


def test_create_policy_returns_201_in_draft(client: TestClient) -> None:
    """Test that POST /policies registers a draft document."""
    response = client.post(
        "/policies",
        json={"title": "Travel Policy", "effective_date": "2025-01-01", "file_type": "md"},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Travel Policy"
    assert data["status"] == "draft"
    assert data["effective_date"] == "2025-01-01"
    assert "document_id" in data


def test_create_policy_rejects_invalid_body(client: TestClient) -> None:
    assert client.post("/policies", json={"title": ""}).status_code == 422
    assert client.post("/policies", json={"title": "x", "file_type": "exe"}).status_code == 422


def test_get_and_list_policies(client: TestClient) -> None:
    document_id = create_policy(client)

    assert client.get(f"/policies/{document_id}").json()["title"] == "Employee Handbook"
    listed = client.get("/policies", params={"status": "draft"}).json()["documents"]
    assert [d["document_id"] for d in listed] == [document_id]
    assert client.get("/policies", params={"status": "published"}).json()["documents"] == []


def test_unknown_policy_returns_404(client: TestClient) -> None:
    missing = uuid.uuid4()

    assert client.get(f"/policies/{missing}").status_code == 404
    assert client.get(f"/policies/{missing}/embedding-status").status_code == 404
    assert client.get(f"/policies/{missing}/chunks").status_code == 404
    assert client.post(f"/policies/{missing}/ingest", json={"text": "x"}).status_code == 404
    assert (
        client.patch(f"/policies/{missing}/status", json={"status": "archived"}).status_code
        == 404
    )


def test_status_update_archives_document(client: TestClient) -> None:
    document_id = create_policy(client)

    response = client.patch(f"/policies/{document_id}/status", json={"status": "archived"})

    assert response.status_code == 200
    assert response.json()["status"] == "archived"
    assert client.patch(
        f"/policies/{document_id}/status", json={"status": "deleted"}
    ).status_code == 422


def test_ingest_success_returns_200_and_status_complete(client: TestClient) -> None:
    document_id = create_policy(client)

    response = client.post(f"/policies/{document_id}/ingest", json={"text": HANDBOOK})

    assert response.status_code == 200
    data = response.json()
    assert data["outcome"] == "success"
    assert data["successful"] == 1
    assert data["errors"] == []

    status = client.get(f"/policies/{document_id}/embedding-status").json()
    assert status == {"embedded": 1, "total": 1, "pending": 0, "complete": True}


def test_ingest_partial_returns_207(client: TestClient, provider: SwitchableProvider) -> None:
    """Test that a run with some failed chunks reports 207 and per-chunk errors."""
    document_id = create_policy(client)
    provider.fail_marker = "VPN"
    long_handbook = HANDBOOK.replace("\n\n", "\n\n" + "Filler sentence. " * 60 + "\n\n")

    response = client.post(f"/policies/{document_id}/ingest", json={"text": long_handbook})

    assert response.status_code == 207
    data = response.json()
    assert data["outcome"] == "partial"
    assert data["failed"] == 1
    assert data["errors"][0].startswith("chunk ")
    assert "rate limit exceeded" in data["errors"][0]

    status = client.get(f"/policies/{document_id}/embedding-status").json()
    assert status["pending"] == 1
    assert status["complete"] is False


def test_ingest_total_failure_returns_500(
    client: TestClient, provider: SwitchableProvider
) -> None:
    document_id = create_policy(client)
    provider.down = True

    response = client.post(f"/policies/{document_id}/ingest", json={"text": HANDBOOK})

    assert response.status_code == 500
    assert response.json()["outcome"] == "failure"


def test_ingest_without_text_or_file_returns_400(client: TestClient) -> None:
    document_id = create_policy(client)

    response = client.post(f"/policies/{document_id}/ingest", json={})

    assert response.status_code == 400


def test_chunks_listing_and_lookup(client: TestClient) -> None:
    document_id = create_policy(client)
    client.post(f"/policies/{document_id}/ingest", json={"text": HANDBOOK})

    chunks = client.get(f"/policies/{document_id}/chunks").json()["chunks"]
    assert [c["chunk_index"] for c in chunks] == list(range(len(chunks)))
    assert all(c["has_embedding"] for c in chunks)

    lookup = client.post(
        "/policies/chunks/lookup", json={"chunk_ids": [chunks[0]["chunk_id"], str(uuid.uuid4())]}
    )
    assert lookup.status_code == 200
    found = lookup.json()["chunks"]
    assert [c["chunk_id"] for c in found] == [chunks[0]["chunk_id"]]
    assert found[0]["document_title"] == "Employee Handbook"

    assert client.post("/policies/chunks/lookup", json={"chunk_ids": []}).status_code == 422


def test_search_returns_fused_results(client: TestClient) -> None:
    """Test hybrid search end to end over an ingested document."""
    document_id = create_policy(client)
    client.post(f"/policies/{document_id}/ingest", json={"text": HANDBOOK})

    response = client.post("/policies/search", json={"query": "vacation days"})

    assert response.status_code == 200
    data = response.json()
    assert data["query"] == "vacation days"
    assert len(data["results"]) == 1
    result = data["results"][0]
    assert result["document_id"] == document_id
    assert result["similarity"] is not None
    assert result["rank"] is not None
    assert result["score"] == pytest.approx(2 / 61)


def test_search_with_empty_query_returns_400(client: TestClient) -> None:
    assert client.post("/policies/search", json={"query": "   "}).status_code == 400


def test_search_provider_failure_returns_502(
    client: TestClient, provider: SwitchableProvider
) -> None:
    """Test that a query embedding failure fails the search instead of degrading."""
    document_id = create_policy(client)
    client.post(f"/policies/{document_id}/ingest", json={"text": HANDBOOK})
    provider.down = True

    response = client.post("/policies/search", json={"query": "vacation days"})

    assert response.status_code == 502
    assert "embed_query" in response.json()["detail"]


def test_ask_returns_stub_answer_with_sources(client: TestClient) -> None:
    document_id = create_policy(client)
    client.post(f"/policies/{document_id}/ingest", json={"text": HANDBOOK})

    response = client.post("/policies/ask", json={"question": "Vacation days?"})

    assert response.status_code == 200
    data = response.json()
    assert data["synthesis_source"] == "stub"
    assert "Employee Handbook" in data["answer"]
    assert len(data["sources"]) == 1


def test_ask_without_matches_returns_fixed_answer(client: TestClient) -> None:
    response = client.post("/policies/ask", json={"question": "What is the pet policy?"})

    assert response.status_code == 200
    data = response.json()
    assert data["answer"] == NO_CONTEXT_ANSWER
    assert data["sources"] == []
    assert data["synthesis_source"] == "none"
