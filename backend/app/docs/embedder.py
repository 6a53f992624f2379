"""Embedding providers.

Security: Reads API key from environment only, never hardcoded.
Provides a deterministic hashing provider when no key is present.
"""

import hashlib
import logging
from collections.abc import Sequence
from typing import Protocol

import numpy as np
from openai import (
    APIError,
    AsyncOpenAI,
    BadRequestError,
    RateLimitError,
)

from backend.app.config import Settings, get_settings
from backend.app.docs.errors import EmbeddingErrorKind, EmbeddingProviderError
from backend.app.docs.text import tokenize

logger = logging.getLogger(__name__)


def truncate_for_embedding(text: str, max_chars: int) -> str:
    """Cut text to the provider budget. Same input, same cut."""
    return text[:max_chars]


class EmbeddingProvider(Protocol):
    """Protocol for embedding provider implementations."""

    dimensions: int

    async def embed(self, text: str) -> list[float]:
        """Embed one text string.

        Args:
            text: Input text, already truncated to the provider budget

        Returns:
            Vector of exactly `dimensions` floats

        Raises:
            EmbeddingProviderError: On rate limiting, rejected input,
                unavailability or a malformed response
        """
        ...


class DeterministicHashEmbeddingProvider:
    """Feature-hashing embeddings for tests and local runs (no API key required).

    Each normalized term is hashed into a bucket with a hash-derived sign,
    so texts sharing vocabulary get a positive cosine similarity.
    """

    def __init__(self, dimensions: int = 1536) -> None:
        self.dimensions = dimensions

    async def embed(self, text: str) -> list[float]:
        """Generate deterministic embedding."""
        vector = np.zeros(self.dimensions, dtype=np.float64)
        for term in tokenize(text):
            digest = hashlib.sha256(term.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimensions
            sign = 1.0 if digest[4] % 2 == 0 else -1.0
            vector[bucket] += sign

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector.tolist()


class OpenAIEmbeddingProvider:
    """OpenAI-backed embedding provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
        *,
        base_url: str | None = None,
        timeout_seconds: float = 30.0,
    ):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from environment)
            model: Embedding model name
            dimensions: Vector size stored in the chunk table
            base_url: Optional API base URL
            timeout_seconds: Per-request timeout
        """
        self.client = AsyncOpenAI(
            api_key=api_key, base_url=base_url, timeout=timeout_seconds, max_retries=0
        )
        self.model = model
        self.dimensions = dimensions

    async def embed(self, text: str) -> list[float]:
        """Embed text using the OpenAI embeddings API."""
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=text,
                dimensions=self.dimensions,
            )
        except RateLimitError as e:
            raise EmbeddingProviderError(str(e), EmbeddingErrorKind.RATE_LIMITED) from e
        except BadRequestError as e:
            raise EmbeddingProviderError(str(e), EmbeddingErrorKind.INVALID_INPUT) from e
        except APIError as e:
            # Connection errors, timeouts and other status codes
            raise EmbeddingProviderError(str(e), EmbeddingErrorKind.UNAVAILABLE) from e

        if not response.data:
            raise EmbeddingProviderError(
                "embedding response contained no data", EmbeddingErrorKind.MALFORMED_RESPONSE
            )

        return validate_embedding(response.data[0].embedding, self.dimensions)


def validate_embedding(vector: Sequence[float], dimensions: int) -> list[float]:
    """Check a provider vector has the stored dimensionality."""
    if len(vector) != dimensions:
        raise EmbeddingProviderError(
            f"expected {dimensions} dimensions, got {len(vector)}",
            EmbeddingErrorKind.MALFORMED_RESPONSE,
        )
    return [float(v) for v in vector]


def get_embedding_provider(settings: Settings | None = None) -> EmbeddingProvider:
    """Factory function to get appropriate embedding provider based on config.

    Returns:
        OpenAIEmbeddingProvider if API key is configured,
        DeterministicHashEmbeddingProvider otherwise
    """
    settings = settings or get_settings()
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI embedding provider")
        return OpenAIEmbeddingProvider(
            api_key=api_key.get_secret_value(),
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
            base_url=settings.openai_base_url,
            timeout_seconds=settings.provider_timeout_seconds,
        )

    logger.warning("No OpenAI API key configured, using deterministic hash embeddings")
    return DeterministicHashEmbeddingProvider(dimensions=settings.embedding_dimensions)
