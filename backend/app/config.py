"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database (unset: in-memory store)
    database_url: str | None = None

    # Logging
    log_level: str = "INFO"

    # OpenAI
    openai_api_key: SecretStr | None = None
    openai_base_url: str | None = None

    # Embeddings
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = Field(1536, ge=1)
    embedding_max_input_chars: int = Field(25000, ge=1)

    # Embedding batches
    embedding_batch_size: int = Field(20, ge=1)
    embedding_batch_delay_ms: int = Field(200, ge=0)

    # Timeouts (seconds, per provider call)
    provider_timeout_seconds: float = Field(30.0, gt=0)

    # Chunking
    chunk_max_chars: int = Field(1000, ge=50)

    # Retrieval
    vector_match_threshold: float = Field(0.3, ge=0.0, le=1.0)
    vector_match_count: int = Field(10, ge=1)
    lexical_match_count: int = Field(10, ge=1)
    rrf_k: int = Field(60, ge=0)
    text_search_config: str = Field("english", pattern=r"^[a-z_]+$")
    allow_degraded_search: bool = False

    # Answer synthesis
    chat_model: str = "gpt-4o-mini"
    qa_context_chunks: int = Field(5, ge=1)
    qa_max_tokens: int = Field(500, ge=1)
    qa_temperature: float = Field(0.2, ge=0.0, le=2.0)

    # Stored files
    document_root: str = "./policy-documents"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
