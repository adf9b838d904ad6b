"""
Application Configuration
Loads environment variables and provides typed configuration.
"""
from typing import Optional
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # OpenAI (generation + embeddings)
    openai_api_key: Optional[str] = None
    openai_timeout_seconds: float = 60.0
    generation_model: str = "gpt-4o-mini"
    generation_temperature: float = 0.2

    # Pinecone
    pinecone_api_key: Optional[str] = None
    pinecone_index: Optional[str] = None

    # App Settings
    environment: str = "development"
    log_level: str = "INFO"

    # Batch conversion
    pages_per_batch: int = Field(default=20, ge=1)
    concurrency_limit: int = Field(default=2, ge=1)
    max_requests_per_minute: int = Field(default=6, ge=1)
    rate_limit_window_seconds: float = 60.0
    batch_timeout_seconds: float = 120.0
    ingestion_timeout_seconds: float = 300.0

    # Quota retry (429 / quota exceeded)
    quota_retry_attempts: int = Field(default=3, ge=1)
    quota_backoff_seconds: float = 2.0

    # Chunking
    max_chunk_size: int = Field(default=1000, ge=1)

    # Embedding Settings
    embedding_model: str = "text-embedding-3-large"
    embedding_dimensions: int = 3072
    embedding_batch_size: int = 100
    upsert_batch_size: int = 100

    # Retrieval
    default_top_k: int = 5

    # Document cache for summaries / analysis
    document_cache_size: int = 64
    document_cache_ttl_seconds: int = 3600
    max_inline_document_chars: int = 100_000

    # Ingestion progress kept for polling
    progress_cache_size: int = 1024
    progress_ttl_seconds: int = 3600


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
