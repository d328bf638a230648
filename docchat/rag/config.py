"""Retrieval configuration with environment variable loading.

Pydantic-based settings for chunking, embeddings and retrieval.
Every field can be overridden from the environment or a .env file.
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y"}


def _env_float(name: str) -> float | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return float(value)


class RAGConfig(BaseModel):
    """Configuration for the retrieval pipeline.

    Attributes:
        chunk_size: Maximum characters per text chunk.
        chunk_overlap: Characters shared by consecutive fixed-size windows.
        overlap_words: Trailing words carried into the next sentence chunk.
        rows_per_chunk: Table rows rendered into each row chunk.
        include_statistics: Append a summary statistics chunk for tables.
        embedding_dimensions: Size of the local hash embedding.
        embedding_model: Hosted embedding model identifier.
        embedding_api_key: API key for hosted embeddings (None = local only).
        embedding_base_url: Base URL for an OpenAI-compatible embeddings API.
        embedding_timeout: Seconds before a hosted embedding call falls back.
        max_embed_chars: Input truncation limit for hosted embeddings.
        embed_concurrency: Parallel embedding calls during ingestion.
        default_top_k: Chunks retrieved when answering a question.
        search_top_k: Chunks returned by plain semantic search.
        preview_chars: Length of the source previews attached to answers.
        max_context_chars: Character budget for the prompt context.
    """

    chunk_size: int = Field(
        default_factory=lambda: int(os.getenv("RAG_CHUNK_SIZE", "500")),
        ge=50,
        description="Maximum characters per text chunk",
    )
    chunk_overlap: int = Field(
        default_factory=lambda: int(os.getenv("RAG_CHUNK_OVERLAP", "50")),
        ge=0,
        description="Overlap between fixed-size character windows",
    )
    overlap_words: int = Field(
        default_factory=lambda: int(os.getenv("RAG_OVERLAP_WORDS", "10")),
        ge=0,
        description="Words carried over from the previous chunk",
    )
    rows_per_chunk: int = Field(
        default_factory=lambda: int(os.getenv("RAG_ROWS_PER_CHUNK", "20")),
        ge=1,
        description="Table rows per chunk",
    )
    include_statistics: bool = Field(
        default_factory=lambda: _env_bool("RAG_INCLUDE_STATISTICS", True),
        description="Append numeric column statistics to tabular documents",
    )
    embedding_dimensions: int = Field(
        default_factory=lambda: int(os.getenv("RAG_EMBEDDING_DIMENSIONS", "384")),
        ge=256,
        le=384,
        description="Dimensions of the local hash embedding",
    )
    embedding_model: str = Field(
        default_factory=lambda: os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
        description="Hosted embedding model",
    )
    embedding_api_key: str | None = Field(
        default_factory=lambda: os.getenv("EMBEDDING_API_KEY") or os.getenv("OPENAI_API_KEY") or None,
        description="API key for hosted embeddings (None uses the local fallback only)",
    )
    embedding_base_url: str | None = Field(
        default_factory=lambda: os.getenv("EMBEDDING_BASE_URL") or None,
        description="Embeddings API base URL (None for OpenAI default)",
    )
    embedding_timeout: float | None = Field(
        default_factory=lambda: _env_float("EMBEDDING_TIMEOUT"),
        gt=0,
        description="Seconds to wait for a hosted embedding before falling back",
    )
    max_embed_chars: int = Field(
        default_factory=lambda: int(os.getenv("RAG_MAX_EMBED_CHARS", "8000")),
        ge=1,
        description="Input truncation limit for hosted embeddings",
    )
    embed_concurrency: int = Field(
        default_factory=lambda: int(os.getenv("RAG_EMBED_CONCURRENCY", "4")),
        ge=1,
        description="Concurrent embedding calls per ingestion",
    )
    default_top_k: int = Field(
        default_factory=lambda: int(os.getenv("RAG_TOP_K", "5")),
        ge=1,
        description="Chunks retrieved per question",
    )
    search_top_k: int = Field(
        default_factory=lambda: int(os.getenv("RAG_SEARCH_TOP_K", "10")),
        ge=1,
        description="Chunks returned by semantic search",
    )
    preview_chars: int = Field(
        default_factory=lambda: int(os.getenv("RAG_PREVIEW_CHARS", "200")),
        ge=1,
        description="Source preview length",
    )
    max_context_chars: int = Field(
        default_factory=lambda: int(os.getenv("RAG_MAX_CONTEXT_CHARS", "12000")),
        ge=1,
        description="Character budget for the prompt context",
    )

    @field_validator("embedding_api_key")
    @classmethod
    def blank_key_to_none(cls, v: str | None) -> str | None:
        """Treat a whitespace-only key as not configured."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @model_validator(mode="after")
    def check_overlap(self) -> "RAGConfig":
        """Window overlap must leave a positive step."""
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self


def get_rag_config() -> RAGConfig:
    """Create retrieval configuration from environment.

    Returns:
        Configured RAGConfig instance.
    """
    return RAGConfig()
