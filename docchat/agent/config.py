"""Generator configuration with environment variable loading.

Pydantic-based settings for the LLM that writes grounded answers.
Works with OpenAI and any OpenAI-compatible endpoint via LLM_BASE_URL.
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv()


def _env_timeout() -> float | None:
    value = os.getenv("LLM_TIMEOUT")
    return float(value) if value and value.strip() else None


class GeneratorConfig(BaseModel):
    """Settings for the answer generator.

    Attributes:
        api_key: Provider API key (LLM_API_KEY, then OPENAI_API_KEY).
        base_url: Endpoint for OpenAI-compatible providers (None = OpenAI).
        model_name: Chat model identifier.
        temperature: Sampling temperature; kept low for factual answers.
        max_tokens: Cap on answer length in tokens.
        request_timeout: Per-request HTTP timeout in seconds (None = client default).
    """

    api_key: str = Field(
        default_factory=lambda: os.getenv("LLM_API_KEY", os.getenv("OPENAI_API_KEY", "")),
        description="Chat completion API key",
    )
    base_url: str | None = Field(
        default_factory=lambda: os.getenv("LLM_BASE_URL") or None,
        description="OpenAI-compatible endpoint (None targets api.openai.com)",
    )
    model_name: str = Field(
        default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4o-mini"),
        description="Chat model used for answers",
    )
    temperature: float = Field(
        default_factory=lambda: float(os.getenv("LLM_TEMPERATURE", "0.3")),
        ge=0.0,
        le=2.0,
        description="Sampling temperature for answer generation",
    )
    max_tokens: int = Field(
        default_factory=lambda: int(os.getenv("LLM_MAX_TOKENS", "1024")),
        ge=1,
        le=128000,
        description="Maximum tokens per answer",
    )
    request_timeout: float | None = Field(
        default_factory=_env_timeout,
        gt=0,
        description="HTTP timeout for a single completion request",
    )

    @field_validator("api_key")
    @classmethod
    def require_api_key(cls, v: str) -> str:
        """Reject a missing or blank API key."""
        if not v or not v.strip():
            raise ValueError("API key required. Set LLM_API_KEY or OPENAI_API_KEY in .env")
        return v.strip()


def get_generator_config() -> GeneratorConfig:
    """Create generator configuration from environment.

    Raises:
        ValidationError: If no API key is set or a value is out of range.
    """
    return GeneratorConfig()
