"""Text embedding strategies.

Two interchangeable embedders share the ``Embedder`` protocol:

    - HashEmbedder: deterministic local pseudo-embedding, no network.
    - ProviderEmbedder: hosted embeddings through Agno's OpenAIEmbedder,
      degrading to the HashEmbedder whenever the provider is unavailable.

Embedding never raises. Retrieval stays available when the provider is
unreachable or unconfigured, and tests stay reproducible offline.
"""

import asyncio
import logging
import math
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from agno.knowledge.embedder.openai import OpenAIEmbedder

from docchat.rag.config import RAGConfig, get_rag_config

logger = logging.getLogger(__name__)

DEFAULT_DIMENSIONS = 384


@runtime_checkable
class Embedder(Protocol):
    """Turns text into a fixed-length vector."""

    @property
    def dimensions(self) -> int: ...

    async def embed(self, text: str) -> list[float]: ...

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]: ...


def _java_string_hash(token: str) -> int:
    """Signed 32-bit ``h = h*31 + c`` over the token's UTF-16 code units."""
    raw = token.encode("utf-16-le")
    h = 0
    for i in range(0, len(raw), 2):
        h = (h * 31 + int.from_bytes(raw[i : i + 2], "little")) & 0xFFFFFFFF
    return h - 0x100000000 if h >= 0x80000000 else h


def normalize(vector: list[float]) -> list[float]:
    """Scale a vector to unit length; the zero vector is returned unchanged."""
    magnitude = math.sqrt(sum(v * v for v in vector))
    if magnitude == 0:
        return vector
    return [v / magnitude for v in vector]


def hash_embedding(text: str, dimensions: int = DEFAULT_DIMENSIONS) -> list[float]:
    """Compute the local pseudo-embedding of ``text``.

    Each whitespace-separated, lowercased token lands in the bucket
    ``abs(hash) % dimensions`` with weight ``1 / (position + 1)``, so
    earlier tokens weigh more. The result is L2-normalized.

    Args:
        text: Input text.
        dimensions: Vector length.

    Returns:
        Unit-length vector, or the zero vector when ``text`` has no tokens.
    """
    vector = [0.0] * dimensions
    for idx, token in enumerate(text.lower().split()):
        vector[abs(_java_string_hash(token)) % dimensions] += 1.0 / (idx + 1)
    return normalize(vector)


def similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors.

    Returns 0.0 instead of raising when the dimensions differ or either
    vector has zero magnitude, so a ranking over mixed entries stays total.
    """
    if len(a) != len(b):
        return 0.0

    dot = norm_a = norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    magnitude = math.sqrt(norm_a) * math.sqrt(norm_b)
    if magnitude == 0:
        return 0.0
    # Float drift can push a self-similarity a hair past 1.0
    return max(-1.0, min(1.0, dot / magnitude))


class HashEmbedder:
    """Deterministic local embedder built on ``hash_embedding``."""

    def __init__(self, dimensions: int = DEFAULT_DIMENSIONS) -> None:
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed_sync(self, text: str) -> list[float]:
        return hash_embedding(text, self._dimensions)

    async def embed(self, text: str) -> list[float]:
        return self.embed_sync(text)

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        return [self.embed_sync(text) for text in texts]


class ProviderEmbedder:
    """Hosted embeddings with a local fallback.

    Calls an OpenAI-compatible embeddings API via Agno. Any provider error,
    timeout or empty response is logged and answered with the fallback
    embedder's vector instead.
    """

    def __init__(
        self,
        config: RAGConfig | None = None,
        fallback: HashEmbedder | None = None,
    ) -> None:
        """Initialize the embedder.

        Args:
            config: Optional retrieval configuration.
                    Loads from environment if not provided.
            fallback: Local embedder used when the provider fails.
        """
        self._config = config or get_rag_config()
        self._fallback = fallback or HashEmbedder(self._config.embedding_dimensions)
        self._provider_dimensions: int | None = None
        self._client = self._create_client()

    def _create_client(self) -> OpenAIEmbedder | None:
        """Create the Agno embedder, or None when no API key is configured."""
        if not self._config.embedding_api_key:
            logger.info("No embedding API key configured, using local embeddings only")
            return None

        return OpenAIEmbedder(
            id=self._config.embedding_model,
            api_key=self._config.embedding_api_key,
            base_url=self._config.embedding_base_url,
        )

    @property
    def dimensions(self) -> int:
        if self._provider_dimensions:
            return self._provider_dimensions
        provider_dimensions = getattr(self._client, "dimensions", None)
        if provider_dimensions:
            return provider_dimensions
        return self._fallback.dimensions

    async def _embed_remote(self, text: str) -> list[float]:
        call = asyncio.to_thread(self._client.get_embedding, text[: self._config.max_embed_chars])
        if self._config.embedding_timeout is not None:
            return await asyncio.wait_for(call, timeout=self._config.embedding_timeout)
        return await call

    async def embed(self, text: str) -> list[float]:
        """Embed text with the provider, falling back to the local embedder.

        Args:
            text: Input text.

        Returns:
            Embedding vector. Never raises for provider failures.
        """
        if self._client is None:
            return await self._fallback.embed(text)

        try:
            vector = await self._embed_remote(text)
        except TimeoutError:
            return await self._embed_fallback(text, "timed out")
        except Exception as e:
            return await self._embed_fallback(text, f"failed: {e}")

        if not vector:
            return await self._embed_fallback(text, "returned no vector")
        self._provider_dimensions = len(vector)
        return list(vector)

    async def _embed_fallback(self, text: str, reason: str) -> list[float]:
        logger.warning(f"Embedding provider {reason}, using local fallback")
        fallback_dimensions = self._fallback.dimensions
        if self._provider_dimensions and self._provider_dimensions != fallback_dimensions:
            logger.warning(
                f"Fallback vector has {fallback_dimensions} dimensions but provider vectors have "
                f"{self._provider_dimensions}; it scores 0 against provider-embedded chunks"
            )
        return await self._fallback.embed(text)

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed texts one after another, preserving input order."""
        return [await self.embed(text) for text in texts]


def build_embedder(config: RAGConfig | None = None) -> Embedder:
    """Create the embedder for the given configuration.

    Returns a ProviderEmbedder when an embedding API key is configured,
    otherwise the local HashEmbedder.
    """
    config = config or get_rag_config()
    if config.embedding_api_key:
        return ProviderEmbedder(config)
    return HashEmbedder(config.embedding_dimensions)
