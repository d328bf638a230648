"""Pytest fixtures and shared test configuration.

Provides reusable fixtures for unit and integration tests.

Fixtures:
    - rag_config: Offline retrieval settings (local embeddings only)
    - embedder: Deterministic hash embedder
    - vector_index: Empty in-memory index
    - fake_generator / failing_generator: Stand-ins for the LLM
    - SlowEmbedder: Hash embedder with a configurable stall, for deadlines
    - rag_service: Service wired with the fakes above
    - async_client: HTTPX client for API testing

Everything runs offline; no API keys are needed.
"""

import asyncio
from collections.abc import AsyncGenerator, Sequence

import pytest
from httpx import ASGITransport, AsyncClient

from docchat.api.app import create_app
from docchat.models.schemas import ChatMessage, Completion, Document, DocumentKind
from docchat.rag.config import RAGConfig
from docchat.rag.embedder import HashEmbedder
from docchat.rag.service import RAGService
from docchat.rag.vector_index import VectorIndex


class FakeGenerator:
    """Records calls and returns a canned completion."""

    def __init__(self, text: str = "The answer is 42 [Source 1].", tokens_used: int = 42) -> None:
        self.text = text
        self.tokens_used = tokens_used
        self.calls: list[tuple[str, list[ChatMessage], str]] = []

    async def complete(
        self,
        system_prompt: str,
        history: Sequence[ChatMessage],
        user_message: str,
    ) -> Completion:
        self.calls.append((system_prompt, list(history), user_message))
        return Completion(text=self.text, tokens_used=self.tokens_used)


class SlowEmbedder(HashEmbedder):
    """Hash embedder that stalls for ``delay`` seconds per call."""

    def __init__(self, delay: float = 0.0) -> None:
        super().__init__(384)
        self.delay = delay

    async def embed(self, text: str) -> list[float]:
        await asyncio.sleep(self.delay)
        return await super().embed(text)


class FailingGenerator:
    """Simulates a provider outage."""

    async def complete(
        self,
        system_prompt: str,
        history: Sequence[ChatMessage],
        user_message: str,
    ) -> Completion:
        raise RuntimeError("provider rejected the request")


@pytest.fixture
def rag_config() -> RAGConfig:
    """Return retrieval settings with hosted embeddings disabled."""
    return RAGConfig(
        chunk_size=500,
        chunk_overlap=50,
        overlap_words=10,
        rows_per_chunk=20,
        include_statistics=True,
        embedding_dimensions=384,
        embedding_api_key=None,
        default_top_k=5,
        search_top_k=10,
        preview_chars=200,
        max_context_chars=12000,
    )


@pytest.fixture
def embedder() -> HashEmbedder:
    return HashEmbedder(384)


@pytest.fixture
def vector_index(embedder: HashEmbedder) -> VectorIndex:
    return VectorIndex(embedder)


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def failing_generator() -> FailingGenerator:
    return FailingGenerator()


@pytest.fixture
def rag_service(vector_index: VectorIndex, fake_generator: FakeGenerator, rag_config: RAGConfig) -> RAGService:
    return RAGService(vector_index, fake_generator, config=rag_config)


@pytest.fixture
def text_document() -> Document:
    """A short policy document with a few distinct topics."""
    return Document(
        id="doc-text",
        name="policy.txt",
        kind=DocumentKind.TEXT,
        content=(
            "Employees accrue twenty vacation days per year. "
            "Unused vacation days carry over for one year only. "
            "Remote work is allowed three days per week with manager approval. "
            "Expense reports must be submitted within thirty days of purchase."
        ),
        file_type="txt",
        size=256,
    )


@pytest.fixture
def table_document() -> Document:
    """A 25-row table with a text and a numeric column."""
    return Document(
        id="doc-table",
        name="scores.csv",
        kind=DocumentKind.TABULAR,
        rows=[{"Name": f"Student {i}", "Score": i} for i in range(1, 26)],
        columns=["Name", "Score"],
        file_type="csv",
    )


@pytest.fixture
async def async_client(rag_service: RAGService) -> AsyncGenerator[AsyncClient]:
    """Create async HTTP client for API testing.

    Yields:
        AsyncClient bound to an app serving ``rag_service``.
    """
    transport = ASGITransport(app=create_app(rag_service))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
