"""Unit tests for RAGService indexing, search and question answering."""

import asyncio
import logging
from collections.abc import Sequence

import pytest
import pytest_check as check

from docchat.models.schemas import ChatMessage, Completion, Document, DocumentKind
from docchat.rag.config import RAGConfig
from docchat.rag.embedder import HashEmbedder, ProviderEmbedder
from docchat.rag.service import NO_RESULTS_ANSWER, RAGService, build_rag_service
from docchat.rag.vector_index import VectorIndex
from tests.conftest import FailingGenerator, FakeGenerator, SlowEmbedder


class SlowGenerator:
    """Takes longer than any reasonable test timeout."""

    async def complete(
        self,
        system_prompt: str,
        history: Sequence[ChatMessage],
        user_message: str,
    ) -> Completion:
        await asyncio.sleep(5)
        return Completion(text="too late")


class TestIndexing:
    """Tests for chunking and storing documents."""

    async def test_index_text_document(self, rag_service: RAGService, text_document: Document) -> None:
        """A short text document is stored as one chunk."""
        count = await rag_service.index(text_document)

        chunks = rag_service.get_chunks_for_document("doc-text")
        check.equal(count, 1)
        check.equal(len(chunks), 1)
        check.equal(chunks[0].content, text_document.content)
        check.is_true(rag_service.is_indexed("doc-text"))

    async def test_chunk_metadata(self, rag_service: RAGService, text_document: Document) -> None:
        """Chunks carry the document's source metadata."""
        await rag_service.index(text_document)

        metadata = rag_service.get_chunks_for_document("doc-text")[0].metadata

        check.equal(metadata["source"], "policy.txt")
        check.equal(metadata["type"], "text")
        check.equal(metadata["file_type"], "txt")
        check.equal(metadata["size"], 256)
        check.is_in("created_at", metadata)

    async def test_index_tabular_document(
        self, vector_index: VectorIndex, fake_generator: FakeGenerator, table_document: Document
    ) -> None:
        """25 rows at 15 rows per chunk index as 4 chunks with the schema first."""
        service = RAGService(
            vector_index,
            fake_generator,
            config=RAGConfig(rows_per_chunk=15, embedding_api_key=None),
        )

        count = await service.index(table_document)

        chunks = service.get_chunks_for_document("doc-table")
        check.equal(count, 4)
        check.equal([c.chunk_index for c in chunks], [0, 1, 2, 3])
        check.is_true(chunks[0].content.startswith("Dataset Schema:"))
        check.is_in("Total Rows: 25", chunks[0].content)
        check.is_true(chunks[3].content.startswith("Summary Statistics:"))
        check.equal(chunks[0].metadata["type"], "tabular")

    async def test_index_appends(self, rag_service: RAGService, text_document: Document) -> None:
        """Indexing the same id twice keeps both sets of chunks."""
        await rag_service.index(text_document)
        await rag_service.index(text_document)

        check.equal(len(rag_service.get_chunks_for_document("doc-text")), 2)

    async def test_reindex_replaces(self, rag_service: RAGService, text_document: Document) -> None:
        """reindex leaves exactly one set of chunks."""
        await rag_service.index(text_document)
        await rag_service.index(text_document)

        count = await rag_service.reindex(text_document)

        check.equal(count, 1)
        check.equal(len(rag_service.get_chunks_for_document("doc-text")), 1)

    async def test_empty_document_is_indexed_with_no_chunks(self, rag_service: RAGService) -> None:
        """A blank document indexes as zero chunks."""
        document = Document(id="blank", name="blank.txt", content="   ")

        check.equal(await rag_service.index(document), 0)
        check.equal(rag_service.stats().total_chunks, 0)


class TestSearch:
    """Tests for search without generation."""

    async def test_search_returns_hits(
        self, rag_service: RAGService, text_document: Document, table_document: Document
    ) -> None:
        """Search hits carry document id and metadata."""
        await rag_service.index(text_document)
        await rag_service.index(table_document)

        hits = await rag_service.search("vacation days", document_id="doc-text")

        check.equal(len(hits), 1)
        check.equal(hits[0].document_id, "doc-text")
        check.equal(hits[0].metadata["source"], "policy.txt")

    async def test_search_defaults_to_search_top_k(self, rag_service: RAGService) -> None:
        """Search returns search_top_k hits when top_k is omitted."""
        rows = [{"n": i} for i in range(300)]
        await rag_service.index(Document(id="big", name="big.csv", kind=DocumentKind.TABULAR, rows=rows, columns=["n"]))

        hits = await rag_service.search("n")

        check.equal(len(hits), 10)
        scores = [h.score for h in hits]
        check.equal(scores, sorted(scores, reverse=True))

    async def test_search_on_empty_index(self, rag_service: RAGService) -> None:
        """Searching an empty index returns no hits."""
        check.equal(await rag_service.search("anything"), [])


class TestQuery:
    """Tests for retrieval-augmented answers."""

    async def test_empty_index_returns_fixed_answer(
        self, rag_service: RAGService, fake_generator: FakeGenerator
    ) -> None:
        """Nothing retrieved: fixed answer, no sources, generator never called."""
        answer = await rag_service.query("What is the revenue?")

        check.equal(answer.answer, NO_RESULTS_ANSWER)
        check.equal(answer.sources, [])
        check.equal(answer.tokens_used, 0)
        check.equal(answer.generation_ms, 0)
        check.equal(fake_generator.calls, [])

    async def test_unknown_document_returns_fixed_answer(
        self, rag_service: RAGService, fake_generator: FakeGenerator, text_document: Document
    ) -> None:
        """An unknown document id answers with the fixed message."""
        await rag_service.index(text_document)

        answer = await rag_service.query("vacation", document_id="missing")

        check.equal(answer.answer, NO_RESULTS_ANSWER)
        check.equal(fake_generator.calls, [])

    async def test_answer_with_sources(
        self, rag_service: RAGService, fake_generator: FakeGenerator, table_document: Document
    ) -> None:
        """The answer carries ranked sources, tokens and timing."""
        await rag_service.index(table_document)

        answer = await rag_service.query("What columns exist?", document_id="doc-table", top_k=3)

        check.equal(answer.answer, "The answer is 42 [Source 1].")
        check.equal(answer.tokens_used, 42)
        check.equal(len(answer.sources), 3)
        scores = [s.score for s in answer.sources]
        check.equal(scores, sorted(scores, reverse=True))
        check.greater_equal(answer.retrieval_ms, 0)
        check.greater_equal(answer.generation_ms, 0)

    async def test_generator_receives_labelled_context(
        self, rag_service: RAGService, fake_generator: FakeGenerator, text_document: Document
    ) -> None:
        """The generator sees labelled chunks and the raw question."""
        await rag_service.index(text_document)

        await rag_service.query("How many vacation days?")

        system_prompt, history, user_message = fake_generator.calls[0]
        check.is_in("[Source 1] (Relevance: ", system_prompt)
        check.is_in("Employees accrue twenty vacation days per year.", system_prompt)
        check.equal(history, [])
        check.equal(user_message, "How many vacation days?")

    async def test_history_is_forwarded(
        self, rag_service: RAGService, fake_generator: FakeGenerator, text_document: Document
    ) -> None:
        """Conversation history reaches the generator unchanged."""
        await rag_service.index(text_document)
        history = [
            ChatMessage(role="user", content="Hi"),
            ChatMessage(role="assistant", content="Hello! Ask me about the policy."),
        ]

        await rag_service.query("And remote work?", history=history)

        check.equal(fake_generator.calls[0][1], history)

    async def test_source_previews_are_truncated(
        self, rag_service: RAGService, fake_generator: FakeGenerator
    ) -> None:
        """A 350 character chunk previews as 200 characters plus '...'."""
        content = "".join(chr(ord("a") + i % 26) for i in range(350))
        await rag_service.index(Document(id="long", name="long.txt", content=content))

        answer = await rag_service.query("abc")

        check.equal(answer.sources[0].content, content[:200] + "...")

    async def test_generator_failure_propagates(
        self, vector_index: VectorIndex, rag_config: RAGConfig, text_document: Document
    ) -> None:
        """Generator errors reach the caller unchanged."""
        service = RAGService(vector_index, FailingGenerator(), config=rag_config)
        await service.index(text_document)

        with pytest.raises(RuntimeError, match="provider rejected the request"):
            await service.query("vacation")

    async def test_generation_timeout(
        self, vector_index: VectorIndex, rag_config: RAGConfig, text_document: Document
    ) -> None:
        """A generator slower than the timeout raises TimeoutError."""
        service = RAGService(vector_index, SlowGenerator(), config=rag_config)
        await service.index(text_document)

        with pytest.raises(TimeoutError):
            await service.query("vacation", timeout=0.05)


class TestDocumentLifecycle:
    """Tests for deletion, stats and clearing."""

    async def test_delete_and_stats(
        self, rag_service: RAGService, text_document: Document, table_document: Document
    ) -> None:
        """Deleting a document updates the stats by its chunk count."""
        await rag_service.index(text_document)
        await rag_service.index(table_document)
        before = rag_service.stats()

        removed = rag_service.delete_document("doc-table")

        after = rag_service.stats()
        check.equal(before.total_documents, 2)
        check.equal(after.total_documents, 1)
        check.equal(after.total_chunks, before.total_chunks - removed)
        check.is_false(rag_service.is_indexed("doc-table"))
        check.equal(rag_service.delete_document("doc-table"), 0)

    async def test_clear(self, rag_service: RAGService, text_document: Document) -> None:
        """clear empties the index."""
        await rag_service.index(text_document)

        rag_service.clear()

        check.equal(rag_service.stats().total_documents, 0)
        check.equal(rag_service.stats().avg_chunks_per_document, 0.0)


class TestBuildRagService:
    """Tests for wiring the default service."""

    def test_local_embedder_without_key(self, fake_generator: FakeGenerator) -> None:
        """Without a key the service embeds locally."""
        service = build_rag_service(fake_generator, RAGConfig(embedding_api_key=None, embedding_dimensions=256))

        check.is_instance(service.vector_index.embedder, HashEmbedder)
        check.equal(service.vector_index.embedder.dimensions, 256)
        check.equal(len(service.vector_index), 0)

    def test_provider_embedder_with_key(self, fake_generator: FakeGenerator, monkeypatch: pytest.MonkeyPatch) -> None:
        """With a key the service embeds through the provider."""
        monkeypatch.setattr("docchat.rag.embedder.OpenAIEmbedder", lambda **kwargs: object())

        service = build_rag_service(fake_generator, RAGConfig(embedding_api_key="sk-test"))

        check.is_instance(service.vector_index.embedder, ProviderEmbedder)


class TestLazyGenerator:
    """Tests for creating the generator on the first question."""

    async def test_index_and_search_never_build_generator(
        self, vector_index: VectorIndex, text_document: Document
    ) -> None:
        """Retrieval works while the generator factory would fail."""

        def unavailable() -> FakeGenerator:
            raise ValueError("API key required")

        service = RAGService(vector_index, generator_factory=unavailable)

        check.equal(await service.index(text_document), 1)
        check.equal(len(await service.search("vacation")), 1)
        with pytest.raises(ValueError, match="API key required"):
            service.load_generator()

    async def test_factory_called_once_on_first_question(
        self, vector_index: VectorIndex, rag_config: RAGConfig, text_document: Document
    ) -> None:
        """The factory runs on the first answered question and its generator is reused."""
        created: list[FakeGenerator] = []

        def factory() -> FakeGenerator:
            created.append(FakeGenerator())
            return created[-1]

        service = RAGService(vector_index, config=rag_config, generator_factory=factory)
        await service.index(text_document)
        check.equal(created, [])

        await service.query("vacation")
        await service.query("remote work")

        check.equal(len(created), 1)
        check.equal(len(created[0].calls), 2)

    def test_missing_generator_and_factory(self, vector_index: VectorIndex, rag_config: RAGConfig) -> None:
        """A service built for retrieval only reports that it cannot answer."""
        with pytest.raises(ValueError, match="No answer generator configured"):
            RAGService(vector_index, config=rag_config).load_generator()


class TestExplicitTopK:
    """Tests for an explicit zero top_k."""

    async def test_search_with_zero_top_k(self, rag_service: RAGService, text_document: Document) -> None:
        """top_k=0 asks for nothing rather than the default."""
        await rag_service.index(text_document)

        check.equal(await rag_service.search("vacation", top_k=0), [])

    async def test_query_with_zero_top_k(
        self, rag_service: RAGService, fake_generator: FakeGenerator, text_document: Document
    ) -> None:
        """top_k=0 retrieves nothing, so the fixed answer is returned."""
        await rag_service.index(text_document)

        answer = await rag_service.query("vacation", top_k=0)

        check.equal(answer.answer, NO_RESULTS_ANSWER)
        check.equal(fake_generator.calls, [])


class TestDeadlines:
    """Tests for caller deadlines covering embedding calls."""

    async def test_index_timeout_stores_nothing(
        self, fake_generator: FakeGenerator, rag_config: RAGConfig, text_document: Document
    ) -> None:
        """A stalled embedder makes index() time out without partial entries."""
        service = RAGService(VectorIndex(SlowEmbedder(delay=5)), fake_generator, config=rag_config)

        with pytest.raises(TimeoutError):
            await service.index(text_document, timeout=0.05)

        check.is_false(service.is_indexed("doc-text"))
        check.equal(service.stats().total_chunks, 0)

    async def test_query_timeout_covers_question_embedding(
        self, fake_generator: FakeGenerator, rag_config: RAGConfig, text_document: Document
    ) -> None:
        """The query deadline applies to embedding the question, before generation."""
        embedder = SlowEmbedder()
        service = RAGService(VectorIndex(embedder), fake_generator, config=rag_config)
        await service.index(text_document)
        embedder.delay = 5

        with pytest.raises(TimeoutError):
            await service.query("vacation", timeout=0.05)

        check.equal(fake_generator.calls, [])

    async def test_search_timeout(self, rag_config: RAGConfig, text_document: Document) -> None:
        """Search honours its deadline while embedding the query."""
        embedder = SlowEmbedder()
        service = RAGService(VectorIndex(embedder), config=rag_config)
        await service.index(text_document)
        embedder.delay = 5

        with pytest.raises(TimeoutError):
            await service.search("vacation", timeout=0.05)


class TestIrrelevantContext:
    """Tests for answering from chunks that all score zero."""

    async def test_warns_when_no_chunk_is_relevant(
        self,
        fake_generator: FakeGenerator,
        rag_config: RAGConfig,
        text_document: Document,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Chunks embedded at another dimension score 0 and the query logs a warning."""
        index = VectorIndex(HashEmbedder(256))
        service = RAGService(index, fake_generator, config=rag_config)
        await service.index(text_document)
        index._embedder = HashEmbedder(384)

        with caplog.at_level(logging.WARNING, logger="docchat.rag.service"):
            answer = await service.query("vacation")

        check.equal(answer.sources[0].score, 0.0)
        check.is_in("different embedders", caplog.text)
