"""Retrieval-augmented question answering over indexed documents.

Ingest path:  Document -> Chunker -> Embedder -> VectorIndex
Query path:   question -> VectorIndex.search -> context -> Generator -> RAGAnswer

``index`` appends: indexing the same document id twice stores both sets
of chunks. Use ``reindex`` to replace a document's chunks.

Retrieval never fails on missing data: an empty index, an unknown
document id or an unmatched filter all produce empty results. Generation
failures are not caught here and reach the caller unchanged.

The generator may be supplied as a factory; it is then created on the
first question, so indexing and search work without LLM credentials.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from docchat.agent.generator import Generator
from docchat.models.schemas import (
    ChatMessage,
    Document,
    DocumentKind,
    IndexStats,
    QueryStage,
    RAGAnswer,
    SearchHit,
)
from docchat.rag.chunker import Chunker
from docchat.rag.config import RAGConfig, get_rag_config
from docchat.rag.context import (
    build_context,
    build_system_prompt,
    select_within_budget,
    to_sources,
)
from docchat.rag.embedder import build_embedder
from docchat.rag.vector_index import VectorEntry, VectorIndex

logger = logging.getLogger(__name__)

NO_RESULTS_ANSWER = "No relevant information found in the documents."


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class RAGService:
    """Indexes documents and answers questions grounded in them.

    Usage::

        service = RAGService(VectorIndex(HashEmbedder()), AgnoGenerator())
        await service.index(document)
        answer = await service.query("What columns exist?", document.id)
    """

    def __init__(
        self,
        index: VectorIndex,
        generator: Generator | None = None,
        chunker: Chunker | None = None,
        config: RAGConfig | None = None,
        generator_factory: Callable[[], Generator] | None = None,
    ) -> None:
        self._config = config or get_rag_config()
        self._index = index
        self._generator = generator
        self._generator_factory = generator_factory
        self._chunker = chunker or Chunker(self._config)

    @property
    def vector_index(self) -> VectorIndex:
        return self._index

    def load_generator(self) -> Generator:
        """Return the generator, creating it from the factory on first use.

        Raises:
            ValueError: If no generator is set and the factory cannot
                configure one (for example, a missing API key).
        """
        if self._generator is None:
            if self._generator_factory is None:
                raise ValueError("No answer generator configured")
            self._generator = self._generator_factory()
            logger.info(f"Answer generator ready: {type(self._generator).__name__}")
        return self._generator

    def chunk(self, document: Document) -> list[str]:
        """Split a document with the strategy matching its kind."""
        if document.kind is DocumentKind.TABULAR:
            return self._chunker.chunk_tabular(document.rows or [], document.columns or [])
        return self._chunker.chunk_text(document.content or "")

    @staticmethod
    def _source_metadata(document: Document) -> dict[str, Any]:
        metadata: dict[str, Any] = dict(document.metadata)
        metadata.update({"source": document.name, "type": document.kind.value})
        if document.file_type is not None:
            metadata["file_type"] = document.file_type
        if document.size is not None:
            metadata["size"] = document.size
        return metadata

    async def index(self, document: Document, timeout: float | None = None) -> int:
        """Chunk, embed and store a document.

        Calling this again for an already indexed id adds a second set of
        chunks; call ``delete_document`` first or use ``reindex``.

        Args:
            document: Parsed text or tabular document.
            timeout: Seconds allowed for embedding the chunks. Nothing is
                stored when the deadline passes.

        Returns:
            Number of chunks created.

        Raises:
            TimeoutError: If embedding exceeds ``timeout``.
        """
        chunks = self.chunk(document)
        async with asyncio.timeout(timeout):
            await self._index.add_batch(document.id, chunks, self._source_metadata(document))
        logger.info(f"Indexed document {document.id} ({document.name}): {len(chunks)} chunks")
        return len(chunks)

    async def reindex(self, document: Document, timeout: float | None = None) -> int:
        """Replace any stored chunks of ``document`` with freshly computed ones."""
        removed = self._index.delete_document(document.id)
        if removed:
            logger.info(f"Re-indexing document {document.id}, replaced {removed} chunks")
        return await self.index(document, timeout=timeout)

    async def search(
        self,
        query: str,
        document_id: str | None = None,
        top_k: int | None = None,
        timeout: float | None = None,
    ) -> list[SearchHit]:
        """Semantic search without generation.

        Args:
            query: Query text.
            document_id: Restrict results to one document.
            top_k: Maximum results (defaults to ``search_top_k``).
            timeout: Seconds allowed for embedding the query.

        Returns:
            Hits ordered by descending score.
        """
        limit = top_k if top_k is not None else self._config.search_top_k
        async with asyncio.timeout(timeout):
            results = await self._index.search(query, limit, document_id)
        return [
            SearchHit(
                content=r.entry.content,
                score=r.score,
                document_id=r.entry.document_id,
                chunk_index=r.entry.chunk_index,
                metadata=r.entry.metadata,
            )
            for r in results
        ]

    async def query(
        self,
        question: str,
        document_id: str | None = None,
        top_k: int | None = None,
        history: Sequence[ChatMessage] | None = None,
        timeout: float | None = None,
    ) -> RAGAnswer:
        """Answer a question from the most relevant chunks.

        Args:
            question: The user's question.
            document_id: Restrict retrieval to one document.
            top_k: Chunks to retrieve (defaults to ``default_top_k``).
            history: Earlier conversation turns passed to the generator.
            timeout: Seconds allowed for the whole query, covering both the
                question embedding and the generation call.

        Returns:
            RAGAnswer with the answer, cited sources, token usage and timing.
            When nothing is retrieved the answer is a fixed "not found"
            message and the generator is not called.

        Raises:
            TimeoutError: If retrieval and generation exceed ``timeout``.
            ValueError: If the generator cannot be created.
            Exception: Generator errors, unchanged.
        """
        async with asyncio.timeout(timeout):
            return await self._answer(question, document_id, top_k, history)

    async def _answer(
        self,
        question: str,
        document_id: str | None,
        top_k: int | None,
        history: Sequence[ChatMessage] | None,
    ) -> RAGAnswer:
        logger.debug(f"Query {QueryStage.RECEIVED.value}: {question[:50]!r}")

        logger.debug(f"Query {QueryStage.RETRIEVING.value}")
        retrieval_start = time.perf_counter()
        limit = top_k if top_k is not None else self._config.default_top_k
        results = await self._index.search(question, limit, document_id)
        retrieval_ms = _elapsed_ms(retrieval_start)

        if not results:
            logger.debug(f"Query {QueryStage.DONE.value}: no results after {retrieval_ms}ms")
            return RAGAnswer(
                answer=NO_RESULTS_ANSWER,
                sources=[],
                tokens_used=0,
                retrieval_ms=retrieval_ms,
                generation_ms=0,
            )

        if all(r.score <= 0.0 for r in results):
            logger.warning(
                f"None of {len(results)} retrieved chunks is relevant to the question; "
                "stored and query embeddings may come from different embedders"
            )

        selected = select_within_budget(results, self._config.max_context_chars)
        logger.debug(f"Query {QueryStage.RETRIEVED.value}: {len(selected)} of {len(results)} chunks in context")
        system_prompt = build_system_prompt(build_context(selected))
        generator = self.load_generator()

        logger.debug(f"Query {QueryStage.GENERATING.value}")
        generation_start = time.perf_counter()
        completion = await generator.complete(system_prompt, list(history or []), question)
        generation_ms = _elapsed_ms(generation_start)

        logger.info(
            f"RAG query {QueryStage.DONE.value}: {len(selected)} sources, "
            f"retrieval {retrieval_ms}ms, generation {generation_ms}ms"
        )

        return RAGAnswer(
            answer=completion.text,
            sources=to_sources(selected, self._config.preview_chars),
            tokens_used=completion.tokens_used,
            retrieval_ms=retrieval_ms,
            generation_ms=generation_ms,
        )

    def get_chunks_for_document(self, document_id: str) -> list[VectorEntry]:
        return self._index.get_chunks_for_document(document_id)

    def is_indexed(self, document_id: str) -> bool:
        return self._index.has_document(document_id)

    def delete_document(self, document_id: str) -> int:
        """Remove a document's chunks; returns how many were removed."""
        return self._index.delete_document(document_id)

    def stats(self) -> IndexStats:
        return IndexStats(**self._index.stats())

    def clear(self) -> None:
        self._index.clear()


def build_rag_service(
    generator: Generator | None = None,
    config: RAGConfig | None = None,
    generator_factory: Callable[[], Generator] | None = None,
) -> RAGService:
    """Wire a RAGService with the embedder chosen by configuration.

    Args:
        generator: Answer generator.
        config: Retrieval configuration, loaded from environment if omitted.
        generator_factory: Builds the generator on the first question when
            ``generator`` is not given.

    Returns:
        A service with its own, empty vector index.
    """
    config = config or get_rag_config()
    index = VectorIndex(build_embedder(config), embed_concurrency=config.embed_concurrency)
    return RAGService(index, generator, config=config, generator_factory=generator_factory)
