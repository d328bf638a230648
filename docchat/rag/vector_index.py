"""In-memory vector index over document chunks.

Entries live for the lifetime of the process. A secondary index maps each
document id to its entry ids so a document can be listed or removed as a
unit. Search is a brute-force cosine scan, optionally scoped to one
document.
"""

import asyncio
import logging
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from docchat.rag.embedder import Embedder, similarity

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5


@dataclass(frozen=True)
class VectorEntry:
    """A stored chunk and its embedding."""

    id: str
    document_id: str
    chunk_index: int
    content: str
    embedding: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchResult:
    """A single search hit with its cosine similarity score."""

    entry: VectorEntry
    score: float


class VectorIndex:
    """Stores chunk embeddings and answers similarity queries.

    Usage::

        index = VectorIndex(HashEmbedder())
        await index.add_batch("doc-1", chunks, {"source": "report.txt"})
        results = await index.search("quarterly revenue", top_k=5)
    """

    def __init__(self, embedder: Embedder, embed_concurrency: int = 4) -> None:
        self._embedder = embedder
        self._embed_concurrency = embed_concurrency
        self._entries: dict[str, VectorEntry] = {}
        self._by_document: dict[str, list[str]] = {}

    @property
    def embedder(self) -> Embedder:
        return self._embedder

    def _build_entry(
        self,
        document_id: str,
        text: str,
        chunk_index: int,
        embedding: list[float],
        metadata: Mapping[str, Any] | None,
    ) -> VectorEntry:
        meta: dict[str, Any] = {"source": "unknown", "type": "text"}
        meta.update(metadata or {})
        meta.setdefault("created_at", datetime.now(UTC).isoformat())
        return VectorEntry(
            id=str(uuid.uuid4()),
            document_id=document_id,
            chunk_index=chunk_index,
            content=text,
            embedding=embedding,
            metadata=meta,
        )

    def _insert(self, entry: VectorEntry) -> None:
        self._entries[entry.id] = entry
        self._by_document.setdefault(entry.document_id, []).append(entry.id)
        logger.debug(
            f"Added vector entry {entry.id} for document {entry.document_id} "
            f"(chunk {entry.chunk_index}, {len(entry.content)} chars)"
        )

    async def add(
        self,
        document_id: str,
        text: str,
        chunk_index: int,
        metadata: Mapping[str, Any] | None = None,
    ) -> VectorEntry:
        """Embed a chunk and store it.

        Args:
            document_id: Owning document.
            text: Chunk text.
            chunk_index: Position of the chunk within its document.
            metadata: Source metadata copied onto the entry.

        Returns:
            The stored entry.
        """
        embedding = await self._embedder.embed(text)
        entry = self._build_entry(document_id, text, chunk_index, embedding, metadata)
        self._insert(entry)
        return entry

    async def add_batch(
        self,
        document_id: str,
        chunks: Sequence[str],
        metadata: Mapping[str, Any] | None = None,
    ) -> list[VectorEntry]:
        """Embed and store a document's chunks as indices 0..n-1.

        Embeddings are computed concurrently; entries are inserted in chunk
        order once all embeddings are ready.

        Args:
            document_id: Owning document.
            chunks: Chunk texts in document order.
            metadata: Source metadata shared by every chunk.

        Returns:
            Stored entries in chunk order.
        """
        semaphore = asyncio.Semaphore(self._embed_concurrency)

        async def embed_one(text: str) -> list[float]:
            async with semaphore:
                return await self._embedder.embed(text)

        embeddings = await asyncio.gather(*(embed_one(text) for text in chunks))

        entries = []
        for chunk_index, (text, embedding) in enumerate(zip(chunks, embeddings)):
            entry = self._build_entry(document_id, text, chunk_index, embedding, metadata)
            self._insert(entry)
            entries.append(entry)

        logger.info(f"Added {len(entries)} chunks for document {document_id}")
        return entries

    async def search(
        self,
        query: str,
        top_k: int = DEFAULT_TOP_K,
        document_id: str | None = None,
    ) -> list[SearchResult]:
        """Rank stored entries by similarity to ``query``.

        Args:
            query: Query text.
            top_k: Maximum number of results.
            document_id: Restrict the search to one document.

        Returns:
            Up to ``top_k`` results by descending score, ties kept in
            insertion order. Empty when nothing matches.
        """
        query_embedding = await self._embedder.embed(query)

        if not document_id:
            candidates = list(self._entries.values())
        else:
            candidates = [
                self._entries[entry_id]
                for entry_id in list(self._by_document.get(document_id, []))
                if entry_id in self._entries
            ]

        results = [SearchResult(entry, similarity(query_embedding, entry.embedding)) for entry in candidates]
        results.sort(key=lambda r: r.score, reverse=True)
        top = results[: max(top_k, 0)]

        logger.debug(
            f"Vector search for {query[:50]!r}: {len(top)} results, "
            f"top score {top[0].score if top else 0.0:.3f}"
        )
        return top

    def get_chunks_for_document(self, document_id: str) -> list[VectorEntry]:
        """Return a document's entries ordered by chunk index."""
        entries = [
            self._entries[entry_id]
            for entry_id in self._by_document.get(document_id, [])
            if entry_id in self._entries
        ]
        return sorted(entries, key=lambda e: e.chunk_index)

    def has_document(self, document_id: str) -> bool:
        return document_id in self._by_document

    def delete_document(self, document_id: str) -> int:
        """Remove all entries of a document.

        Returns:
            Number of entries removed; 0 if the document was not indexed.
        """
        entry_ids = self._by_document.pop(document_id, [])
        for entry_id in entry_ids:
            self._entries.pop(entry_id, None)

        if entry_ids:
            logger.info(f"Deleted document {document_id} ({len(entry_ids)} chunks)")
        return len(entry_ids)

    def stats(self) -> dict[str, int | float]:
        """Return document and chunk counts, computed on demand."""
        total_chunks = len(self._entries)
        total_documents = len(self._by_document)
        return {
            "total_documents": total_documents,
            "total_chunks": total_chunks,
            "avg_chunks_per_document": total_chunks / total_documents if total_documents else 0.0,
        }

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()
        self._by_document.clear()
        logger.info("Vector index cleared")

    def __len__(self) -> int:
        return len(self._entries)
