"""Pydantic models for documents, answers and API payloads.

Provides type safety, validation, and automatic OpenAPI documentation.

Models:
    - Document: Parsed text or tabular document to index
    - RAGAnswer: Grounded answer with cited sources and timing
    - SearchHit: Semantic search result without generation
    - IndexStats: Vector index size summary
    - QueryRequest / SearchRequest: Incoming API payloads
"""

from docchat.models.schemas import (
    ChatMessage,
    ChunkView,
    Completion,
    DeleteResponse,
    Document,
    DocumentKind,
    IndexResponse,
    IndexStats,
    QueryRequest,
    QueryStage,
    RAGAnswer,
    SearchHit,
    SearchRequest,
    SearchResponse,
    Source,
)

__all__ = [
    "ChatMessage",
    "ChunkView",
    "Completion",
    "DeleteResponse",
    "Document",
    "DocumentKind",
    "IndexResponse",
    "IndexStats",
    "QueryRequest",
    "QueryStage",
    "RAGAnswer",
    "SearchHit",
    "SearchRequest",
    "SearchResponse",
    "Source",
]
