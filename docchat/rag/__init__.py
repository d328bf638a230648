"""Retrieval-augmented generation core.

Responsibilities:
    - Sentence-aware text chunking and schema-first table chunking
    - Hosted embeddings with a deterministic local fallback
    - In-memory vector index with per-document scoping
    - Context composition and grounded answer packaging

All state is in memory and scoped to a VectorIndex instance.
"""

from docchat.rag.chunker import Chunker
from docchat.rag.config import RAGConfig, get_rag_config
from docchat.rag.embedder import Embedder, HashEmbedder, ProviderEmbedder, build_embedder, similarity
from docchat.rag.service import NO_RESULTS_ANSWER, RAGService, build_rag_service
from docchat.rag.vector_index import SearchResult, VectorEntry, VectorIndex

__all__ = [
    "NO_RESULTS_ANSWER",
    "Chunker",
    "Embedder",
    "HashEmbedder",
    "ProviderEmbedder",
    "RAGConfig",
    "RAGService",
    "SearchResult",
    "VectorEntry",
    "VectorIndex",
    "build_embedder",
    "build_rag_service",
    "get_rag_config",
    "similarity",
]
