"""DocChat - Retrieval-Augmented Generation over uploaded documents.

Answers natural-language questions about text and tabular documents,
grounded in retrieved chunks with cited sources.

Components:
    - rag: chunking, embeddings, in-memory vector index, retrieval pipeline
    - agent: LLM generation via Agno
    - api: HTTP endpoints exposing indexing, search and question answering
    - models: Request/response schemas
"""

__version__ = "0.1.0"
