"""HTTP surface for the RAG service.

Endpoints:
    - GET /health: Service health status
    - POST /rag/documents: Index a parsed document
    - GET /rag/documents/{id}/chunks: List a document's chunks
    - DELETE /rag/documents/{id}: Remove a document's chunks
    - POST /rag/query: Grounded question answering
    - POST /rag/search: Semantic search without generation
    - GET /rag/stats: Index size summary
    - DELETE /rag: Drop every indexed document
"""

from docchat.api.app import app, create_app

__all__ = ["app", "create_app"]
