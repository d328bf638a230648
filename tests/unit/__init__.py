"""Unit tests for individual components in isolation.

Coverage:
    - rag/: Chunker, embedders, vector index, context and RAG service
    - agent/: Generator configuration and Agno run handling

Agno and OpenAI classes are patched out; no network access is needed.
"""
