"""Integration tests for components working together as a system.

Coverage:
    - API endpoints with real HTTP requests through ASGITransport
    - Indexing, search and question answering over the in-memory index
    - Live answers from the configured LLM (skipped without OPENAI_API_KEY)
"""
