"""Test package for DocChat.

Structure:
    - unit/: Chunking, embedding, index, context and service tests
    - integration/: HTTP endpoints exercised through the FastAPI app

Runs offline with deterministic hash embeddings and a fake generator.
Leverages pytest with pytest-check for soft assertions.
"""
