"""ASGI application for DocChat.

``create_app`` wires the RAG router, CORS and a health probe around a
RAGService held on ``app.state``. Tests pass their own service; the
module-level ``app`` builds the default one lazily on first request.
"""

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from docchat import __version__
from docchat.api.routes import router as rag_router
from docchat.rag.service import RAGService

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Release the in-memory index when the server stops.

    Args:
        app: The application whose ``state.rag_service`` is cleared.

    Yields:
        Control to the application while it serves requests.
    """
    logger.info(f"DocChat API {__version__} starting")
    yield
    service: RAGService | None = getattr(app.state, "rag_service", None)
    if service is None:
        logger.info("DocChat API stopped")
        return
    dropped = service.stats().total_chunks
    service.clear()
    logger.info(f"DocChat API stopped, dropped {dropped} indexed chunks")


def create_app(rag_service: RAGService | None = None) -> FastAPI:
    """Build the DocChat application.

    Args:
        rag_service: Service answering requests. When omitted, the
            environment-configured service is created on first use.

    Returns:
        The FastAPI application.
    """
    application = FastAPI(
        title="DocChat API",
        description=(
            "Question answering over uploaded documents. Parsed text and "
            "tabular documents are chunked into an in-memory vector index; "
            "answers cite the retrieved chunks they were grounded on."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    application.state.rag_service = rag_service

    application.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(rag_router)

    @application.get("/health")
    async def health_check() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "healthy", "service": "docchat"}

    return application


app = create_app()
