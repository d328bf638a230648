"""RAG endpoints for indexing, search and question answering.

Documents arrive already parsed (text or rows + columns); file upload and
format extraction live outside this service.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from docchat.agent.generator import AgnoGenerator
from docchat.models.schemas import (
    ChunkView,
    DeleteResponse,
    Document,
    IndexResponse,
    IndexStats,
    QueryRequest,
    RAGAnswer,
    SearchRequest,
    SearchResponse,
)
from docchat.rag.service import RAGService, build_rag_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rag", tags=["rag"])


async def get_rag_service(request: Request) -> RAGService:
    """Return the application's RAG service, creating the default one on first use.

    The default service creates its Agno generator on the first question,
    so indexing and search need no LLM credentials. Creation happens on
    the event loop, so concurrent first requests share one service.

    Raises:
        HTTPException: 503 if the retrieval settings are invalid.
    """
    service: RAGService | None = getattr(request.app.state, "rag_service", None)
    if service is None:
        try:
            service = build_rag_service(generator_factory=AgnoGenerator)
        except ValueError as e:
            logger.error(f"RAG service unavailable: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Retrieval service is not configured",
            ) from e
        request.app.state.rag_service = service
    return service


def _gateway_timeout(action: str, e: TimeoutError) -> HTTPException:
    logger.error(f"{action} timed out: {e}")
    return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=f"{action} timed out")


@router.post("/documents", response_model=IndexResponse)
async def index_document(
    document: Document,
    replace: bool = False,
    timeout: float | None = Query(None, gt=0, le=600),
    service: RAGService = Depends(get_rag_service),
) -> IndexResponse:
    """Index a parsed document for retrieval.

    Args:
        document: Text or tabular document.
        replace: Drop previously indexed chunks of the same id first.
        timeout: Seconds allowed for embedding the chunks.

    Returns:
        IndexResponse with the number of chunks created.

    Raises:
        504: Embedding did not finish within ``timeout``.
    """
    try:
        if replace:
            chunk_count = await service.reindex(document, timeout=timeout)
        else:
            chunk_count = await service.index(document, timeout=timeout)
    except TimeoutError as e:
        raise _gateway_timeout("Indexing", e) from e

    return IndexResponse(
        document_id=document.id,
        document_name=document.name,
        chunks_created=chunk_count,
        message=f"Document indexed successfully with {chunk_count} chunks",
    )


@router.get("/documents/{document_id}/chunks", response_model=list[ChunkView])
async def list_chunks(
    document_id: str,
    service: RAGService = Depends(get_rag_service),
) -> list[ChunkView]:
    """List a document's chunks in chunk order (empty if not indexed)."""
    return [
        ChunkView(id=e.id, chunk_index=e.chunk_index, content=e.content, metadata=e.metadata)
        for e in service.get_chunks_for_document(document_id)
    ]


@router.delete("/documents/{document_id}", response_model=DeleteResponse)
async def delete_document(
    document_id: str,
    service: RAGService = Depends(get_rag_service),
) -> DeleteResponse:
    """Delete a document's chunks. Deleting an unknown document removes nothing."""
    return DeleteResponse(document_id=document_id, chunks_deleted=service.delete_document(document_id))


@router.post("/query", response_model=RAGAnswer)
async def query(
    request: QueryRequest,
    service: RAGService = Depends(get_rag_service),
) -> RAGAnswer:
    """Answer a question from retrieved document chunks.

    Raises:
        502: The answer generator failed.
        503: No answer generator can be configured (missing API key).
        504: Retrieval and generation did not finish within ``timeout``.
    """
    try:
        service.load_generator()
    except ValueError as e:
        logger.error(f"Answer generator unavailable: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Answer generator is not configured",
        ) from e

    try:
        return await service.query(
            request.question,
            document_id=request.document_id,
            top_k=request.top_k,
            history=request.history,
            timeout=request.timeout,
        )
    except TimeoutError as e:
        raise _gateway_timeout("Answer generation", e) from e
    except Exception as e:
        logger.error(f"Answer generation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Answer generation failed",
        ) from e


@router.post("/search", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    service: RAGService = Depends(get_rag_service),
) -> SearchResponse:
    """Semantic search over indexed chunks without generating an answer."""
    try:
        hits = await service.search(
            request.query,
            document_id=request.document_id,
            top_k=request.top_k,
            timeout=request.timeout,
        )
    except TimeoutError as e:
        raise _gateway_timeout("Search", e) from e
    return SearchResponse(results=hits, total_results=len(hits))


@router.get("/stats", response_model=IndexStats)
async def stats(service: RAGService = Depends(get_rag_service)) -> IndexStats:
    """Report indexed document and chunk counts."""
    return service.stats()


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def reset(service: RAGService = Depends(get_rag_service)) -> None:
    """Drop every indexed document."""
    service.clear()
