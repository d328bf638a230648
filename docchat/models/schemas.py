from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class DocumentKind(str, Enum):
    """How a document's content is stored."""

    TEXT = "text"
    TABULAR = "tabular"


class QueryStage(str, Enum):
    """Progress of a single RAG query."""

    RECEIVED = "received"
    RETRIEVING = "retrieving"
    RETRIEVED = "retrieved"
    GENERATING = "generating"
    DONE = "done"


class Document(BaseModel):
    """A parsed document ready for indexing.

    Attributes:
        id: Stable document identifier.
        name: Display name, usually the uploaded filename.
        kind: Free text or tabular content.
        content: Raw text (text documents).
        rows: Row records keyed by column name (tabular documents).
        columns: Column names in display order (tabular documents).
        file_type: Original file format (csv, xlsx, pdf, txt, docx).
        size: Original file size in bytes.
        metadata: Free-form fields copied onto every chunk.
    """

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1, description="Document identifier")
    name: str = Field(..., min_length=1, description="Document display name")
    kind: DocumentKind = Field(DocumentKind.TEXT, description="'text' or 'tabular'")
    content: str | None = Field(None, description="Text content for text documents")
    rows: list[dict[str, Any]] | None = Field(None, description="Row records for tabular documents")
    columns: list[str] | None = Field(None, description="Column names for tabular documents")
    file_type: str | None = Field(None, description="Original file format")
    size: int | None = Field(None, ge=0, description="Original file size in bytes")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Extra source metadata")

    @model_validator(mode="after")
    def check_payload(self) -> "Document":
        """Text documents need content; tabular documents need columns."""
        if self.kind is DocumentKind.TEXT and self.content is None:
            raise ValueError("text documents require 'content'")
        if self.kind is DocumentKind.TABULAR and self.columns is None:
            raise ValueError("tabular documents require 'columns'")
        return self


class ChatMessage(BaseModel):
    """A single chat message in the conversation.

    Attributes:
        role: The speaker identifier (user, assistant, or system).
        content: The message text.
    """

    role: str = Field(..., description="Message role: 'user', 'assistant', or 'system'")
    content: str = Field(..., description="The message content")


class Completion(BaseModel):
    """Output of a generation call."""

    text: str
    tokens_used: int = Field(0, ge=0)


class Source(BaseModel):
    """A retrieved chunk cited by an answer.

    Attributes:
        content: Preview of the chunk text.
        score: Cosine similarity to the question.
        chunk_index: Position of the chunk within its document.
    """

    content: str
    score: float
    chunk_index: int


class RAGAnswer(BaseModel):
    """Grounded answer with sources and timing.

    Attributes:
        answer: Generated answer text.
        sources: Cited chunks, highest score first ("Source 1" first).
        tokens_used: Tokens reported by the generator.
        retrieval_ms: Time spent embedding and searching.
        generation_ms: Time spent in the generator.
    """

    answer: str
    sources: list[Source] = Field(default_factory=list)
    tokens_used: int = Field(0, ge=0)
    retrieval_ms: int = Field(0, ge=0)
    generation_ms: int = Field(0, ge=0)


class SearchHit(BaseModel):
    """A semantic search result without generation."""

    content: str
    score: float
    document_id: str
    chunk_index: int
    metadata: dict[str, Any] = Field(default_factory=dict)


class IndexStats(BaseModel):
    """Vector index size summary."""

    total_documents: int = Field(..., ge=0)
    total_chunks: int = Field(..., ge=0)
    avg_chunks_per_document: float = Field(..., ge=0)


class QueryRequest(BaseModel):
    """Request payload for question answering.

    Attributes:
        question: User's question.
        document_id: Optional document to restrict retrieval to.
        top_k: Number of chunks to retrieve.
        history: Earlier conversation turns.
        timeout: Seconds allowed for retrieval and answer generation.
    """

    question: str = Field(..., min_length=1)
    document_id: str | None = None
    top_k: int | None = Field(None, ge=1, le=100)
    history: list[ChatMessage] = Field(default_factory=list)
    timeout: float | None = Field(None, gt=0, le=600)

    @field_validator("question", mode="before")
    @classmethod
    def strip_question(cls, v: str) -> str:
        """Strip whitespace from question before validation."""
        if isinstance(v, str):
            return v.strip()
        return v


class SearchRequest(BaseModel):
    """Request payload for semantic search.

    Attributes:
        query: Search text.
        document_id: Optional document to restrict results to.
        top_k: Maximum number of hits.
        timeout: Seconds allowed for embedding the query.
    """

    query: str = Field(..., min_length=1)
    document_id: str | None = None
    top_k: int | None = Field(None, ge=1, le=100)
    timeout: float | None = Field(None, gt=0, le=600)

    @field_validator("query", mode="before")
    @classmethod
    def strip_query(cls, v: str) -> str:
        """Strip whitespace from query before validation."""
        if isinstance(v, str):
            return v.strip()
        return v


class SearchResponse(BaseModel):
    """Semantic search results."""

    results: list[SearchHit]
    total_results: int


class IndexResponse(BaseModel):
    """Response after indexing a document."""

    document_id: str
    document_name: str
    chunks_created: int
    message: str


class DeleteResponse(BaseModel):
    """Response after deleting a document's chunks."""

    document_id: str
    chunks_deleted: int


class ChunkView(BaseModel):
    """A stored chunk as listed for a document."""

    id: str
    chunk_index: int
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
