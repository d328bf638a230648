"""Prompt context composition for grounded answers.

Turns ranked search results into a labelled, size-bounded context block
and the source previews returned alongside an answer.
"""

from collections.abc import Sequence

from docchat.models.schemas import DocumentKind, Source
from docchat.rag.vector_index import SearchResult, VectorEntry

SOURCE_DELIMITER = "\n\n---\n\n"
PREVIEW_ELLIPSIS = "..."

SYSTEM_PROMPT_TEMPLATE = """You are a document assistant. Answer questions based ONLY on the provided context.

Rules:
- Use only information from the context to answer
- If the context doesn't contain the answer, say so explicitly
- Cite sources using their [Source N] labels
- Be precise and factual
- Use markdown formatting

Context:
{context}"""


def is_schema_chunk(entry: VectorEntry) -> bool:
    """Whether an entry is the leading schema chunk of a tabular document."""
    return entry.chunk_index == 0 and entry.metadata.get("type") == DocumentKind.TABULAR.value


def source_label(position: int, score: float) -> str:
    return f"[Source {position}] (Relevance: {score * 100:.1f}%)"


def _render(results: Sequence[SearchResult]) -> str:
    return SOURCE_DELIMITER.join(
        f"{source_label(i, r.score)}\n{r.entry.content}" for i, r in enumerate(results, start=1)
    )


def select_within_budget(results: Sequence[SearchResult], max_chars: int) -> list[SearchResult]:
    """Drop the lowest-ranked results until the rendered context fits.

    Schema chunks are never dropped and at least one result is always kept,
    so the context can still exceed ``max_chars`` in degenerate cases.
    """
    kept = list(results)
    while len(kept) > 1 and len(_render(kept)) > max_chars:
        for i in range(len(kept) - 1, -1, -1):
            if not is_schema_chunk(kept[i].entry):
                del kept[i]
                break
        else:
            break
    return kept


def build_context(results: Sequence[SearchResult]) -> str:
    """Render results as ``[Source N] (Relevance: x%)`` blocks in rank order."""
    return _render(results)


def build_system_prompt(context: str) -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(context=context)


def preview(text: str, limit: int) -> str:
    """Truncate text to ``limit`` characters, marking truncation with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit] + PREVIEW_ELLIPSIS


def to_sources(results: Sequence[SearchResult], preview_chars: int) -> list[Source]:
    return [
        Source(
            content=preview(r.entry.content, preview_chars),
            score=r.score,
            chunk_index=r.entry.chunk_index,
        )
        for r in results
    ]
