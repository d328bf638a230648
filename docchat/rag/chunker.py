"""Document chunking for retrieval.

Splits free text on sentence boundaries with a small word overlap between
consecutive chunks, and renders tables as a schema chunk, self-describing
row batches and an optional summary statistics chunk.

Chunking is a pure function of the input and the configured sizes:
re-chunking the same document yields identical chunks.
"""

import math
from collections.abc import Iterator, Mapping, Sequence
from fractions import Fraction
from typing import Any

from docchat.rag.config import RAGConfig, get_rag_config

SENTENCE_TERMINATORS = ".!?"


def iter_sentences(text: str) -> Iterator[str]:
    """Yield the sentences of ``text`` lazily, in order.

    A sentence ends at ``.``, ``!`` or ``?`` followed by whitespace; the
    whitespace run between sentences is consumed. Text after the last
    terminator is yielded as a final sentence. Blank sentences are skipped.
    """
    start = 0
    i = 0
    n = len(text)
    while i < n:
        if text[i] in SENTENCE_TERMINATORS and i + 1 < n and text[i + 1].isspace():
            sentence = text[start : i + 1].strip()
            i += 1
            while i < n and text[i].isspace():
                i += 1
            if sentence:
                yield sentence
            start = i
        else:
            i += 1

    tail = text[start:].strip()
    if tail:
        yield tail


def window_slices(text: str, size: int, overlap: int) -> list[str]:
    """Slice text into fixed-size character windows sharing ``overlap`` chars."""
    step = size - overlap
    windows: list[str] = []
    for start in range(0, len(text), step):
        windows.append(text[start : start + size])
        if start + size >= len(text):
            break
    return windows


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return _format_number(value)
    return str(value)


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


class Chunker:
    """Splits documents into retrieval-sized chunks.

    Attributes:
        chunk_size: Maximum characters per text chunk.
        chunk_overlap: Characters shared by consecutive fixed-size windows.
        overlap_words: Trailing words carried into the next sentence chunk.
        rows_per_chunk: Table rows per row chunk.
        include_statistics: Whether to append a statistics chunk for tables.
    """

    def __init__(self, config: RAGConfig | None = None) -> None:
        config = config or get_rag_config()
        self.chunk_size = config.chunk_size
        self.chunk_overlap = config.chunk_overlap
        self.overlap_words = config.overlap_words
        self.rows_per_chunk = config.rows_per_chunk
        self.include_statistics = config.include_statistics

    def _pieces(self, text: str) -> Iterator[str]:
        """Sentences, with any sentence longer than a chunk cut into windows."""
        for sentence in iter_sentences(text):
            if len(sentence) > self.chunk_size:
                yield from window_slices(sentence, self.chunk_size, self.chunk_overlap)
            else:
                yield sentence

    def _overlap_seed(self, chunk: str) -> str:
        if self.overlap_words == 0:
            return ""
        return " ".join(chunk.split()[-self.overlap_words :])

    def chunk_text(self, text: str) -> list[str]:
        """Split free text into overlapping chunks of at most ``chunk_size`` chars.

        Sentences are accumulated greedily. When the next sentence would
        overflow the current chunk, the chunk is closed and the next one
        starts with the last ``overlap_words`` words of the closed chunk,
        provided they fit alongside the sentence.

        Args:
            text: Document text.

        Returns:
            Ordered list of chunk strings (empty for blank text).
        """
        chunks: list[str] = []
        current = ""

        for piece in self._pieces(text):
            if not current:
                current = piece
            elif len(current) + 1 + len(piece) <= self.chunk_size:
                current = f"{current} {piece}"
            else:
                chunks.append(current)
                seed = self._overlap_seed(current)
                if seed and len(seed) + 1 + len(piece) <= self.chunk_size:
                    current = f"{seed} {piece}"
                else:
                    current = piece

        if current:
            chunks.append(current)

        return chunks

    def chunk_tabular(
        self,
        rows: Sequence[Mapping[str, Any]],
        columns: Sequence[str],
    ) -> list[str]:
        """Split table rows into schema, row and statistics chunks.

        The first chunk always describes the columns and the row count.
        Each row chunk renders ``rows_per_chunk`` rows as
        ``Row N: column: value, ...`` lines. A final statistics chunk is
        added when enabled and at least one column holds numeric values.

        Args:
            rows: Table records keyed by column name.
            columns: Column names in display order.

        Returns:
            Ordered list of chunk strings, schema chunk first.
        """
        chunks = [f"Dataset Schema:\nColumns: {', '.join(columns)}\nTotal Rows: {len(rows)}"]

        for start in range(0, len(rows), self.rows_per_chunk):
            lines = []
            for offset, row in enumerate(rows[start : start + self.rows_per_chunk]):
                cells = ", ".join(f"{col}: {_format_value(row.get(col))}" for col in columns)
                lines.append(f"Row {start + offset + 1}: {cells}")
            chunks.append("\n".join(lines))

        if self.include_statistics:
            stats = self._statistics(rows, columns)
            if stats:
                chunks.append("Summary Statistics:\n" + "\n".join(stats))

        return chunks

    @staticmethod
    def _statistics(rows: Sequence[Mapping[str, Any]], columns: Sequence[str]) -> list[str]:
        lines = []
        for col in columns:
            values = [row.get(col) for row in rows if _is_numeric(row.get(col))]
            if not values:
                continue
            # Exact arithmetic; JSON integers can exceed the float range
            total = sum(Fraction(v) for v in values)
            lines.append(
                f"{col}: Sum={total:.2f}, Avg={total / len(values):.2f}, "
                f"Min={_format_number(min(values))}, Max={_format_number(max(values))}"
            )
        return lines
