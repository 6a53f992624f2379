"""Document chunker - deterministic text splitting."""

import re
from uuid import UUID

from backend.app.models.policy import ChunkDraft

_SENTENCE_END_RE = re.compile(r"(?<=[.?!])\s+")


def _hard_split(text: str, max_chars: int) -> list[str]:
    """Split text with no usable breaks into pieces of at most max_chars.

    Cuts at the last whitespace inside the window when there is one,
    otherwise exactly at max_chars.
    """
    pieces: list[str] = []
    remaining = text.strip()

    while len(remaining) > max_chars:
        window = remaining[: max_chars + 1]
        cut = window.rfind(" ")
        if cut <= 0:
            cut = max_chars
        piece = remaining[:cut].strip()
        if piece:
            pieces.append(piece)
        remaining = remaining[cut:].strip()

    if remaining:
        pieces.append(remaining)

    return pieces


def _split_sentences(paragraph: str, max_chars: int) -> list[str]:
    """Split an oversized paragraph into sentences no longer than max_chars."""
    sentences: list[str] = []
    for sentence in _SENTENCE_END_RE.split(paragraph):
        sentence = " ".join(sentence.split())
        if not sentence:
            continue
        if len(sentence) > max_chars:
            sentences.extend(_hard_split(sentence, max_chars))
        else:
            sentences.append(sentence)
    return sentences


def chunk_document(
    text: str,
    *,
    max_chars: int = 1000,
) -> list[tuple[int, str]]:
    """Chunk document text into ordered segments.

    Pure function with no I/O or randomness. Splits text into chunks
    that respect paragraph boundaries while staying under max_chars.

    Args:
        text: Raw document text to chunk
        max_chars: Maximum characters per chunk (default 1000)

    Returns:
        List of (index, chunk_text) tuples where:
        - index is 0-based, contiguous
        - chunk_text is stripped, non-empty and at most max_chars long

    Strategy:
        1. Normalize line endings to \\n
        2. Split on blank lines to get paragraphs
        3. Pack paragraphs into chunks <= max_chars
        4. If a single paragraph exceeds max_chars, split it by sentences
        5. If a single sentence still exceeds max_chars, cut it at whitespace
           or, failing that, at exactly max_chars
        6. Deterministic: same input, same output
    """
    if max_chars < 1:
        raise ValueError("max_chars must be positive")

    if not text or not text.strip():
        return []

    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    paragraphs = [p.strip() for p in re.split(r"\n\s*\n", normalized) if p.strip()]

    chunks: list[tuple[int, str]] = []
    current_parts: list[str] = []
    current_length = 0
    separator = "\n\n"

    def flush_chunk() -> None:
        """Flush current chunk to results."""
        nonlocal current_length, separator
        if current_parts:
            chunks.append((len(chunks), separator.join(current_parts)))
            current_parts.clear()
        current_length = 0
        separator = "\n\n"

    def append_part(part: str, sep: str) -> None:
        nonlocal current_length, separator
        if current_parts and (separator != sep or current_length + len(sep) + len(part) > max_chars):
            flush_chunk()
        if current_parts:
            current_length += len(sep)
        else:
            separator = sep
        current_parts.append(part)
        current_length += len(part)

    for para in paragraphs:
        if len(para) <= max_chars:
            append_part(para, "\n\n")
            continue

        # Oversized paragraph: pack its sentences separately
        flush_chunk()
        for sentence in _split_sentences(para, max_chars):
            append_part(sentence, " ")
        flush_chunk()

    flush_chunk()

    return chunks


def build_chunk_drafts(
    document_id: UUID,
    text: str,
    *,
    title: str,
    document_status: str,
    max_chars: int = 1000,
) -> list[ChunkDraft]:
    """Chunk text into drafts ready for persistence.

    Metadata mirrors what search results display: document title and
    status at ingest time plus a 1-based position.
    """
    pieces = chunk_document(text, max_chars=max_chars)
    total = len(pieces)
    return [
        ChunkDraft(
            document_id=document_id,
            chunk_index=index,
            chunk_text=chunk_text,
            metadata={
                "title": title,
                "document_status": document_status,
                "chunk_number": index + 1,
                "total_chunks": total,
            },
        )
        for index, chunk_text in pieces
    ]
