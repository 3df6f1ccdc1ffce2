"""
Text Chunking

Splits extracted document text into bounded, overlapping segments ready for
embedding. Two strategies are available:

- ``sentence`` (default): whitespace-normalized sliding window that snaps the
  cut to the last sentence boundary, then the last space, then the hard limit.
- ``recursive``: LangChain's RecursiveCharacterTextSplitter over the raw text,
  each piece whitespace-normalized afterwards.
"""

from __future__ import annotations

import re
from typing import List, Optional

from langchain_text_splitters import RecursiveCharacterTextSplitter

from ..config import Settings, settings as default_settings

_WHITESPACE_RE = re.compile(r"\s+")

# Sentence-ending punctuation, one whitespace char, then an uppercase letter.
_SENTENCE_BREAK_RE = re.compile(r"[.!?]\s[A-Z]")


def normalize_whitespace(text: str) -> str:
    """Collapse every whitespace run to a single space and trim."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def _validate(size: int, overlap: int) -> None:
    if size <= 0:
        raise ValueError("size must be a positive integer")
    if overlap < 0:
        raise ValueError("overlap must be a non-negative integer")
    if overlap >= size:
        raise ValueError("overlap must be smaller than size")


def _last_sentence_cut(window: str, min_cut: int) -> Optional[int]:
    """
    Offset just past the punctuation and its following space of the last
    sentence break in ``window``, or None. Cuts at or below ``min_cut`` are
    ignored so the next window still starts past the current one.
    """
    cut = None
    for match in _SENTENCE_BREAK_RE.finditer(window):
        candidate = match.start() + 2
        if candidate > min_cut:
            cut = candidate
    return cut


def chunk_text(text: str, size: int = 2000, overlap: int = 400) -> List[str]:
    """
    Split ``text`` into overlapping chunks of at most ``size`` characters.

    Consecutive chunks overlap by roughly ``overlap`` characters; the exact
    amount varies because cuts snap to sentence and word boundaries.
    """
    _validate(size, overlap)

    clean = normalize_whitespace(text)
    if not clean:
        return []
    if len(clean) <= size:
        return [clean]

    length = len(clean)
    chunks: List[str] = []
    start = 0

    while start < length:
        end = start + size

        if end < length:
            cut = _last_sentence_cut(clean[start:end], overlap)
            if cut is not None:
                end = start + cut
            else:
                last_space = clean.rfind(" ", start, end)
                if last_space - start > overlap:
                    end = last_space
        else:
            end = length

        piece = clean[start:end].strip()
        if piece:
            chunks.append(piece)

        if end >= length:
            break

        next_start = end - overlap
        if next_start <= start:
            next_start = end
        start = next_start

    return chunks


def recursive_chunk_text(text: str, size: int = 2000, overlap: int = 400) -> List[str]:
    """Chunk with LangChain's recursive splitter, normalizing each piece."""
    _validate(size, overlap)

    splitter = RecursiveCharacterTextSplitter(
        chunk_size=size,
        chunk_overlap=overlap,
        length_function=len,
        separators=["\n\n", "\n", ".", " ", ""],
    )
    pieces = (normalize_whitespace(piece) for piece in splitter.split_text(text or ""))
    return [piece for piece in pieces if piece]


def split_text(text: str, settings: Settings | None = None) -> List[str]:
    """Chunk ``text`` using the configured strategy, size and overlap."""
    settings = settings or default_settings
    if settings.chunking_strategy == "recursive":
        return recursive_chunk_text(text, settings.chunk_size, settings.chunk_overlap)
    return chunk_text(text, settings.chunk_size, settings.chunk_overlap)
