"""Text extraction from uploaded file bytes."""

from __future__ import annotations

import io
import logging
from typing import Callable, Dict

from docx import Document as DocxDocument
from pdfminer.high_level import extract_text as pdf_extract_text

from ..core.errors import ExtractionError, UnsupportedFormatError

logger = logging.getLogger("docqa.extractor")

PDF_MIME = "application/pdf"
TEXT_MIME = "text/plain"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _extract_pdf(data: bytes) -> str:
    return pdf_extract_text(io.BytesIO(data)) or ""


def _extract_docx(data: bytes) -> str:
    document = DocxDocument(io.BytesIO(data))
    return "\n".join(paragraph.text for paragraph in document.paragraphs if paragraph.text)


def _extract_plain(data: bytes) -> str:
    if data.startswith((b"\xff\xfe", b"\xfe\xff")):
        return data.decode("utf-16")
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.info("Text file is not valid UTF-8; decoding as latin-1")
        return data.decode("latin-1")


_EXTRACTORS: Dict[str, Callable[[bytes], str]] = {
    PDF_MIME: _extract_pdf,
    TEXT_MIME: _extract_plain,
    DOCX_MIME: _extract_docx,
}

SUPPORTED_MIME_TYPES = frozenset(_EXTRACTORS)


def extract_text(data: bytes, mime_type: str) -> str:
    """
    Convert raw file bytes of a declared MIME type into plain text.

    Empty input yields an empty string; the caller decides whether that is
    fatal. Parsing failures are deterministic, so nothing is retried.

    Raises
    ------
    UnsupportedFormatError
        No extractor for ``mime_type``.
    ExtractionError
        The bytes could not be parsed; chained to the cause.
    """
    mime = (mime_type or "").split(";")[0].strip().lower()
    extractor = _EXTRACTORS.get(mime)
    if extractor is None:
        raise UnsupportedFormatError(f"Unsupported file type: {mime_type}")

    if not data:
        return ""

    try:
        return extractor(data)
    except Exception as exc:
        logger.warning("Failed to extract text from %s file: %s", mime, exc)
        raise ExtractionError(f"Failed to extract text from {mime}: {exc}") from exc
