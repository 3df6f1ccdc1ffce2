import io

import pytest
from docx import Document as DocxDocument

from docqa_server.core.errors import ExtractionError, UnsupportedFormatError
from docqa_server.ingestion.extractor import (
    DOCX_MIME,
    PDF_MIME,
    SUPPORTED_MIME_TYPES,
    TEXT_MIME,
    extract_text,
)


def _docx_bytes(*paragraphs: str) -> bytes:
    document = DocxDocument()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def test_supported_types():
    assert SUPPORTED_MIME_TYPES == {PDF_MIME, TEXT_MIME, DOCX_MIME}


def test_plain_text_utf8():
    assert extract_text("Grüße aus Köln".encode("utf-8"), TEXT_MIME) == "Grüße aus Köln"


def test_plain_text_with_charset_parameter():
    assert extract_text(b"hello", "text/plain; charset=utf-8") == "hello"


def test_plain_text_utf16_bom():
    assert extract_text("hello".encode("utf-16"), TEXT_MIME) == "hello"


def test_plain_text_latin1_fallback():
    assert extract_text("café".encode("latin-1"), TEXT_MIME) == "café"


def test_extraction_is_idempotent():
    data = b"The same bytes twice."
    assert extract_text(data, TEXT_MIME) == extract_text(data, TEXT_MIME)


def test_empty_input_yields_empty_string():
    assert extract_text(b"", PDF_MIME) == ""


def test_unsupported_type_rejected():
    with pytest.raises(UnsupportedFormatError):
        extract_text(b"\x89PNG", "image/png")


def test_docx_paragraphs_joined_by_newline():
    data = _docx_bytes("First paragraph", "", "Second paragraph")
    assert extract_text(data, DOCX_MIME) == "First paragraph\nSecond paragraph"


def test_corrupt_docx_raises_extraction_error():
    with pytest.raises(ExtractionError) as excinfo:
        extract_text(b"definitely not a zip archive", DOCX_MIME)
    assert excinfo.value.__cause__ is not None
