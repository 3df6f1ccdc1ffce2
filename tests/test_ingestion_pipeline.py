"""
Ingestion pipeline tests with in-memory repositories and mocked gateways.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from docqa_server.config import Settings
from docqa_server.core.errors import (
    FailureNotRecorded,
    ProcessingFailure,
    ProviderError,
    ProviderUnavailableError,
    QuotaExceededError,
    RateLimitedError,
)
from docqa_server.db.models import DocumentStatus
from docqa_server.embeddings.embedder import Embedder
from docqa_server.ingestion.models import IngestionJob
from docqa_server.ingestion.pipeline import IngestionPipeline
from docqa_server.llm.client import LLMClient

# Five sentences of ~60 chars each; with size=80 every sentence is one chunk
FIVE_CHUNK_TEXT = " ".join(
    f"Paragraph {i} explains one specific part of the refund policy." for i in range(5)
)

TEST_SETTINGS = Settings(chunk_size=80, chunk_overlap=10, step_timeout_seconds=5)

VECTOR = [0.1, 0.2, 0.3]


def _embedder(side_effect=None) -> AsyncMock:
    embedder = AsyncMock(spec=Embedder)
    if side_effect is None:
        embedder.embed.return_value = VECTOR
    else:
        embedder.embed.side_effect = side_effect
    return embedder


def _summarizer(model: str, result=None, error=None) -> AsyncMock:
    client = AsyncMock(spec=LLMClient)
    client.model = model
    if error is not None:
        client.complete.side_effect = error
    else:
        client.complete.return_value = result
    return client


@pytest.fixture
def make_pipeline(documents, chunks, blobs):
    def _make(embedder=None, summarizers=(), settings=TEST_SETTINGS):
        return IngestionPipeline(
            documents=documents,
            chunks=chunks,
            blobs=blobs,
            embedder=embedder or _embedder(),
            summarizers=summarizers,
            settings=settings,
        )
    return _make


@pytest.fixture
def uploaded(documents, blobs):
    """A queued text document whose blob holds FIVE_CHUNK_TEXT."""
    document = documents.add()
    blobs.blobs[document.storage_path] = FIVE_CHUNK_TEXT.encode()
    return document


def _job(document, retry=False) -> IngestionJob:
    return IngestionJob.for_document(document, retry=retry)


def test_fixture_text_yields_five_chunks():
    from docqa_server.ingestion.chunker import split_text
    assert len(split_text(FIVE_CHUNK_TEXT, TEST_SETTINGS)) == 5


# ---------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_all_chunks_persisted_and_completed(make_pipeline, uploaded, documents, chunks):
    embedder = _embedder()
    result = await make_pipeline(embedder=embedder).run(_job(uploaded))

    assert result.chunk_count == 5
    assert result.failed_chunks == []
    assert chunks.indexes(uploaded.id) == [0, 1, 2, 3, 4]
    assert uploaded.status == DocumentStatus.COMPLETED.value
    assert uploaded.error_message is None
    assert embedder.embed.await_count == 5

    statuses = [s for d, s in documents.status_history if d == uploaded.id]
    assert statuses == ["processing", "completed"]


# ---------------------------------------------------------------------
# Two-tier failure policy
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_quota_error_stops_immediately(make_pipeline, uploaded, chunks):
    embedder = _embedder([VECTOR, VECTOR, QuotaExceededError("insufficient_quota")])

    with pytest.raises(ProcessingFailure):
        await make_pipeline(embedder=embedder).run(_job(uploaded))

    assert chunks.indexes(uploaded.id) == [0, 1]
    assert embedder.embed.await_count == 3
    assert uploaded.status == DocumentStatus.FAILED.value
    assert uploaded.error_message.startswith("Embedding quota exceeded:")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, prefix",
    [
        (RateLimitedError("slow down"), "Embedding provider rate limited:"),
        (ProviderUnavailableError("no key"), "Embedding provider unavailable:"),
    ],
)
async def test_other_hard_stops_are_distinguishable(make_pipeline, uploaded, chunks, error, prefix):
    embedder = _embedder([VECTOR, error])

    with pytest.raises(ProcessingFailure):
        await make_pipeline(embedder=embedder).run(_job(uploaded))

    assert chunks.indexes(uploaded.id) == [0]
    assert uploaded.error_message.startswith(prefix)


@pytest.mark.asyncio
async def test_generic_error_skips_chunk(make_pipeline, uploaded, chunks):
    embedder = _embedder([VECTOR, VECTOR, ProviderError("HTTP 500"), VECTOR, VECTOR])

    result = await make_pipeline(embedder=embedder).run(_job(uploaded))

    assert chunks.indexes(uploaded.id) == [0, 1, 3, 4]
    assert result.chunk_count == 4
    assert result.failed_chunks == [2]
    assert uploaded.status == DocumentStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_failed_insert_skips_chunk(make_pipeline, uploaded, chunks):
    chunks.fail_on_insert = {1}

    result = await make_pipeline().run(_job(uploaded))

    assert chunks.indexes(uploaded.id) == [0, 2, 3, 4]
    assert result.failed_chunks == [1]
    assert uploaded.status == DocumentStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_zero_successful_chunks_fails(make_pipeline, uploaded, chunks):
    embedder = _embedder(ProviderError("HTTP 500"))

    with pytest.raises(ProcessingFailure):
        await make_pipeline(embedder=embedder).run(_job(uploaded))

    assert chunks.indexes(uploaded.id) == []
    assert uploaded.status == DocumentStatus.FAILED.value
    assert uploaded.error_message == "Failed to process any chunks from the document"


@pytest.mark.asyncio
async def test_hanging_embedding_call_is_bounded(make_pipeline, uploaded, chunks):
    async def slow_then_fast(text):
        if "Paragraph 0" in text:
            await asyncio.sleep(10)
        return VECTOR

    settings = Settings(chunk_size=80, chunk_overlap=10, step_timeout_seconds=0.2)
    result = await make_pipeline(embedder=_embedder(slow_then_fast), settings=settings).run(
        _job(uploaded)
    )

    assert result.failed_chunks == [0]
    assert chunks.indexes(uploaded.id) == [1, 2, 3, 4]


# ---------------------------------------------------------------------
# Early failures
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_missing_blob_fails_document(make_pipeline, documents):
    document = documents.add()

    with pytest.raises(ProcessingFailure):
        await make_pipeline().run(_job(document))

    assert document.status == DocumentStatus.FAILED.value
    assert document.error_message.startswith("File not found in storage")


@pytest.mark.asyncio
async def test_empty_blob_fails_document(make_pipeline, documents, blobs):
    document = documents.add()
    blobs.blobs[document.storage_path] = b""

    with pytest.raises(ProcessingFailure):
        await make_pipeline().run(_job(document))

    assert document.error_message == "Downloaded file is empty"


@pytest.mark.asyncio
async def test_unstored_failure_is_written_on_next_delivery(make_pipeline, documents, blobs):
    document = documents.add()
    blobs.blobs[document.storage_path] = b""
    job = _job(document)

    documents.mark_failed = AsyncMock(side_effect=ConnectionError("db down"))
    with pytest.raises(FailureNotRecorded):
        await make_pipeline().run(job)

    assert document.status == DocumentStatus.PROCESSING.value
    assert job.unrecorded_failure == "Downloaded file is empty"

    del documents.mark_failed
    with pytest.raises(ProcessingFailure):
        await make_pipeline().run(job)

    assert document.status == DocumentStatus.FAILED.value
    assert document.error_message == "Downloaded file is empty"
    assert job.unrecorded_failure is None
    # The second delivery did not claim or process again
    assert [s for d, s in documents.status_history if d == document.id] == [
        DocumentStatus.PROCESSING.value,
        DocumentStatus.FAILED.value,
    ]


@pytest.mark.asyncio
async def test_whitespace_only_text_fails_document(make_pipeline, documents, blobs):
    document = documents.add()
    blobs.blobs[document.storage_path] = b"   \n\t  "

    with pytest.raises(ProcessingFailure):
        await make_pipeline().run(_job(document))

    assert document.error_message == "Failed to extract text from document or document is empty"


@pytest.mark.asyncio
async def test_corrupt_file_fails_with_extraction_message(make_pipeline, documents, blobs):
    document = documents.add(
        name="broken.docx",
        mime_type="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    )
    blobs.blobs[document.storage_path] = b"not a docx"

    with pytest.raises(ProcessingFailure):
        await make_pipeline().run(_job(document))

    assert document.error_message.startswith("Error processing file:")


# ---------------------------------------------------------------------
# Claiming and retries
# ---------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status",
    [DocumentStatus.PROCESSING, DocumentStatus.COMPLETED, DocumentStatus.FAILED],
)
async def test_unclaimable_document_is_skipped(make_pipeline, documents, blobs, status):
    document = documents.add(status=status)
    blobs.blobs[document.storage_path] = FIVE_CHUNK_TEXT.encode()
    embedder = _embedder()

    result = await make_pipeline(embedder=embedder).run(_job(document))

    assert result.skipped is True
    assert document.status == status.value
    embedder.embed.assert_not_awaited()


@pytest.mark.asyncio
async def test_other_users_document_is_skipped(make_pipeline, uploaded):
    job = _job(uploaded)
    job.user_id = "someone-else"

    result = await make_pipeline().run(job)

    assert result.skipped is True
    assert uploaded.status == DocumentStatus.QUEUED.value


@pytest.mark.asyncio
async def test_retry_replaces_previous_chunks(make_pipeline, uploaded, chunks):
    embedder = _embedder([VECTOR, QuotaExceededError("quota")])
    with pytest.raises(ProcessingFailure):
        await make_pipeline(embedder=embedder).run(_job(uploaded))
    assert chunks.indexes(uploaded.id) == [0]

    # Retry goes back through pending
    uploaded.status = DocumentStatus.PENDING.value
    result = await make_pipeline().run(_job(uploaded, retry=True))

    assert result.chunk_count == 5
    assert chunks.indexes(uploaded.id) == [0, 1, 2, 3, 4]
    assert uploaded.status == DocumentStatus.COMPLETED.value
    assert uploaded.error_message is None


# ---------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_summaries_are_best_effort(make_pipeline, uploaded, documents):
    good = _summarizer("gpt-4o-mini", result="  A refund policy.  ")
    bad = _summarizer("gemini-2.0-flash", error=ProviderError("HTTP 500"))

    result = await make_pipeline(summarizers=[good, bad]).run(_job(uploaded))

    assert uploaded.status == DocumentStatus.COMPLETED.value
    assert documents.summaries == [(uploaded.id, "gpt-4o-mini", "A refund policy.")]

    outcomes = {o.model: o for o in result.summaries}
    assert outcomes["gpt-4o-mini"].ok
    assert not outcomes["gemini-2.0-flash"].ok
    assert "HTTP 500" in outcomes["gemini-2.0-flash"].error

    prompt = good.complete.await_args.args[0]
    assert prompt.endswith(FIVE_CHUNK_TEXT)


@pytest.mark.asyncio
async def test_no_summarizers_configured(make_pipeline, uploaded, documents):
    result = await make_pipeline(summarizers=[]).run(_job(uploaded))

    assert result.summaries == []
    assert documents.summaries == []
