"""
Ingestion Pipeline

Turns one uploaded document into embedded, searchable chunks.

Steps
-----
1. Claim the document (pending/queued -> processing); skip if not claimable
2. Load the raw bytes from blob storage
3. Extract plain text for the declared MIME type
4. Reject documents with no usable text
5. Request best-effort summaries from every configured summary model
6. Split the text into overlapping chunks
7. Replace the document's chunks, embedding one chunk at a time
8. Mark the document completed when at least one chunk was stored

Failure Policy
--------------
- Any failure after the claim is recorded on the document (status=failed with
  a human-readable message) and surfaces as ProcessingFailure, which the
  queue never redelivers.
- If the failure itself cannot be stored, FailureNotRecorded is raised
  instead; the queue redelivers the job and that delivery only retries the
  status write.
- Embedding quota exhaustion, rate limiting or an unavailable provider stops
  the run immediately; chunks stored before the stop stay in place.
- Any other per-chunk failure skips that chunk and continues.
- Summary failures are logged and never affect the document status.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Awaitable, List, NoReturn, Optional, Sequence, TypeVar

from ..config import Settings, settings as default_settings
from ..core.errors import (
    DocQAError,
    FailureNotRecorded,
    OperationTimeoutError,
    ProcessingFailure,
    ProviderUnavailableError,
    QuotaExceededError,
    RateLimitedError,
)
from ..db.documents import DocumentRepository
from ..db.vector_store import ChunkStore
from ..embeddings.embedder import Embedder
from ..llm.client import LLMClient
from ..prompts import build_summary_prompt
from ..storage.blobs import BlobNotFoundError, BlobStore
from .chunker import split_text
from .extractor import extract_text
from .models import IngestionJob, IngestionResult, SummaryOutcome

logger = logging.getLogger("docqa.ingestion")

T = TypeVar("T")


# ---------------------------------------------------------------------
# Failure messages recorded on documents
# ---------------------------------------------------------------------

EMPTY_FILE_MESSAGE = "Downloaded file is empty"
NO_TEXT_MESSAGE = "Failed to extract text from document or document is empty"
NO_CHUNKS_MESSAGE = "No text chunks could be created from the document"
NO_EMBEDDED_CHUNKS_MESSAGE = "Failed to process any chunks from the document"


def _hard_stop_message(exc: Exception) -> str:
    if isinstance(exc, QuotaExceededError):
        return f"Embedding quota exceeded: {exc}"
    if isinstance(exc, RateLimitedError):
        return f"Embedding provider rate limited: {exc}"
    return f"Embedding provider unavailable: {exc}"


class IngestionPipeline:
    """
    Runs a single ingestion attempt against injected collaborators.

    Parameters
    ----------
    documents : DocumentRepository
        Document status and summary persistence.

    chunks : ChunkStore
        Chunk persistence.

    blobs : BlobStore
        Raw file storage.

    embedder : Embedder
        Must be the same model used at query time.

    summarizers : Sequence[LLMClient]
        Zero or more clients used for best-effort summaries.
    """

    def __init__(
        self,
        documents: DocumentRepository,
        chunks: ChunkStore,
        blobs: BlobStore,
        embedder: Embedder,
        summarizers: Sequence[LLMClient] = (),
        settings: Optional[Settings] = None,
    ) -> None:
        self._documents = documents
        self._chunks = chunks
        self._blobs = blobs
        self._embedder = embedder
        self._summarizers = list(summarizers)
        self._settings = settings or default_settings

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, job: IngestionJob) -> IngestionResult:
        """
        Execute one ingestion attempt.

        Returns
        -------
        IngestionResult
            ``skipped=True`` when another attempt already owns the document or
            it is no longer pending/queued.

        Raises
        ------
        ProcessingFailure
            The attempt failed and the failure is recorded on the document.
        FailureNotRecorded
            The attempt failed and storing the failure failed too; the job
            carries the message for the next delivery.
        Exception
            Errors raised before the claim (e.g. the database is unreachable)
            propagate unchanged so the queue can redeliver the job.
        """
        if job.unrecorded_failure is not None:
            # Earlier delivery failed after its claim; only the status write is left
            await self._abort(job, job.unrecorded_failure)

        claimed = await self._documents.claim_for_processing(job.document_id, job.user_id)
        if not claimed:
            logger.info(
                "Document %s is not claimable (already processing or finished); skipping",
                job.document_id,
            )
            return IngestionResult(document_id=job.document_id, skipped=True)

        logger.info(
            "Processing document %s (%s, %s)%s",
            job.document_id,
            job.file_name,
            job.file_type,
            " [retry]" if job.retry else "",
        )

        try:
            return await self._process(job)
        except (ProcessingFailure, FailureNotRecorded):
            raise
        except Exception as exc:
            logger.exception("Unexpected error while processing document %s", job.document_id)
            await self._abort(job, str(exc) or type(exc).__name__, exc)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _process(self, job: IngestionJob) -> IngestionResult:
        document_id = job.document_id

        # Load
        try:
            data = await self._bounded(self._blobs.read(job.file_path), "File download")
        except BlobNotFoundError as exc:
            await self._abort(job, str(exc), exc)

        if not data:
            await self._abort(job, EMPTY_FILE_MESSAGE)

        # Extract
        try:
            text = await self._bounded(
                asyncio.to_thread(extract_text, data, job.file_type),
                "Text extraction",
            )
        except DocQAError as exc:
            await self._abort(job, f"Error processing file: {exc}", exc)

        if not text.strip():
            await self._abort(job, NO_TEXT_MESSAGE)

        # Summaries (best-effort)
        summaries = await self._summarize(document_id, text)

        # Chunk
        pieces = split_text(text, self._settings)
        if not pieces:
            await self._abort(job, NO_CHUNKS_MESSAGE)

        removed = await self._chunks.delete_document_chunks(document_id)
        if removed:
            logger.info("Removed %d existing chunks for document %s", removed, document_id)

        # Embed
        stored, failed = await self._embed_chunks(job, pieces)

        if stored == 0:
            await self._abort(job, NO_EMBEDDED_CHUNKS_MESSAGE)

        if failed:
            logger.warning(
                "Document %s partially processed: %d/%d chunks stored, failed indexes %s",
                document_id,
                stored,
                len(pieces),
                failed,
            )

        await self._documents.mark_completed(document_id)
        logger.info("Document %s completed with %d chunks", document_id, stored)

        return IngestionResult(
            document_id=document_id,
            chunk_count=stored,
            failed_chunks=failed,
            summaries=summaries,
        )

    async def _embed_chunks(
        self,
        job: IngestionJob,
        pieces: Sequence[str],
    ) -> tuple[int, List[int]]:
        """Embed and store chunks sequentially; return (stored, failed indexes)."""
        document_id = job.document_id
        stored = 0
        failed: List[int] = []

        for index, content in enumerate(pieces):
            try:
                embedding = await self._bounded(
                    self._embedder.embed(content),
                    f"Embedding chunk {index}",
                )
            except (RateLimitedError, ProviderUnavailableError) as exc:
                logger.error(
                    "Stopping ingestion of %s at chunk %d/%d: %s",
                    document_id,
                    index,
                    len(pieces),
                    exc,
                )
                await self._abort(job, _hard_stop_message(exc), exc)
            except Exception as exc:
                logger.warning("Skipping chunk %d of %s: %s", index, document_id, exc)
                failed.append(index)
                continue

            try:
                await self._chunks.add_chunk(document_id, index, content, embedding)
            except Exception as exc:
                logger.warning("Could not store chunk %d of %s: %s", index, document_id, exc)
                failed.append(index)
                continue

            stored += 1

        return stored, failed

    async def _summarize(self, document_id: uuid.UUID, text: str) -> List[SummaryOutcome]:
        """
        Ask every summarizer for a summary concurrently and store the successes.

        Provider calls run in parallel; persistence is sequential because the
        repository shares one session.
        """
        if not self._summarizers:
            return []

        prompt = build_summary_prompt(text)

        async def _one(client: LLMClient) -> SummaryOutcome:
            try:
                summary = await self._bounded(client.complete(prompt), f"Summary ({client.model})")
            except Exception as exc:
                return SummaryOutcome(model=client.model, error=str(exc) or type(exc).__name__)
            if not summary or not summary.strip():
                return SummaryOutcome(model=client.model, error="Empty summary")
            return SummaryOutcome(model=client.model, summary=summary.strip())

        outcomes = list(await asyncio.gather(*(_one(c) for c in self._summarizers)))

        for outcome in outcomes:
            if not outcome.ok:
                logger.warning(
                    "Summary with %s failed for document %s: %s",
                    outcome.model,
                    document_id,
                    outcome.error,
                )
                continue
            try:
                await self._documents.add_summary(document_id, outcome.model, outcome.summary)
            except Exception as exc:
                logger.warning(
                    "Could not store %s summary for document %s: %s",
                    outcome.model,
                    document_id,
                    exc,
                )
                outcome.error = str(exc) or type(exc).__name__

        return outcomes

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _bounded(self, awaitable: Awaitable[T], step: str) -> T:
        timeout = self._settings.step_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise OperationTimeoutError(f"{step} timed out after {timeout:g}s") from exc

    async def _record_failure(self, job: IngestionJob, message: str) -> None:
        """
        Store the failure on the document.

        When the write itself fails the message is kept on the job and
        FailureNotRecorded is raised, so the queue redelivers the job and the
        next delivery only retries this write.
        """
        logger.error("Document %s failed: %s", job.document_id, message)
        try:
            await self._documents.mark_failed(job.document_id, message)
        except Exception as exc:
            logger.exception("Could not record failure for document %s", job.document_id)
            job.unrecorded_failure = message
            raise FailureNotRecorded(message) from exc
        job.unrecorded_failure = None

    async def _abort(
        self,
        job: IngestionJob,
        message: str,
        cause: Optional[BaseException] = None,
    ) -> NoReturn:
        """Record the failure on the document and end the attempt."""
        await self._record_failure(job, message)
        raise ProcessingFailure(message) from cause
