"""
In-process queue for background ingestion jobs.

Delivery Semantics
------------------
- A fixed pool of workers consumes jobs concurrently
- At most one job per document runs at any time; later jobs for the same
  document wait and are then skipped by the pipeline's claim
- Each job runs inside its own database session
- ProcessingFailure is final; any other error (including FailureNotRecorded)
  is redelivered with exponential backoff until ``job_max_attempts`` is
  reached
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections import Counter
from typing import Any, Callable, Dict, List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, settings as default_settings
from ..core.errors import ProcessingFailure
from ..db import AsyncSessionLocal, DocumentRepository
from ..ingestion.models import IngestionJob
from ..ingestion.pipeline import IngestionPipeline

logger = logging.getLogger("docqa.queue")

PipelineFactory = Callable[[AsyncSession], IngestionPipeline]


class IngestionQueue:
    """Singleton queue and worker pool for ingestion jobs."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_factory: Callable[[], Any] = AsyncSessionLocal,
    ) -> None:
        self._settings = settings or default_settings
        self._session_factory = session_factory
        self._pipeline_factory: Optional[PipelineFactory] = None

        self._queue: asyncio.Queue[IngestionJob] = asyncio.Queue()
        self._workers: List[asyncio.Task] = []
        self._retry_tasks: Set[asyncio.Task] = set()

        self._document_locks: Dict[uuid.UUID, asyncio.Lock] = {}
        self._lock_users: Counter = Counter()
        self._active: Set[uuid.UUID] = set()

        # Jobs accepted but not yet settled (including scheduled redeliveries)
        self._outstanding = 0
        self._idle = asyncio.Event()
        self._idle.set()

        self.stats: Counter = Counter()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self, pipeline_factory: PipelineFactory, concurrency: Optional[int] = None) -> None:
        """Spawn the worker pool. Calling start twice is a no-op."""
        if self._workers:
            return

        self._pipeline_factory = pipeline_factory
        count = concurrency or self._settings.worker_concurrency
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"ingestion-worker-{i}")
            for i in range(count)
        ]
        logger.info("Started %d ingestion workers", count)

    async def stop(self) -> None:
        """Cancel workers and pending redeliveries."""
        tasks = [*self._workers, *self._retry_tasks]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._workers = []
        self._retry_tasks.clear()
        self._outstanding = 0
        self._idle.set()
        logger.info("Ingestion workers stopped")

    async def recover(self) -> int:
        """
        Re-enqueue documents a previous process accepted but never finished.

        Must run before the workers start; documents left in processing are
        reset to queued first.
        """
        async with self._session_factory() as session:
            documents = DocumentRepository(session)
            reset = await documents.requeue_interrupted()
            unfinished = await documents.list_unfinished()

        for document in unfinished:
            await self.enqueue(IngestionJob.for_document(document, retry=True))

        if unfinished:
            logger.info(
                "Recovered %d unfinished documents (%d were interrupted)",
                len(unfinished),
                reset,
            )
        return len(unfinished)

    # ------------------------------------------------------------------
    # Producer API
    # ------------------------------------------------------------------

    async def enqueue(self, job: IngestionJob) -> int:
        """Add a job to the queue. Returns current queue size."""
        await self._queue.put(job)
        self._outstanding += 1
        self._idle.clear()
        self.stats["enqueued"] += 1
        qsize = self._queue.qsize()
        logger.info("Job enqueued: document %s (queue size: %d)", job.document_id, qsize)
        return qsize

    async def join(self) -> None:
        """Wait until every enqueued job, including redeliveries, is settled."""
        await self._idle.wait()

    def status(self) -> Dict[str, int]:
        return {
            "workers": len(self._workers),
            "waiting": self._queue.qsize(),
            "active": len(self._active),
            "scheduled_retries": len(self._retry_tasks),
            "completed": self.stats["completed"],
            "failed": self.stats["failed"],
            "skipped": self.stats["skipped"],
            "retried": self.stats["retried"],
            "total": self.stats["enqueued"],
        }

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _worker(self, worker_id: int) -> None:
        logger.debug("Ingestion worker %d started.", worker_id)

        while True:
            try:
                job = await self._queue.get()
            except asyncio.CancelledError:
                logger.debug("Ingestion worker %d cancelled.", worker_id)
                break

            try:
                settled = await self._run_job(job)
            except asyncio.CancelledError:
                self._queue.task_done()
                raise
            except Exception:
                # Keep the worker alive on bookkeeping errors
                logger.exception("Unexpected error in ingestion worker %d", worker_id)
                settled = True

            self._queue.task_done()
            if settled:
                self._settle()

    async def _run_job(self, job: IngestionJob) -> bool:
        """Run one delivery. Returns False when the job was scheduled for redelivery."""
        async with self._document_lock(job.document_id):
            self._active.add(job.document_id)
            try:
                async with self._session_factory() as session:
                    pipeline = self._pipeline_factory(session)
                    result = await pipeline.run(job)
            except ProcessingFailure as exc:
                self.stats["failed"] += 1
                logger.warning("Job for document %s failed: %s", job.document_id, exc)
                return True
            except Exception as exc:
                return not self._schedule_retry(job, exc)
            finally:
                self._active.discard(job.document_id)

        if result.skipped:
            self.stats["skipped"] += 1
        else:
            self.stats["completed"] += 1
            logger.info(
                "Finished ingestion job for document %s (%d chunks)",
                job.document_id,
                result.chunk_count,
            )
        return True

    def _settle(self) -> None:
        self._outstanding = max(0, self._outstanding - 1)
        if self._outstanding == 0:
            self._idle.set()

    def _schedule_retry(self, job: IngestionJob, exc: Exception) -> bool:
        if job.attempt >= self._settings.job_max_attempts:
            self.stats["failed"] += 1
            logger.error(
                "Giving up on document %s after %d attempts: %s",
                job.document_id,
                job.attempt,
                exc,
            )
            return False

        delay = self._settings.job_backoff_seconds * (2 ** (job.attempt - 1))
        job.attempt += 1
        self.stats["retried"] += 1
        logger.warning(
            "Job for document %s failed (%s); redelivering attempt %d in %.1fs",
            job.document_id,
            exc,
            job.attempt,
            delay,
        )

        task = asyncio.create_task(self._redeliver(job, delay))
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)
        return True

    async def _redeliver(self, job: IngestionJob, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._queue.put(job)

    @contextlib.asynccontextmanager
    async def _document_lock(self, document_id: uuid.UUID):
        lock = self._document_locks.setdefault(document_id, asyncio.Lock())
        self._lock_users[document_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[document_id] -= 1
            if self._lock_users[document_id] <= 0:
                del self._lock_users[document_id]
                self._document_locks.pop(document_id, None)


# Global singleton
ingestion_queue = IngestionQueue()
