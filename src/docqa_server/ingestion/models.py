"""
Ingestion job and result types.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class IngestionJob:
    """Represents a request to (re)process one uploaded document."""
    document_id: uuid.UUID
    user_id: str
    file_path: str
    file_name: str
    file_type: str
    retry: bool = False

    # Delivery bookkeeping, maintained by the queue
    attempt: int = 1
    # Failure message still to be stored on the document, set by the pipeline
    unrecorded_failure: Optional[str] = None

    @classmethod
    def for_document(cls, document, retry: bool = False) -> "IngestionJob":
        """Build a job from a Document row."""
        return cls(
            document_id=document.id,
            user_id=document.user_id,
            file_path=document.storage_path,
            file_name=document.name,
            file_type=document.mime_type,
            retry=retry,
        )


@dataclass
class SummaryOutcome:
    """Result of one best-effort summary attempt."""
    model: str
    summary: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.summary)


@dataclass
class IngestionResult:
    document_id: uuid.UUID
    chunk_count: int = 0
    skipped: bool = False
    failed_chunks: List[int] = field(default_factory=list)
    summaries: List[SummaryOutcome] = field(default_factory=list)
