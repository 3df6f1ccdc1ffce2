"""
Document Repository

Owner-scoped access to documents, their lifecycle status and their
summaries. Status transitions commit immediately so that pollers see them.
"""

from __future__ import annotations

import uuid
from typing import List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Document, DocumentStatus, DocumentSummary

# States from which a worker may start an ingestion attempt.
CLAIMABLE_STATUSES = (DocumentStatus.PENDING.value, DocumentStatus.QUEUED.value)


class DocumentRepository:
    """
    Persistence for Document and DocumentSummary rows.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_owned(self, document_id: uuid.UUID, user_id: str) -> Optional[Document]:
        """Return the document if it exists and belongs to ``user_id``."""
        result = await self._session.execute(
            select(Document).where(
                Document.id == document_id,
                Document.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_owned(
        self,
        user_id: str,
        limit: int = 10,
        offset: int = 0,
        status: Optional[str] = None,
    ) -> Tuple[List[Document], int]:
        """
        Return one page of the user's documents, newest first, and the total
        count matching the filter.
        """
        filters = [Document.user_id == user_id]
        if status is not None:
            filters.append(Document.status == status)

        total_result = await self._session.execute(
            select(func.count()).select_from(Document).where(*filters)
        )
        total = total_result.scalar() or 0

        result = await self._session.execute(
            select(Document)
            .where(*filters)
            .order_by(Document.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def latest_summary(self, document_id: uuid.UUID) -> Optional[str]:
        """Most recent summary text for a document, if any."""
        result = await self._session.execute(
            select(DocumentSummary.summary)
            .where(DocumentSummary.document_id == document_id)
            .order_by(DocumentSummary.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(
        self,
        user_id: str,
        name: str,
        storage_path: str,
        mime_type: str,
        file_size: int,
        document_id: Optional[uuid.UUID] = None,
    ) -> Document:
        document = Document(
            id=document_id or uuid.uuid4(),
            user_id=user_id,
            name=name,
            storage_path=storage_path,
            mime_type=mime_type,
            file_size=file_size,
            status=DocumentStatus.PENDING.value,
        )
        self._session.add(document)
        await self._session.commit()
        await self._session.refresh(document)
        return document

    async def claim_for_processing(self, document_id: uuid.UUID, user_id: str) -> bool:
        """
        Atomically move a pending/queued document to processing.

        Returns False when the document is missing, owned by someone else, or
        already processing/finished. At most one worker can win the claim.
        """
        result = await self._session.execute(
            update(Document)
            .where(
                Document.id == document_id,
                Document.user_id == user_id,
                Document.status.in_(CLAIMABLE_STATUSES),
            )
            .values(
                status=DocumentStatus.PROCESSING.value,
                error_message=None,
                updated_at=func.now(),
            )
            .returning(Document.id)
        )
        claimed = result.scalar_one_or_none() is not None
        await self._session.commit()
        return claimed

    async def set_status(
        self,
        document_id: uuid.UUID,
        status: DocumentStatus,
        error_message: Optional[str] = None,
    ) -> None:
        """Unconditionally set the status; clears the error unless failing."""
        await self._session.execute(
            update(Document)
            .where(Document.id == document_id)
            .values(
                status=status.value,
                error_message=error_message if status is DocumentStatus.FAILED else None,
                updated_at=func.now(),
            )
        )
        await self._session.commit()

    async def mark_completed(self, document_id: uuid.UUID) -> None:
        await self.set_status(document_id, DocumentStatus.COMPLETED)

    async def mark_failed(self, document_id: uuid.UUID, error_message: str) -> None:
        await self.set_status(document_id, DocumentStatus.FAILED, error_message)

    async def update_fields(
        self,
        document: Document,
        name: Optional[str] = None,
        status: Optional[DocumentStatus] = None,
    ) -> Document:
        """Apply a partial update to an already owner-checked document."""
        if name is not None:
            document.name = name
        if status is not None:
            document.status = status.value
            if status is not DocumentStatus.FAILED:
                document.error_message = None
        await self._session.commit()
        await self._session.refresh(document)
        return document

    async def add_summary(self, document_id: uuid.UUID, model: str, summary: str) -> None:
        self._session.add(
            DocumentSummary(
                id=uuid.uuid4(),
                document_id=document_id,
                model=model,
                summary=summary,
            )
        )
        await self._session.commit()

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    async def requeue_interrupted(self) -> int:
        """Move documents left in processing by a previous run back to queued."""
        result = await self._session.execute(
            update(Document)
            .where(Document.status == DocumentStatus.PROCESSING.value)
            .values(status=DocumentStatus.QUEUED.value, updated_at=func.now())
        )
        await self._session.commit()
        return result.rowcount or 0

    async def list_unfinished(self) -> List[Document]:
        """All pending/queued documents, oldest first."""
        result = await self._session.execute(
            select(Document)
            .where(Document.status.in_(CLAIMABLE_STATUSES))
            .order_by(Document.created_at)
        )
        return list(result.scalars().all())
