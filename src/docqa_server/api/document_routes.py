"""
Document Routes

This module exposes endpoints for:
- Uploading a document and queueing it for ingestion
- Listing the caller's documents and their processing status
- Renaming, changing status or retrying a failed document

Every route is scoped to the authenticated user; documents owned by others
are reported as not found.
"""

from __future__ import annotations

import logging
import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from .models import DocumentListResponse, DocumentUpdateRequest, DocumentView
from .dependencies import get_blob_store, get_document_repository, get_ingestion_queue
from ..auth.models import UserContext
from ..auth.security import get_current_user
from ..config import settings
from ..core.errors import NotFoundError, UnsupportedFormatError, ValidationError
from ..db import DocumentRepository, DocumentStatus
from ..ingestion.extractor import SUPPORTED_MIME_TYPES
from ..ingestion.models import IngestionJob
from ..jobs.queue import IngestionQueue
from ..storage.blobs import BlobStore, InvalidBlobPathError, build_storage_path

logger = logging.getLogger("docqa.api.documents")

router = APIRouter(prefix="/documents", tags=["documents"])


# ---------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=DocumentView,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a document for ingestion",
)
async def upload_document(
    user: Annotated[UserContext, Depends(get_current_user)],
    documents: Annotated[DocumentRepository, Depends(get_document_repository)],
    blobs: Annotated[BlobStore, Depends(get_blob_store)],
    queue: Annotated[IngestionQueue, Depends(get_ingestion_queue)],
    file: UploadFile = File(...),
) -> DocumentView:
    """
    Store the raw file, create the document and queue it for processing.

    The response is returned immediately; clients poll the document list
    for the final status.
    """
    mime_type = (file.content_type or "").split(";", 1)[0].strip().lower()
    if mime_type not in SUPPORTED_MIME_TYPES:
        raise UnsupportedFormatError(f"Unsupported file type: {mime_type or 'unknown'}")

    data = await file.read()
    if len(data) > settings.max_upload_bytes:
        raise ValidationError(
            f"File exceeds the maximum upload size of {settings.max_upload_bytes} bytes"
        )

    document_id = uuid.uuid4()
    file_name = file.filename or "upload"
    try:
        storage_path = build_storage_path(user.user_id, document_id, file_name)
    except InvalidBlobPathError as exc:
        raise ValidationError(str(exc)) from exc

    await blobs.save(storage_path, data)

    try:
        document = await documents.create(
            user_id=user.user_id,
            name=file_name,
            storage_path=storage_path,
            mime_type=mime_type,
            file_size=len(data),
            document_id=document_id,
        )
    except Exception:
        # No document row references the blob; remove it
        await blobs.delete(storage_path)
        raise

    # Mark queued before enqueueing so a fast worker's claim is never undone
    document = await documents.update_fields(document, status=DocumentStatus.QUEUED)
    await queue.enqueue(IngestionJob.for_document(document))

    logger.info("Document %s uploaded by %s (%d bytes)", document.id, user.user_id, len(data))
    return DocumentView.model_validate(document)


@router.get(
    "",
    response_model=DocumentListResponse,
    summary="List the caller's documents",
)
async def list_documents(
    user: Annotated[UserContext, Depends(get_current_user)],
    documents: Annotated[DocumentRepository, Depends(get_document_repository)],
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    status_filter: Optional[DocumentStatus] = Query(default=None, alias="status"),
) -> DocumentListResponse:
    rows, total = await documents.list_owned(
        user.user_id,
        limit=limit,
        offset=offset,
        status=status_filter.value if status_filter else None,
    )
    return DocumentListResponse(
        documents=[DocumentView.model_validate(row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.patch(
    "",
    response_model=DocumentView,
    summary="Update a document or retry its processing",
)
async def update_document(
    req: DocumentUpdateRequest,
    user: Annotated[UserContext, Depends(get_current_user)],
    documents: Annotated[DocumentRepository, Depends(get_document_repository)],
    queue: Annotated[IngestionQueue, Depends(get_ingestion_queue)],
) -> DocumentView:
    """
    Apply a partial update.

    With ``retry_processing`` a failed document is reset to pending and
    queued again; its previous chunks are replaced by the next attempt.
    """
    if not req.retry_processing and req.name is None and req.status is None:
        raise ValidationError("No updates provided")

    document = await documents.get_owned(req.id, user.user_id)
    if document is None:
        raise NotFoundError("Document not found")

    if req.retry_processing:
        if document.status != DocumentStatus.FAILED.value:
            raise ValidationError("Only failed documents can be retried")

        document = await documents.update_fields(
            document, name=req.name, status=DocumentStatus.PENDING
        )
        await queue.enqueue(IngestionJob.for_document(document, retry=True))
        logger.info("Document %s queued for retry by %s", document.id, user.user_id)
        return DocumentView.model_validate(document)

    document = await documents.update_fields(document, name=req.name, status=req.status)
    return DocumentView.model_validate(document)
