"""
API Models for the Document QA Server

This module defines all Pydantic models used for request/response validation
across document, question answering, conversation and queue endpoints.

Design Goals
------------
- Strong typing
- Safe defaults (no shared mutable state)
- Validation errors rejected before any persistence or provider call
- Clear schema documentation
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional, Literal

from pydantic import BaseModel, Field, ConfigDict

from ..db.models import DocumentStatus


# ---------------------------------------------------------------------
# Ask Models
# ---------------------------------------------------------------------

class ChatMessage(BaseModel):
    """
    Prior message in the dialogue, supplied by the client.
    """
    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class AskRequest(BaseModel):
    """
    Question about one document.
    """
    question: str = Field(..., min_length=1)
    document_id: uuid.UUID
    conversation_id: Optional[uuid.UUID] = None
    previous_messages: List[ChatMessage] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class SourceView(BaseModel):
    """
    Retrieved chunk backing an answer; content is a truncated preview.
    """
    document_id: uuid.UUID
    chunk_id: uuid.UUID
    content: str
    similarity: float


class AskResponse(BaseModel):
    answer: str
    conversation_id: uuid.UUID
    sources: List[SourceView] = Field(default_factory=list)


# ---------------------------------------------------------------------
# Document Models
# ---------------------------------------------------------------------

class DocumentView(BaseModel):
    id: uuid.UUID
    name: str
    mime_type: str
    file_size: int
    status: DocumentStatus
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DocumentListResponse(BaseModel):
    documents: List[DocumentView]
    total: int = Field(..., ge=0)
    limit: int
    offset: int


class DocumentUpdateRequest(BaseModel):
    """
    Partial document update.

    ``retry_processing`` re-enqueues a failed document; ``name`` and
    ``status`` are plain field updates.
    """
    id: uuid.UUID
    retry_processing: bool = False
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    status: Optional[DocumentStatus] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Conversation Models
# ---------------------------------------------------------------------

class ConversationView(BaseModel):
    id: uuid.UUID
    title: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ConversationListResponse(BaseModel):
    conversations: List[ConversationView]
    total: int = Field(..., ge=0)
    limit: int
    offset: int


class MessageView(BaseModel):
    id: uuid.UUID
    role: Literal["user", "assistant"]
    content: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OperationResult(BaseModel):
    """
    Standardized mutation operation result.
    """
    status: Literal["deleted"]
    id: Optional[uuid.UUID] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Queue Models
# ---------------------------------------------------------------------

class QueueStatusResponse(BaseModel):
    workers: int = Field(..., ge=0)
    waiting: int = Field(..., ge=0)
    active: int = Field(..., ge=0)
    scheduled_retries: int = Field(..., ge=0)
    completed: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    skipped: int = Field(..., ge=0)
    retried: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
