"""
Database Package

Provides SQLAlchemy async session management, model definitions and
repositories for PostgreSQL with pgvector.
"""

from .session import get_async_session, async_engine, AsyncSessionLocal, create_schema
from .models import (
    Base,
    Citation,
    Conversation,
    Document,
    DocumentChunk,
    DocumentStatus,
    DocumentSummary,
    Message,
    MessageRole,
)
from .vector_store import ChunkStore, ChunkMatch
from .documents import DocumentRepository
from .conversations import ConversationRepository, CitationSpan

__all__ = [
    "get_async_session",
    "async_engine",
    "AsyncSessionLocal",
    "create_schema",
    "Base",
    "Citation",
    "Conversation",
    "Document",
    "DocumentChunk",
    "DocumentStatus",
    "DocumentSummary",
    "Message",
    "MessageRole",
    "ChunkStore",
    "ChunkMatch",
    "DocumentRepository",
    "ConversationRepository",
    "CitationSpan",
]
