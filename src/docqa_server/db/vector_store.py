"""
Vector Store

PostgreSQL + pgvector storage for document chunks and owner-scoped
similarity search.
"""

from __future__ import annotations

import uuid
from typing import List, NamedTuple, Sequence

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Document, DocumentChunk


class ChunkMatch(NamedTuple):
    """One nearest-neighbor search hit."""
    id: uuid.UUID
    document_id: uuid.UUID
    content: str
    chunk_index: int
    similarity: float


class ChunkStore:
    """
    PostgreSQL-backed chunk store using pgvector for similarity search.

    Every write is scoped to a single document id; every read is scoped to
    a document id and its owner.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize with an async database session.

        Parameters
        ----------
        session : AsyncSession
            SQLAlchemy async session for database operations.
        """
        self._session = session

    async def add_chunk(
        self,
        document_id: uuid.UUID,
        chunk_index: int,
        content: str,
        embedding: Sequence[float],
    ) -> uuid.UUID:
        """
        Persist one chunk with its embedding and commit immediately.

        Returns
        -------
        uuid.UUID
            Id of the new chunk row.
        """
        chunk = DocumentChunk(
            id=uuid.uuid4(),
            document_id=document_id,
            chunk_index=chunk_index,
            content=content,
            embedding=list(embedding),
        )
        self._session.add(chunk)
        try:
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise
        return chunk.id

    async def delete_document_chunks(self, document_id: uuid.UUID) -> int:
        """
        Remove all chunks for a given document.

        Returns the number of deleted rows.
        """
        stmt = delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
        result = await self._session.execute(stmt)
        await self._session.commit()
        return result.rowcount

    async def match_chunks(
        self,
        target_document_id: uuid.UUID,
        user_id: str,
        query_embedding: Sequence[float],
        match_threshold: float,
        match_count: int,
    ) -> List[ChunkMatch]:
        """
        Search for the chunks of one owned document most similar to a query.

        Parameters
        ----------
        target_document_id : uuid.UUID
            Document to search within.
        user_id : str
            Owner of the document; chunks of other users' documents never match.
        query_embedding : Sequence[float]
            Query vector, from the same model used at ingestion.
        match_threshold : float
            Minimum cosine similarity.
        match_count : int
            Maximum number of results.

        Returns
        -------
        List[ChunkMatch]
            Highest similarity first, ties broken by lower chunk_index.
        """
        # Cosine similarity via pgvector's <=> operator
        cosine_distance = DocumentChunk.embedding.cosine_distance(list(query_embedding))
        similarity = (1 - cosine_distance).label("similarity")

        stmt = (
            select(
                DocumentChunk.id,
                DocumentChunk.document_id,
                DocumentChunk.content,
                DocumentChunk.chunk_index,
                similarity,
            )
            .join(Document, Document.id == DocumentChunk.document_id)
            .where(
                DocumentChunk.document_id == target_document_id,
                Document.user_id == user_id,
                (1 - cosine_distance) >= match_threshold,
            )
            .order_by(cosine_distance, DocumentChunk.chunk_index)
            .limit(match_count)
        )

        result = await self._session.execute(stmt)
        return [
            ChunkMatch(
                id=row.id,
                document_id=row.document_id,
                content=row.content,
                chunk_index=row.chunk_index,
                similarity=float(row.similarity),
            )
            for row in result.all()
        ]
