"""
Conversation Repository

Owner-scoped persistence for conversations, their messages and the
citations attached to assistant messages.
"""

from __future__ import annotations

import uuid
from typing import List, NamedTuple, Optional, Sequence, Tuple

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Citation, Conversation, Message, MessageRole


class CitationSpan(NamedTuple):
    """Character span of a cited chunk."""
    document_id: uuid.UUID
    chunk_id: uuid.UUID
    start_char: int
    end_char: int


class ConversationRepository:
    """
    Persistence for Conversation, Message and Citation rows.

    Each write commits on its own so that a user message survives a later
    generation failure.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_owned(
        self,
        conversation_id: uuid.UUID,
        user_id: str,
    ) -> Optional[Conversation]:
        result = await self._session.execute(
            select(Conversation).where(
                Conversation.id == conversation_id,
                Conversation.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def create(self, user_id: str, title: str) -> Conversation:
        conversation = Conversation(id=uuid.uuid4(), user_id=user_id, title=title)
        self._session.add(conversation)
        await self._session.commit()
        return conversation

    async def add_message(
        self,
        conversation_id: uuid.UUID,
        role: MessageRole,
        content: str,
    ) -> Message:
        """Append a message and bump the conversation's updated_at."""
        message = Message(
            id=uuid.uuid4(),
            conversation_id=conversation_id,
            role=role.value,
            content=content,
        )
        self._session.add(message)
        await self._session.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(updated_at=func.now())
        )
        await self._session.commit()
        return message

    async def add_citations(
        self,
        message_id: uuid.UUID,
        spans: Sequence[CitationSpan],
    ) -> int:
        if not spans:
            return 0

        for span in spans:
            self._session.add(
                Citation(
                    id=uuid.uuid4(),
                    message_id=message_id,
                    document_id=span.document_id,
                    chunk_id=span.chunk_id,
                    start_char=span.start_char,
                    end_char=span.end_char,
                )
            )
        await self._session.commit()
        return len(spans)

    async def list_owned(
        self,
        user_id: str,
        limit: int = 10,
        offset: int = 0,
    ) -> Tuple[List[Conversation], int]:
        """One page of the user's conversations, most recently active first."""
        total_result = await self._session.execute(
            select(func.count()).select_from(Conversation).where(
                Conversation.user_id == user_id
            )
        )
        total = total_result.scalar() or 0

        result = await self._session.execute(
            select(Conversation)
            .where(Conversation.user_id == user_id)
            .order_by(Conversation.updated_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_messages(self, conversation_id: uuid.UUID) -> List[Message]:
        """Messages in chronological order."""
        result = await self._session.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at, Message.id)
        )
        return list(result.scalars().all())

    async def delete_owned(self, conversation_id: uuid.UUID, user_id: str) -> bool:
        """Delete a conversation (messages and citations cascade)."""
        result = await self._session.execute(
            delete(Conversation).where(
                Conversation.id == conversation_id,
                Conversation.user_id == user_id,
            )
        )
        await self._session.commit()
        return result.rowcount > 0
