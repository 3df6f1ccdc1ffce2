"""
Answer Service

Answers a question about one document using retrieval-augmented generation
and records the exchange in a conversation.

Order of Operations
-------------------
1. Verify the caller owns the target document (and conversation, if given)
2. Create the conversation lazily and persist the user message
3. Embed the question and retrieve matching chunks of the document
4. Build the context block and, when it is non-empty, load the summary
5. Generate the answer from system prompt, history, context and question
6. Persist the assistant message and one citation per retrieved chunk

A generation failure leaves the user message persisted and no assistant
message; the UpstreamError propagates to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, List, Optional, TypeVar

from ..api.models import AskRequest, AskResponse, SourceView
from ..auth.models import UserContext
from ..config import Settings, settings as default_settings
from ..core.errors import NotFoundError, OperationTimeoutError
from ..db.conversations import CitationSpan, ConversationRepository
from ..db.documents import DocumentRepository
from ..db.models import MessageRole
from ..db.vector_store import ChunkMatch, ChunkStore
from ..embeddings.embedder import Embedder
from ..llm.client import LLMClient
from ..prompts import build_answer_messages, build_context_block

logger = logging.getLogger("docqa.retrieval")

TITLE_MAX_CHARS = 100

T = TypeVar("T")


def preview(content: str, limit: int) -> str:
    """Truncate ``content`` to ``limit`` characters, marking the cut."""
    if len(content) <= limit:
        return content
    return content[:limit] + "..."


class AnswerService:
    def __init__(
        self,
        documents: DocumentRepository,
        conversations: ConversationRepository,
        chunks: ChunkStore,
        embedder: Embedder,
        llm: LLMClient,
        settings: Optional[Settings] = None,
    ) -> None:
        self._documents = documents
        self._conversations = conversations
        self._chunks = chunks
        self._embedder = embedder
        self._llm = llm
        self._settings = settings or default_settings

    async def ask(self, user: UserContext, request: AskRequest) -> AskResponse:
        """
        Answer ``request.question`` about ``request.document_id``.

        Raises
        ------
        NotFoundError
            The document or the supplied conversation does not belong to the
            caller. Nothing is persisted.
        UpstreamError
            Embedding or generation failed.
        OperationTimeoutError
            Embedding or generation ran past the step timeout.
        """
        document = await self._documents.get_owned(request.document_id, user.user_id)
        if document is None:
            raise NotFoundError("Document not found")

        if request.conversation_id is not None:
            conversation = await self._conversations.get_owned(
                request.conversation_id, user.user_id
            )
            if conversation is None:
                raise NotFoundError("Conversation not found")
        else:
            conversation = await self._conversations.create(
                user.user_id, request.question[:TITLE_MAX_CHARS]
            )
            logger.info("Created conversation %s for user %s", conversation.id, user.user_id)

        await self._conversations.add_message(conversation.id, MessageRole.USER, request.question)

        query_embedding = await self._bounded(
            self._embedder.embed(request.question), "Question embedding"
        )
        matches: List[ChunkMatch] = await self._chunks.match_chunks(
            target_document_id=document.id,
            user_id=user.user_id,
            query_embedding=query_embedding,
            match_threshold=self._settings.match_threshold,
            match_count=self._settings.match_count,
        )
        logger.debug(
            "Retrieved %d chunks for document %s (threshold=%.2f)",
            len(matches),
            document.id,
            self._settings.match_threshold,
        )

        context_text = build_context_block([m.content for m in matches])
        summary = await self._documents.latest_summary(document.id) if context_text else None

        history = [m.model_dump() for m in request.previous_messages]
        answer = await self._bounded(
            self._llm.generate(
                build_answer_messages(history, request.question),
                context_text=context_text,
                summary=summary,
            ),
            "Answer generation",
        )

        assistant_message = await self._conversations.add_message(
            conversation.id, MessageRole.ASSISTANT, answer
        )
        await self._conversations.add_citations(
            assistant_message.id,
            [
                CitationSpan(
                    document_id=m.document_id,
                    chunk_id=m.id,
                    start_char=0,
                    end_char=len(m.content),
                )
                for m in matches
            ],
        )

        limit = self._settings.source_preview_chars
        return AskResponse(
            answer=answer,
            conversation_id=conversation.id,
            sources=[
                SourceView(
                    document_id=m.document_id,
                    chunk_id=m.id,
                    content=preview(m.content, limit),
                    similarity=m.similarity,
                )
                for m in matches
            ],
        )

    async def _bounded(self, awaitable: Awaitable[T], step: str) -> T:
        timeout = self._settings.step_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise OperationTimeoutError(f"{step} timed out after {timeout:g}s") from exc
