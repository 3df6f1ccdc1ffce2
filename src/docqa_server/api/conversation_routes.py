"""
Conversation Routes

Owner-scoped listing, message history and deletion of conversations.
"""

import uuid
from typing import Annotated, List

from fastapi import APIRouter, Depends, Query

from .models import (
    ConversationListResponse,
    ConversationView,
    MessageView,
    OperationResult,
)
from .dependencies import get_conversation_repository
from ..auth.models import UserContext
from ..auth.security import get_current_user
from ..core.errors import NotFoundError
from ..db import ConversationRepository

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.get(
    "",
    response_model=ConversationListResponse,
    summary="List the caller's conversations",
)
async def list_conversations(
    user: Annotated[UserContext, Depends(get_current_user)],
    conversations: Annotated[ConversationRepository, Depends(get_conversation_repository)],
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> ConversationListResponse:
    rows, total = await conversations.list_owned(user.user_id, limit=limit, offset=offset)
    return ConversationListResponse(
        conversations=[ConversationView.model_validate(row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{conversation_id}/messages",
    response_model=List[MessageView],
    summary="Get the messages of a conversation",
)
async def list_messages(
    conversation_id: uuid.UUID,
    user: Annotated[UserContext, Depends(get_current_user)],
    conversations: Annotated[ConversationRepository, Depends(get_conversation_repository)],
) -> List[MessageView]:
    conversation = await conversations.get_owned(conversation_id, user.user_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")

    messages = await conversations.list_messages(conversation.id)
    return [MessageView.model_validate(m) for m in messages]


@router.delete(
    "/{conversation_id}",
    response_model=OperationResult,
    summary="Delete a conversation with its messages and citations",
)
async def delete_conversation(
    conversation_id: uuid.UUID,
    user: Annotated[UserContext, Depends(get_current_user)],
    conversations: Annotated[ConversationRepository, Depends(get_conversation_repository)],
) -> OperationResult:
    deleted = await conversations.delete_owned(conversation_id, user.user_id)
    if not deleted:
        raise NotFoundError("Conversation not found")
    return OperationResult(status="deleted", id=conversation_id)
