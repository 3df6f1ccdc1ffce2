"""
Ask Route

Answers a question about one of the caller's documents and records the
exchange in a conversation. See ``retrieval.service.AnswerService`` for the
order of operations and failure behavior.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from .models import AskRequest, AskResponse
from .dependencies import get_answer_service
from ..auth.models import UserContext
from ..auth.security import get_current_user
from ..retrieval.service import AnswerService

router = APIRouter(tags=["ask"])


@router.post(
    "/ask",
    response_model=AskResponse,
    summary="Ask a question about a document",
)
async def ask(
    req: AskRequest,
    user: Annotated[UserContext, Depends(get_current_user)],
    service: Annotated[AnswerService, Depends(get_answer_service)],
) -> AskResponse:
    # Domain errors are translated by the global exception handlers
    return await service.ask(user, req)
