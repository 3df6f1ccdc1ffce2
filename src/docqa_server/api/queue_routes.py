from typing import Annotated

from fastapi import APIRouter, Depends

from .models import QueueStatusResponse
from .dependencies import get_ingestion_queue
from ..auth.models import UserContext
from ..auth.security import get_current_user
from ..jobs.queue import IngestionQueue

router = APIRouter(prefix="/queue", tags=["queue"])


@router.get(
    "/status",
    response_model=QueueStatusResponse,
    summary="Get ingestion queue counters",
)
async def queue_status(
    user: Annotated[UserContext, Depends(get_current_user)],
    queue: Annotated[IngestionQueue, Depends(get_ingestion_queue)],
) -> QueueStatusResponse:
    return QueueStatusResponse(**queue.status())
