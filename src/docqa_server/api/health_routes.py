from fastapi import APIRouter
from ..config import settings

router = APIRouter(tags=["health"])

@router.get("/health")
def health():
    return {
        "status": "ok",
        "embedding_model": f"{settings.embedding_provider}:{settings.embedding_model}",
        "chat_model": f"{settings.chat_provider}:{settings.chat_model}",
    }
