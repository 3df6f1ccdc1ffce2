from functools import lru_cache
from typing import List

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..db import (
    ChunkStore,
    ConversationRepository,
    DocumentRepository,
    get_async_session,
)
from ..embeddings.embedder import Embedder
from ..ingestion.pipeline import IngestionPipeline
from ..jobs.queue import IngestionQueue, ingestion_queue
from ..llm.client import LLMClient
from ..providers import build_provider_config, summary_provider_configs
from ..retrieval.service import AnswerService
from ..storage.blobs import BlobStore


# ---------------------------------------------------------------------
# Gateways (process-wide)
# ---------------------------------------------------------------------

@lru_cache
def get_embedder() -> Embedder:
    # Shared by ingestion and retrieval so both use one vector space
    return Embedder(
        build_provider_config(settings.embedding_provider, settings.embedding_model),
        timeout=settings.provider_timeout_seconds,
        max_retries=settings.embedding_max_retries,
        backoff_seconds=settings.embedding_backoff_seconds,
        dimensions=settings.embedding_dimensions,
    )


@lru_cache
def get_llm_client() -> LLMClient:
    return LLMClient(
        build_provider_config(settings.chat_provider, settings.chat_model),
        timeout=settings.provider_timeout_seconds,
        temperature=settings.chat_temperature,
        max_tokens=settings.chat_max_tokens,
    )


@lru_cache
def get_summarizers() -> List[LLMClient]:
    return [
        LLMClient(
            config,
            timeout=settings.provider_timeout_seconds,
            max_tokens=settings.chat_max_tokens,
        )
        for config in summary_provider_configs(settings)
    ]


@lru_cache
def get_blob_store() -> BlobStore:
    return BlobStore(settings.blob_root)


def get_ingestion_queue() -> IngestionQueue:
    return ingestion_queue


# ---------------------------------------------------------------------
# Request-scoped repositories
# ---------------------------------------------------------------------

def get_document_repository(
    session: AsyncSession = Depends(get_async_session),
) -> DocumentRepository:
    return DocumentRepository(session)


def get_conversation_repository(
    session: AsyncSession = Depends(get_async_session),
) -> ConversationRepository:
    return ConversationRepository(session)


def get_chunk_store(
    session: AsyncSession = Depends(get_async_session),
) -> ChunkStore:
    return ChunkStore(session)


def get_answer_service(
    documents: DocumentRepository = Depends(get_document_repository),
    conversations: ConversationRepository = Depends(get_conversation_repository),
    chunks: ChunkStore = Depends(get_chunk_store),
    embedder: Embedder = Depends(get_embedder),
    llm: LLMClient = Depends(get_llm_client),
) -> AnswerService:
    return AnswerService(documents, conversations, chunks, embedder, llm, settings)


# ---------------------------------------------------------------------
# Background ingestion
# ---------------------------------------------------------------------

def build_pipeline(session: AsyncSession) -> IngestionPipeline:
    """Pipeline factory used by the ingestion workers (one session per job)."""
    return IngestionPipeline(
        documents=DocumentRepository(session),
        chunks=ChunkStore(session),
        blobs=get_blob_store(),
        embedder=get_embedder(),
        summarizers=get_summarizers(),
        settings=settings,
    )
