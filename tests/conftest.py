"""
Shared fixtures: in-memory repositories, token helpers and test settings.
"""

import math
import time
import uuid
from typing import Dict, List, Optional, Tuple

import jwt
import pytest
from pydantic import SecretStr

from docqa_server.config import settings
from docqa_server.core.errors import DocQAError
from docqa_server.db.models import (
    Conversation,
    Document,
    DocumentStatus,
    Message,
    MessageRole,
)
from docqa_server.db.vector_store import ChunkMatch
from docqa_server.db.conversations import CitationSpan
from docqa_server.storage.blobs import BlobNotFoundError

# Test secrets
TEST_JWT_SECRET = "test-secret-docqa-must-be-long-enough-32chars"

settings.jwt_secret = SecretStr(TEST_JWT_SECRET)
settings.jwt_algo = "HS256"
settings.db_auto_create = False


def create_token(
    sub: Optional[str] = "user-1",
    email: Optional[str] = "user1@example.com",
    issuer: Optional[str] = None,
    audience: Optional[str] = None,
    expired: bool = False,
    secret: str = TEST_JWT_SECRET,
) -> str:
    now = int(time.time())
    iat = now - 3600 if expired else now
    exp = iat - 10 if expired else now + 300

    payload = {
        "iss": issuer or settings.jwt_issuer,
        "aud": audience or settings.jwt_audience,
        "iat": iat,
        "exp": exp,
    }
    if sub is not None:
        payload["sub"] = sub
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(sub: str = "user-1") -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_token(sub=sub)}"}


# ---------------------------------------------------------------------
# In-memory repositories
# ---------------------------------------------------------------------

class FakeDocumentRepository:
    """Dict-backed stand-in for DocumentRepository."""

    def __init__(self) -> None:
        self.documents: Dict[uuid.UUID, Document] = {}
        self.summaries: List[Tuple[uuid.UUID, str, str]] = []
        self.status_history: List[Tuple[uuid.UUID, str]] = []

    def add(
        self,
        user_id: str = "user-1",
        status: DocumentStatus = DocumentStatus.QUEUED,
        name: str = "doc.txt",
        mime_type: str = "text/plain",
    ) -> Document:
        document_id = uuid.uuid4()
        document = Document(
            id=document_id,
            user_id=user_id,
            name=name,
            storage_path=f"{user_id}/{document_id}-{name}",
            mime_type=mime_type,
            file_size=0,
            status=status.value,
        )
        self.documents[document.id] = document
        return document

    async def get_owned(self, document_id, user_id):
        document = self.documents.get(document_id)
        if document is None or document.user_id != user_id:
            return None
        return document

    async def list_owned(self, user_id, limit=10, offset=0, status=None):
        rows = [
            d for d in self.documents.values()
            if d.user_id == user_id and (status is None or d.status == status)
        ]
        return rows[offset:offset + limit], len(rows)

    async def latest_summary(self, document_id):
        matching = [s for d, _, s in self.summaries if d == document_id]
        return matching[-1] if matching else None

    async def create(self, user_id, name, storage_path, mime_type, file_size, document_id=None):
        document = Document(
            id=document_id or uuid.uuid4(),
            user_id=user_id,
            name=name,
            storage_path=storage_path,
            mime_type=mime_type,
            file_size=file_size,
            status=DocumentStatus.PENDING.value,
        )
        self.documents[document.id] = document
        return document

    async def claim_for_processing(self, document_id, user_id) -> bool:
        document = self.documents.get(document_id)
        if (
            document is None
            or document.user_id != user_id
            or document.status not in (DocumentStatus.PENDING.value, DocumentStatus.QUEUED.value)
        ):
            return False
        await self.set_status(document_id, DocumentStatus.PROCESSING)
        return True

    async def set_status(self, document_id, status, error_message=None) -> None:
        document = self.documents[document_id]
        document.status = status.value
        document.error_message = error_message if status is DocumentStatus.FAILED else None
        self.status_history.append((document_id, status.value))

    async def mark_completed(self, document_id) -> None:
        await self.set_status(document_id, DocumentStatus.COMPLETED)

    async def mark_failed(self, document_id, error_message) -> None:
        await self.set_status(document_id, DocumentStatus.FAILED, error_message)

    async def update_fields(self, document, name=None, status=None):
        if name is not None:
            document.name = name
        if status is not None:
            document.status = status.value
            if status is not DocumentStatus.FAILED:
                document.error_message = None
        return document

    async def add_summary(self, document_id, model, summary) -> None:
        self.summaries.append((document_id, model, summary))

    async def requeue_interrupted(self) -> int:
        count = 0
        for document in self.documents.values():
            if document.status == DocumentStatus.PROCESSING.value:
                document.status = DocumentStatus.QUEUED.value
                count += 1
        return count

    async def list_unfinished(self):
        return [
            d for d in self.documents.values()
            if d.status in (DocumentStatus.PENDING.value, DocumentStatus.QUEUED.value)
        ]


def _cosine(a, b) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeChunkStore:
    """Keeps chunks in memory and ranks them like the SQL search does."""

    def __init__(self, documents: FakeDocumentRepository) -> None:
        self._documents = documents
        self.rows: Dict[Tuple[uuid.UUID, int], Tuple[uuid.UUID, str, List[float]]] = {}
        self.fail_on_insert: set = set()

    async def add_chunk(self, document_id, chunk_index, content, embedding):
        if chunk_index in self.fail_on_insert:
            raise DocQAError("insert failed")
        key = (document_id, chunk_index)
        if key in self.rows:
            raise DocQAError("duplicate key value violates unique constraint")
        chunk_id = uuid.uuid4()
        self.rows[key] = (chunk_id, content, list(embedding))
        return chunk_id

    async def delete_document_chunks(self, document_id) -> int:
        keys = [k for k in self.rows if k[0] == document_id]
        for key in keys:
            del self.rows[key]
        return len(keys)

    def indexes(self, document_id) -> List[int]:
        return sorted(i for d, i in self.rows if d == document_id)

    async def match_chunks(
        self, target_document_id, user_id, query_embedding, match_threshold, match_count
    ):
        document = self._documents.documents.get(target_document_id)
        if document is None or document.user_id != user_id:
            return []
        hits = []
        for (document_id, index), (chunk_id, content, embedding) in self.rows.items():
            if document_id != target_document_id:
                continue
            similarity = _cosine(query_embedding, embedding)
            if similarity >= match_threshold:
                hits.append(ChunkMatch(chunk_id, document_id, content, index, similarity))
        hits.sort(key=lambda m: (-m.similarity, m.chunk_index))
        return hits[:match_count]


class FakeConversationRepository:
    def __init__(self) -> None:
        self.conversations: Dict[uuid.UUID, Conversation] = {}
        self.messages: List[Message] = []
        self.citations: List[Tuple[uuid.UUID, CitationSpan]] = []

    async def get_owned(self, conversation_id, user_id):
        conversation = self.conversations.get(conversation_id)
        if conversation is None or conversation.user_id != user_id:
            return None
        return conversation

    async def create(self, user_id, title):
        conversation = Conversation(id=uuid.uuid4(), user_id=user_id, title=title)
        self.conversations[conversation.id] = conversation
        return conversation

    async def add_message(self, conversation_id, role: MessageRole, content):
        message = Message(
            id=uuid.uuid4(),
            conversation_id=conversation_id,
            role=role.value,
            content=content,
        )
        self.messages.append(message)
        return message

    async def add_citations(self, message_id, spans):
        self.citations.extend((message_id, span) for span in spans)
        return len(spans)

    async def list_owned(self, user_id, limit=10, offset=0):
        rows = [c for c in self.conversations.values() if c.user_id == user_id]
        return rows[offset:offset + limit], len(rows)

    async def list_messages(self, conversation_id):
        return [m for m in self.messages if m.conversation_id == conversation_id]

    async def delete_owned(self, conversation_id, user_id) -> bool:
        conversation = await self.get_owned(conversation_id, user_id)
        if conversation is None:
            return False
        del self.conversations[conversation_id]
        dropped = {m.id for m in self.messages if m.conversation_id == conversation_id}
        self.messages = [m for m in self.messages if m.id not in dropped]
        self.citations = [c for c in self.citations if c[0] not in dropped]
        return True


class FakeBlobStore:
    def __init__(self) -> None:
        self.blobs: Dict[str, bytes] = {}

    async def save(self, storage_path, data) -> None:
        self.blobs[storage_path] = data

    async def read(self, storage_path) -> bytes:
        if storage_path not in self.blobs:
            raise BlobNotFoundError(f"File not found in storage: {storage_path}")
        return self.blobs[storage_path]

    async def delete(self, storage_path) -> bool:
        return self.blobs.pop(storage_path, None) is not None


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def documents():
    return FakeDocumentRepository()


@pytest.fixture
def chunks(documents):
    return FakeChunkStore(documents)


@pytest.fixture
def conversations():
    return FakeConversationRepository()


@pytest.fixture
def blobs():
    return FakeBlobStore()
