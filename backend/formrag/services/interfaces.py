"""Collaborator contracts and value objects shared across the pipeline.

The worker, retrieval and chat services depend on these protocols only; the
SQL and OpenAI implementations live in their own modules and tests pass
in-memory fakes.

Classes:
    EmbeddingJob: Queue payload asking for a form response to be embedded.
    QueueMessage: A job as handed out by the queue, addressed by its message id.
    SimilarityHit: One ranked match returned by a vector search.
    Completion: A buffered chat completion result.
    EmbeddingGenerator, AnswerGenerator, VectorStore, MessageQueue,
    ConversationStore, FormRepository: Protocols for the external collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional, Protocol, Sequence
from uuid import UUID

from formrag.models import ChatMessage, Conversation, Form

ChatPrompt = list[dict[str, str]]


@dataclass(slots=True, frozen=True)
class EmbeddingJob:
    id: str
    text: str

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "text": self.text}


@dataclass(slots=True)
class QueueMessage:
    msg_id: int
    payload: Any
    read_ct: int = 1


@dataclass(slots=True)
class SimilarityHit:
    response_id: UUID
    fields: Optional[dict[str, Any]]
    similarity: float


@dataclass(slots=True)
class Completion:
    text: str
    model: str
    finish_reason: Optional[str] = None
    usage: dict[str, Any] = field(default_factory=dict)


class EmbeddingGenerator(Protocol):
    async def embed_text(self, text: str) -> list[float]: ...


class AnswerGenerator(Protocol):
    async def complete(
        self,
        messages: ChatPrompt,
        *,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> Completion: ...

    def stream_completion(
        self,
        messages: ChatPrompt,
        *,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> AsyncIterator[str]: ...


class VectorStore(Protocol):
    async def upsert(self, response_id: UUID, vector: Sequence[float]) -> None: ...

    async def search(
        self,
        form_id: UUID,
        query_vector: Sequence[float],
        *,
        threshold: float,
        limit: int,
    ) -> list[SimilarityHit]: ...


class MessageQueue(Protocol):
    async def read(self, max_count: int, visibility_timeout: int) -> list[QueueMessage]: ...

    async def delete_many(self, msg_ids: Sequence[int]) -> int: ...

    async def send(self, payload: dict[str, Any]) -> int: ...


class ConversationStore(Protocol):
    async def create_conversation(self, form_id: UUID, user_id: str, title: str) -> Conversation: ...

    async def get_conversation(self, conversation_id: UUID, user_id: str) -> Optional[Conversation]: ...

    async def append_message(
        self,
        conversation_id: UUID,
        role: str,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ChatMessage: ...

    async def list_recent_messages(self, conversation_id: UUID, limit: int) -> list[ChatMessage]: ...


class FormRepository(Protocol):
    async def get_owned_form(self, form_id: UUID, user_id: str) -> Optional[Form]: ...
