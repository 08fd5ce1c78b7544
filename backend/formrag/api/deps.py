"""FastAPI dependency providers for the pipeline services.

Functions:
    get_current_user_id(x_user_id): Caller identity taken from the `X-User-Id` header.
    get_openai_service(): Process-wide OpenAI wrapper.
    get_embedding_worker(...), get_question_answering_service(...), get_chat_orchestrator(...):
        Assemble services from the SQL stores and the OpenAI wrapper.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from formrag.core.config import Settings, get_settings
from formrag.db.session import get_session_factory
from formrag.services import (
    ChatOrchestrator,
    ContextAssembler,
    EmbeddingWorker,
    OpenAIService,
    QuestionAnsweringService,
    SQLConversationStore,
    SQLFormRepository,
    SQLMessageQueue,
    SQLVectorStore,
)

SessionFactory = async_sessionmaker[AsyncSession]


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return user_id


@lru_cache()
def get_openai_service() -> OpenAIService:
    return OpenAIService()


def get_vector_store(factory: SessionFactory = Depends(get_session_factory)) -> SQLVectorStore:
    return SQLVectorStore(factory)


def get_message_queue(
    factory: SessionFactory = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> SQLMessageQueue:
    return SQLMessageQueue(factory, settings.embedding_queue_name)


def get_conversation_store(factory: SessionFactory = Depends(get_session_factory)) -> SQLConversationStore:
    return SQLConversationStore(factory)


def get_form_repository(factory: SessionFactory = Depends(get_session_factory)) -> SQLFormRepository:
    return SQLFormRepository(factory)


def get_embedding_worker(
    queue: SQLMessageQueue = Depends(get_message_queue),
    openai_service: OpenAIService = Depends(get_openai_service),
    vector_store: SQLVectorStore = Depends(get_vector_store),
    settings: Settings = Depends(get_settings),
) -> EmbeddingWorker:
    return EmbeddingWorker(queue, openai_service, vector_store, settings)


def get_question_answering_service(
    openai_service: OpenAIService = Depends(get_openai_service),
    vector_store: SQLVectorStore = Depends(get_vector_store),
    forms: SQLFormRepository = Depends(get_form_repository),
    settings: Settings = Depends(get_settings),
) -> QuestionAnsweringService:
    return QuestionAnsweringService(openai_service, ContextAssembler(vector_store), openai_service, forms, settings)


def get_chat_orchestrator(
    openai_service: OpenAIService = Depends(get_openai_service),
    vector_store: SQLVectorStore = Depends(get_vector_store),
    conversations: SQLConversationStore = Depends(get_conversation_store),
    forms: SQLFormRepository = Depends(get_form_repository),
    settings: Settings = Depends(get_settings),
) -> ChatOrchestrator:
    return ChatOrchestrator(
        openai_service,
        ContextAssembler(vector_store),
        openai_service,
        conversations,
        forms,
        settings,
    )
