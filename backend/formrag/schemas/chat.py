"""Pydantic schemas for chat turns and conversation history.

Classes:
    ChatRequest, ChatResponse: Buffered chat turn payloads.
    MessageResource, ConversationResource: Conversation history payloads.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from formrag.schemas.embeddings import RelevantResponseSchema


class ChatRequest(BaseModel):
    form_id: UUID
    message: str = Field(min_length=1, max_length=1000)
    conversation_id: Optional[UUID] = None

    @field_validator("message")
    @classmethod
    def trim_message(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("message must not be blank")
        return text


class ChatResponse(BaseModel):
    conversation_id: UUID
    message: str
    relevant_responses: list[RelevantResponseSchema] = Field(default_factory=list)


class MessageResource(BaseModel):
    id: int
    conversation_id: UUID
    role: Literal["user", "assistant", "system"]
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class LastMessage(BaseModel):
    content: str
    role: Literal["user", "assistant", "system"]
    created_at: datetime


class ConversationResource(BaseModel):
    id: UUID
    form_id: UUID
    user_id: str
    title: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    last_message: Optional[LastMessage] = None
