"""Chat conversation ORM models.

Classes:
    MessageRole: Valid chat message roles.
    Conversation: A chat thread about one form, owned by one user.
    ChatMessage: An append-only message inside a conversation.

Functions:
    set_updated_at(_, __, target): SQLAlchemy event hook that maintains the `updated_at` timestamp.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, JSON, Text, event
from sqlmodel import Field, SQLModel

from formrag.models.timestamps import utcnow


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Conversation(SQLModel, table=True):
    __tablename__ = "chat_conversations"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    form_id: UUID = Field(foreign_key="forms.id", index=True)
    user_id: str = Field(index=True)
    title: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ChatMessage(SQLModel, table=True):
    __tablename__ = "chat_messages"

    # Integer keys keep insertion order stable when created_at values collide.
    id: Optional[int] = Field(default=None, primary_key=True)
    conversation_id: UUID = Field(foreign_key="chat_conversations.id", index=True)
    role: str
    content: str = Field(sa_column=Column(Text, nullable=False))
    meta: Optional[dict[str, Any]] = Field(default=None, sa_column=Column("metadata", JSON))
    created_at: datetime = Field(default_factory=utcnow, index=True)


@event.listens_for(Conversation, "before_update", propagate=True)
def set_updated_at(_, __, target):
    target.updated_at = utcnow()
