"""SQL-backed conversation store and form lookups.

Classes:
    ConversationSummary: A conversation plus its most recent message, for listings.
    SQLConversationStore: Append-only persistence of chat threads and messages.
    SQLFormRepository: Ownership-checked form lookups used by retrieval and chat.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from formrag.core.errors import NotFoundError, PersistenceError
from formrag.db.store import SQLStore
from formrag.models import ChatMessage, Conversation, Form, MessageRole
from formrag.models.timestamps import utcnow

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ConversationSummary:
    conversation: Conversation
    last_message: Optional[ChatMessage]


class SQLConversationStore(SQLStore):
    async def create_conversation(self, form_id: UUID, user_id: str, title: str) -> Conversation:
        conversation = Conversation(form_id=form_id, user_id=user_id, title=title)
        try:
            async with self._writer() as session:
                session.add(conversation)
                await session.commit()
                await session.refresh(conversation)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to create conversation: {exc}") from exc
        return conversation

    async def get_conversation(self, conversation_id: UUID, user_id: str) -> Optional[Conversation]:
        statement = (
            select(Conversation)
            .where(Conversation.id == conversation_id)
            .where(Conversation.user_id == user_id)
        )
        try:
            async with self._reader() as session:
                result = await session.exec(statement)
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load conversation {conversation_id}: {exc}") from exc

    async def append_message(
        self,
        conversation_id: UUID,
        role: str,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ChatMessage:
        role_value = MessageRole(role).value
        message = ChatMessage(
            conversation_id=conversation_id,
            role=role_value,
            content=content,
            meta=metadata or {},
        )
        try:
            async with self._writer() as session:
                session.add(message)
                conversation = await session.get(Conversation, conversation_id)
                if conversation is None:
                    raise NotFoundError(f"Conversation {conversation_id} not found")
                conversation.updated_at = utcnow()
                session.add(conversation)
                await session.commit()
                await session.refresh(message)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to save {role_value} message: {exc}") from exc
        return message

    async def list_recent_messages(self, conversation_id: UUID, limit: int) -> list[ChatMessage]:
        """Return the newest *limit* messages of a conversation in chronological order."""

        if limit <= 0:
            return []
        statement = (
            select(ChatMessage)
            .where(ChatMessage.conversation_id == conversation_id)
            .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
            .limit(limit)
        )
        try:
            async with self._reader() as session:
                newest_first = (await session.exec(statement)).scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load messages for {conversation_id}: {exc}") from exc
        return list(reversed(newest_first))

    async def list_messages(self, conversation_id: UUID) -> list[ChatMessage]:
        statement = (
            select(ChatMessage)
            .where(ChatMessage.conversation_id == conversation_id)
            .order_by(ChatMessage.created_at, ChatMessage.id)
        )
        try:
            async with self._reader() as session:
                return list((await session.exec(statement)).scalars().all())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load messages for {conversation_id}: {exc}") from exc

    async def list_conversations(self, form_id: UUID, user_id: str) -> list[ConversationSummary]:
        statement = (
            select(Conversation)
            .where(Conversation.form_id == form_id)
            .where(Conversation.user_id == user_id)
            .order_by(Conversation.updated_at.desc())
        )
        try:
            async with self._reader() as session:
                conversations = (await session.exec(statement)).scalars().all()
                summaries: list[ConversationSummary] = []
                for conversation in conversations:
                    last = await session.exec(
                        select(ChatMessage)
                        .where(ChatMessage.conversation_id == conversation.id)
                        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
                        .limit(1)
                    )
                    summaries.append(ConversationSummary(conversation=conversation, last_message=last.scalars().first()))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to list conversations for form {form_id}: {exc}") from exc
        return summaries

    async def delete_conversation(self, conversation_id: UUID, user_id: str) -> None:
        try:
            async with self._writer() as session:
                owned = await session.exec(
                    select(Conversation.id)
                    .where(Conversation.id == conversation_id)
                    .where(Conversation.user_id == user_id)
                )
                if owned.scalar_one_or_none() is None:
                    raise NotFoundError("Conversation not found")
                await session.exec(delete(ChatMessage).where(ChatMessage.conversation_id == conversation_id))
                await session.exec(delete(Conversation).where(Conversation.id == conversation_id))
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to delete conversation {conversation_id}: {exc}") from exc
        _LOGGER.info("Deleted conversation %s", conversation_id)


class SQLFormRepository(SQLStore):
    async def get_owned_form(self, form_id: UUID, user_id: str) -> Optional[Form]:
        statement = select(Form).where(Form.id == form_id).where(Form.user_id == user_id)
        try:
            async with self._reader() as session:
                return (await session.exec(statement)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load form {form_id}: {exc}") from exc
