"""Retrieval-augmented chat over a form's responses.

A turn moves through RECEIVED -> EMBEDDING_QUERY -> RETRIEVING_CONTEXT ->
CONVERSATION_RESOLVED -> GENERATING_ANSWER -> PERSISTED. `prepare_turn` covers
everything up to generation and raises typed errors the API layer maps to HTTP
responses; `complete_turn` and `start_stream` finish the turn in buffered or
streamed form.

Classes:
    KeyedLock: In-process mutex per key, dropped once nobody holds or awaits it.
    PreparedTurn: A validated turn holding its conversation lock and final prompt.
    ChatTurnResult: Buffered answer returned to the caller.
    ChatOrchestrator: Composes retrieval, generation, and the conversation store.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Hashable, Optional
from uuid import UUID

from formrag.core.config import Settings, get_settings
from formrag.core.errors import NotFoundError, ServiceError, ValidationError
from formrag.models import ChatMessage, Form, MessageRole
from formrag.services.context import ContextAssembler, ContextBlock, render_blocks
from formrag.services.failures import describe_failure
from formrag.services.interfaces import (
    AnswerGenerator,
    ChatPrompt,
    ConversationStore,
    EmbeddingGenerator,
    FormRepository,
)
from formrag.services.prompts import CHAT_FALLBACK_ANSWER, STREAM_ERROR_MESSAGE, build_chat_system_prompt
from formrag.services.question_answering import RelevantResponse
from formrag.services.streaming import EventChannel, TokenAccumulator, spawn_detached
from formrag.utils.text import truncate_title

_LOGGER = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000


class KeyedLock:
    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    async def acquire(self, key: Hashable) -> None:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            await lock.acquire()
        except BaseException:
            self._forget(key)
            raise

    def release(self, key: Hashable) -> None:
        self._locks[key].release()
        self._forget(key)

    def _forget(self, key: Hashable) -> None:
        self._users[key] -= 1
        if self._users[key] == 0:
            del self._users[key]
            del self._locks[key]


_CONVERSATION_LOCKS = KeyedLock()


@dataclass(slots=True)
class PreparedTurn:
    conversation_id: UUID
    created_conversation: bool
    form: Form
    blocks: list[ContextBlock]
    prompt: ChatPrompt
    history: list[ChatMessage] = field(default_factory=list)

    @property
    def cited_response_ids(self) -> list[str]:
        return [str(block.response_id) for block in self.blocks]

    def relevant_responses(self) -> list[RelevantResponse]:
        return [RelevantResponse.from_block(block) for block in self.blocks]


@dataclass(slots=True)
class ChatTurnResult:
    conversation_id: UUID
    message: str
    relevant_responses: list[RelevantResponse]


class ChatOrchestrator:
    def __init__(
        self,
        embedder: EmbeddingGenerator,
        assembler: ContextAssembler,
        generator: AnswerGenerator,
        conversations: ConversationStore,
        forms: FormRepository,
        settings: Optional[Settings] = None,
        locks: Optional[KeyedLock] = None,
    ) -> None:
        self._embedder = embedder
        self._assembler = assembler
        self._generator = generator
        self._conversations = conversations
        self._forms = forms
        self._settings = settings or get_settings()
        self._locks = locks or _CONVERSATION_LOCKS

    async def chat(
        self,
        user_id: str,
        form_id: UUID,
        message: str,
        conversation_id: Optional[UUID] = None,
    ) -> ChatTurnResult:
        turn = await self.prepare_turn(user_id, form_id, message, conversation_id)
        return await self.complete_turn(turn)

    async def prepare_turn(
        self,
        user_id: str,
        form_id: UUID,
        message: str,
        conversation_id: Optional[UUID] = None,
    ) -> PreparedTurn:
        """Run every step before generation.

        On success the returned turn holds the conversation lock; `complete_turn` or
        the producer started by `start_stream` releases it.
        """

        text = (message or "").strip()
        if not text:
            raise ValidationError("message must not be empty")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"message must be at most {MAX_MESSAGE_LENGTH} characters")

        form = await self._forms.get_owned_form(form_id, user_id)
        if form is None:
            raise NotFoundError("Form not found")

        if conversation_id is not None:
            existing = await self._conversations.get_conversation(conversation_id, user_id)
            if existing is None or existing.form_id != form.id:
                raise NotFoundError("Conversation not found")

        query_embedding = await self._embedder.embed_text(text)
        blocks = await self._assembler.build_context(
            query_embedding,
            form,
            threshold=0.0,
            limit=self._settings.chat_context_limit,
            pool_size=self._settings.chat_search_pool,
            with_types=True,
        )
        _LOGGER.debug("Chat turn on form %s retrieved %s responses", form.id, len(blocks))

        created = conversation_id is None
        if created:
            conversation = await self._conversations.create_conversation(form.id, user_id, truncate_title(text))
            conversation_id = conversation.id

        await self._locks.acquire(conversation_id)
        try:
            history = await self._conversations.list_recent_messages(
                conversation_id, self._settings.chat_history_limit
            )
            await self._save_message(conversation_id, MessageRole.USER, text, {"form_id": str(form.id)})
        except BaseException:
            self._locks.release(conversation_id)
            raise

        system_prompt = build_chat_system_prompt(form.title, form.field_schema, render_blocks(blocks), len(blocks))
        prompt: ChatPrompt = [
            {"role": "system", "content": system_prompt},
            *({"role": item.role, "content": item.content} for item in history),
            {"role": "user", "content": text},
        ]
        return PreparedTurn(
            conversation_id=conversation_id,
            created_conversation=created,
            form=form,
            blocks=blocks,
            prompt=prompt,
            history=history,
        )

    async def complete_turn(self, turn: PreparedTurn) -> ChatTurnResult:
        try:
            completion = await self._generator.complete(
                turn.prompt,
                model=self._settings.chat_model,
                temperature=self._settings.chat_temperature,
                max_tokens=self._settings.chat_max_tokens,
            )
            answer = completion.text or CHAT_FALLBACK_ANSWER
            await self._save_message(
                turn.conversation_id, MessageRole.ASSISTANT, answer, self._assistant_metadata(turn)
            )
        finally:
            self._locks.release(turn.conversation_id)
        return ChatTurnResult(
            conversation_id=turn.conversation_id,
            message=answer,
            relevant_responses=turn.relevant_responses(),
        )

    def start_stream(self, turn: PreparedTurn) -> EventChannel:
        channel = EventChannel()
        spawn_detached(self._produce_stream(turn, channel))
        return channel

    async def _produce_stream(self, turn: PreparedTurn, channel: EventChannel) -> None:
        accumulator = TokenAccumulator()
        try:
            try:
                async for token in self._generator.stream_completion(
                    turn.prompt,
                    model=self._settings.chat_model,
                    temperature=self._settings.chat_temperature,
                    max_tokens=self._settings.chat_max_tokens,
                ):
                    accumulator.append(token)
                    channel.put({"text": token})
            except Exception as exc:
                _LOGGER.error("Stream error in conversation %s", turn.conversation_id, exc_info=True)
                if self._settings.persist_partial_answers and len(accumulator):
                    metadata = self._assistant_metadata(turn)
                    metadata.update(truncated=True, error=describe_failure(exc))
                    await self._save_message(turn.conversation_id, MessageRole.ASSISTANT, accumulator.text, metadata)
                channel.put({"error": STREAM_ERROR_MESSAGE})
                return

            await self._save_message(
                turn.conversation_id, MessageRole.ASSISTANT, accumulator.text, self._assistant_metadata(turn)
            )
            channel.put({"conversationId": str(turn.conversation_id), "isComplete": True})
        finally:
            self._locks.release(turn.conversation_id)
            channel.close()

    def _assistant_metadata(self, turn: PreparedTurn) -> dict[str, Any]:
        return {"relevant_response_ids": turn.cited_response_ids, "model": self._settings.chat_model}

    async def _save_message(
        self,
        conversation_id: UUID,
        role: MessageRole,
        content: str,
        metadata: dict[str, Any],
    ) -> Optional[ChatMessage]:
        try:
            return await self._conversations.append_message(conversation_id, role.value, content, metadata)
        except ServiceError:
            _LOGGER.error("Failed to save %s message in conversation %s", role.value, conversation_id, exc_info=True)
            return None
