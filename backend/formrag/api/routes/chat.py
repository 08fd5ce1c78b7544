"""Chat endpoints: buffered or streamed turns plus conversation history.

Endpoints:
    chat(payload, request, ...): Run a chat turn, as SSE when the client accepts `text/event-stream`.
    list_conversations(form_id, ...): Conversations on a form with their latest message.
    list_messages(conversation_id, ...): Full chronological thread.
    delete_conversation(conversation_id, ...): Remove a conversation and its messages.
"""

from __future__ import annotations

from typing import Union
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import StreamingResponse

from formrag.api.deps import get_chat_orchestrator, get_conversation_store, get_current_user_id
from formrag.models import ChatMessage
from formrag.schemas import (
    ChatRequest,
    ChatResponse,
    ConversationResource,
    LastMessage,
    MessageResource,
    RelevantResponseSchema,
)
from formrag.services import ChatOrchestrator, SQLConversationStore
from formrag.services.streaming import EVENT_STREAM_MEDIA_TYPE, STREAM_HEADERS

router = APIRouter(prefix="/chat", tags=["chat"])


def _wants_stream(request: Request) -> bool:
    return EVENT_STREAM_MEDIA_TYPE in request.headers.get("accept", "")


def _to_message_resource(message: ChatMessage) -> MessageResource:
    return MessageResource(
        id=message.id,
        conversation_id=message.conversation_id,
        role=message.role,
        content=message.content,
        metadata=message.meta or {},
        created_at=message.created_at,
    )


@router.post("", response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> Union[ChatResponse, StreamingResponse]:
    if _wants_stream(request):
        turn = await orchestrator.prepare_turn(user_id, payload.form_id, payload.message, payload.conversation_id)
        channel = orchestrator.start_stream(turn)
        return StreamingResponse(channel.events(), media_type=EVENT_STREAM_MEDIA_TYPE, headers=STREAM_HEADERS)

    result = await orchestrator.chat(user_id, payload.form_id, payload.message, payload.conversation_id)
    return ChatResponse(
        conversation_id=result.conversation_id,
        message=result.message,
        relevant_responses=[
            RelevantResponseSchema(id=item.id, content=item.content, similarity=item.similarity)
            for item in result.relevant_responses
        ],
    )


@router.get("/forms/{form_id}/conversations", response_model=list[ConversationResource])
async def list_conversations(
    form_id: UUID,
    user_id: str = Depends(get_current_user_id),
    store: SQLConversationStore = Depends(get_conversation_store),
) -> list[ConversationResource]:
    summaries = await store.list_conversations(form_id, user_id)
    resources: list[ConversationResource] = []
    for summary in summaries:
        conversation = summary.conversation
        last = summary.last_message
        resources.append(
            ConversationResource(
                id=conversation.id,
                form_id=conversation.form_id,
                user_id=conversation.user_id,
                title=conversation.title,
                created_at=conversation.created_at,
                updated_at=conversation.updated_at,
                last_message=(
                    LastMessage(content=last.content, role=last.role, created_at=last.created_at)
                    if last is not None
                    else None
                ),
            )
        )
    return resources


@router.get("/conversations/{conversation_id}/messages", response_model=list[MessageResource])
async def list_messages(
    conversation_id: UUID,
    user_id: str = Depends(get_current_user_id),
    store: SQLConversationStore = Depends(get_conversation_store),
) -> list[MessageResource]:
    conversation = await store.get_conversation(conversation_id, user_id)
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    messages = await store.list_messages(conversation_id)
    return [_to_message_resource(message) for message in messages]


@router.delete("/conversations/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: UUID,
    user_id: str = Depends(get_current_user_id),
    store: SQLConversationStore = Depends(get_conversation_store),
) -> Response:
    await store.delete_conversation(conversation_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
