from uuid import uuid4

import pytest
from sqlalchemy import func, select

from conftest import seed_form, seed_response
from formrag.core.errors import NotFoundError, ValidationError
from formrag.models import FormResponseEmbedding
from formrag.models.timestamps import utcnow
from formrag.services.conversations import SQLConversationStore, SQLFormRepository
from formrag.services.queue import SQLMessageQueue
from formrag.services.vector_store import SQLVectorStore


@pytest.mark.asyncio
async def test_upsert_is_idempotent_per_response(session_factory):
    form = await seed_form(session_factory)
    response = await seed_response(session_factory, form.id, {"name": "Ada"})
    store = SQLVectorStore(session_factory)

    await store.upsert(response.id, [1.0, 0.0, 0.0])
    await store.upsert(response.id, [0.0, 1.0, 0.0])

    async with session_factory() as session:
        count = (await session.exec(select(func.count()).select_from(FormResponseEmbedding))).scalar_one()
    assert count == 1

    hits = await store.search(form.id, [0.0, 1.0, 0.0], threshold=0.9, limit=5)
    assert [hit.response_id for hit in hits] == [response.id]
    assert hits[0].similarity == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_upsert_rejects_missing_response_and_bad_vectors(session_factory):
    store = SQLVectorStore(session_factory)

    with pytest.raises(NotFoundError, match="not found"):
        await store.upsert(uuid4(), [0.1, 0.2])
    with pytest.raises(ValidationError, match="invalid format"):
        await store.upsert(uuid4(), [])


@pytest.mark.asyncio
async def test_search_ranks_filters_and_scopes_to_form(session_factory):
    form = await seed_form(session_factory)
    other_form = await seed_form(session_factory, title="Other")
    store = SQLVectorStore(session_factory)

    exact = await seed_response(session_factory, form.id, {"name": "exact"})
    close = await seed_response(session_factory, form.id, {"name": "close"})
    far = await seed_response(session_factory, form.id, {"name": "far"})
    foreign = await seed_response(session_factory, other_form.id, {"name": "foreign"})
    await store.upsert(exact.id, [1.0, 0.0])
    await store.upsert(close.id, [0.8, 0.6])
    await store.upsert(far.id, [0.0, 1.0])
    await store.upsert(foreign.id, [1.0, 0.0])

    hits = await store.search(form.id, [1.0, 0.0], threshold=0.5, limit=5)

    assert [hit.response_id for hit in hits] == [exact.id, close.id]
    assert hits[1].similarity == pytest.approx(0.8, rel=1e-5)
    assert hits[0].fields == {"name": "exact"}

    top_one = await store.search(form.id, [1.0, 0.0], threshold=0.0, limit=1)
    assert [hit.response_id for hit in top_one] == [exact.id]


@pytest.mark.asyncio
async def test_queue_hides_read_messages_until_visibility_timeout(session_factory):
    queue = SQLMessageQueue(session_factory, "embeddings")
    other = SQLMessageQueue(session_factory, "other")
    first = await queue.send({"id": "a", "text": "one"})
    second = await queue.send({"id": "b", "text": "two"})
    await other.send({"id": "c", "text": "elsewhere"})

    batch = await queue.read(1, visibility_timeout=0)
    assert [message.msg_id for message in batch] == [first]
    assert batch[0].read_ct == 1

    redelivered = await queue.read(5, visibility_timeout=3600)
    assert [message.msg_id for message in redelivered] == [first, second]
    assert redelivered[0].read_ct == 2

    assert await queue.read(5, visibility_timeout=3600) == []
    assert await queue.delete_many([first, first, second]) == 2
    assert [message.payload["id"] for message in await other.read(5, 60)] == ["c"]


@pytest.mark.asyncio
async def test_conversation_listing_and_cascade_delete(session_factory):
    form = await seed_form(session_factory)
    store = SQLConversationStore(session_factory)
    older = await store.create_conversation(form.id, "user-1", "First question")
    newer = await store.create_conversation(form.id, "user-1", "Second question")
    await store.create_conversation(form.id, "user-2", "Someone else")

    await store.append_message(older.id, "user", "hello", {"form_id": str(form.id)})
    await store.append_message(older.id, "assistant", "hi there")

    summaries = await store.list_conversations(form.id, "user-1")
    assert [summary.conversation.id for summary in summaries] == [older.id, newer.id]
    assert summaries[0].last_message.content == "hi there"
    assert summaries[1].last_message is None

    messages = await store.list_messages(older.id)
    assert [(message.role, message.meta) for message in messages] == [
        ("user", {"form_id": str(form.id)}),
        ("assistant", {}),
    ]

    with pytest.raises(NotFoundError):
        await store.delete_conversation(older.id, "user-2")
    await store.delete_conversation(older.id, "user-1")
    assert await store.get_conversation(older.id, "user-1") is None
    assert await store.list_messages(older.id) == []


@pytest.mark.asyncio
async def test_append_message_requires_existing_conversation(session_factory):
    store = SQLConversationStore(session_factory)

    with pytest.raises(NotFoundError):
        await store.append_message(uuid4(), "user", "orphan")
    with pytest.raises(ValueError):
        await store.append_message(uuid4(), "moderator", "bad role")


@pytest.mark.asyncio
async def test_form_repository_checks_ownership(session_factory):
    form = await seed_form(session_factory, user_id="owner")
    forms = SQLFormRepository(session_factory)

    assert (await forms.get_owned_form(form.id, "owner")).title == "Customer feedback"
    assert await forms.get_owned_form(form.id, "intruder") is None


@pytest.mark.asyncio
async def test_timestamps_are_timezone_aware_and_persist(session_factory):
    assert utcnow().tzinfo is not None

    form = await seed_form(session_factory)
    store = SQLConversationStore(session_factory)
    conversation = await store.create_conversation(form.id, "user-1", "Aware")
    message = await store.append_message(conversation.id, "user", "stamped")

    assert message.id is not None
    assert [item.content for item in await store.list_recent_messages(conversation.id, 5)] == ["stamped"]
