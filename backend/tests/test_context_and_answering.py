from uuid import uuid4

import pytest

from conftest import CUSTOMER_SCHEMA, FakeOpenAIService, seed_form, seed_response
from formrag.core.errors import NotFoundError, ValidationError
from formrag.models import Form
from formrag.services.context import (
    ContextAssembler,
    ContextBlock,
    format_response,
    format_value,
    render_blocks,
)
from formrag.services.conversations import SQLFormRepository
from formrag.services.interfaces import SimilarityHit
from formrag.services.prompts import NO_RELEVANT_INFORMATION
from formrag.services.question_answering import QuestionAnsweringService
from formrag.services.vector_store import SQLVectorStore


class StaticVectorStore:
    def __init__(self, hits: list[SimilarityHit]) -> None:
        self.hits = hits
        self.calls: list[dict] = []

    async def upsert(self, response_id, vector) -> None:
        raise AssertionError("not used")

    async def search(self, form_id, query_vector, *, threshold, limit):
        self.calls.append({"form_id": form_id, "threshold": threshold, "limit": limit})
        return list(self.hits)


def test_format_value_variants():
    assert format_value(None) == "N/A"
    assert format_value(["red", "green"]) == "red, green"
    assert format_value("2024-03-05", "date") == "3/5/2024"
    assert format_value("next tuesday", "date") == "next tuesday"
    assert format_value(True) == "true"
    assert format_value(4.5) == "4.5"


def test_format_response_uses_labels_and_placeholders():
    text = format_response(
        {"name": "Ada", "visited": "2024-12-01T10:00:00Z", "tags": ["vip", "repeat"], "extra": None},
        CUSTOMER_SCHEMA,
    )
    assert text.splitlines() == [
        "Full name: Ada",
        "Visit date: 12/1/2024",
        "Tags: vip, repeat",
        "extra: N/A",
    ]
    assert format_response(None, CUSTOMER_SCHEMA) == "No response data available."
    assert format_response({}, {"fields": CUSTOMER_SCHEMA}) == "Empty response"


def test_render_blocks_numbers_responses():
    blocks = [
        ContextBlock(response_id=uuid4(), similarity=0.912, text="Full name: Ada", fields={"name": "Ada"}),
        ContextBlock(response_id=uuid4(), similarity=0.5, text="Full name: Grace", fields={"name": "Grace"}),
    ]
    rendered = render_blocks(blocks)

    assert rendered.startswith("Response 1 (Similarity: 0.91):\nFull name: Ada\n---")
    assert "\n\nResponse 2 (Similarity: 0.50):\nFull name: Grace\n---" in rendered
    assert render_blocks([]) == "No responses found."


@pytest.mark.asyncio
async def test_assembler_searches_pool_and_keeps_best():
    form = Form(id=uuid4(), user_id="user-1", title="Feedback", field_schema=CUSTOMER_SCHEMA)
    hits = [
        SimilarityHit(response_id=uuid4(), fields={"name": "low"}, similarity=0.2),
        SimilarityHit(response_id=uuid4(), fields={"name": "high"}, similarity=0.9),
        SimilarityHit(response_id=uuid4(), fields={"name": "mid"}, similarity=0.6),
    ]
    store = StaticVectorStore(hits)

    blocks = await ContextAssembler(store).build_context([1.0], form, threshold=0.0, limit=2, pool_size=100)

    assert store.calls == [{"form_id": form.id, "threshold": 0.0, "limit": 100}]
    assert [block.text for block in blocks] == ["Full name: high", "Full name: mid"]


@pytest.mark.asyncio
async def test_answer_without_matches_skips_generation(session_factory, settings):
    form = await seed_form(session_factory)
    openai = FakeOpenAIService()
    service = QuestionAnsweringService(
        openai, ContextAssembler(SQLVectorStore(session_factory)), openai, SQLFormRepository(session_factory), settings
    )

    result = await service.answer("What did people say?", form.id, "user-1")

    assert result.answer == NO_RELEVANT_INFORMATION
    assert result.relevant_responses == []
    assert openai.complete_calls == []


@pytest.mark.asyncio
async def test_answer_grounds_completion_on_matching_responses(session_factory, settings):
    form = await seed_form(session_factory)
    store = SQLVectorStore(session_factory)
    happy = await seed_response(session_factory, form.id, {"name": "Ada", "rating": 5})
    unrelated = await seed_response(session_factory, form.id, {"name": "Grace", "rating": 1})
    await store.upsert(happy.id, [1.0, 0.0, 0.0])
    await store.upsert(unrelated.id, [0.0, 1.0, 0.0])
    openai = FakeOpenAIService(answer="Ada rated 5.")
    service = QuestionAnsweringService(openai, ContextAssembler(store), openai, SQLFormRepository(session_factory), settings)

    result = await service.answer("  Who was happy?  ", form.id, "user-1", limit=5, threshold=0.7)

    assert result.answer == "Ada rated 5."
    assert [item.id for item in result.relevant_responses] == [happy.id]
    assert result.relevant_responses[0].content == {"name": "Ada", "rating": 5}
    call = openai.complete_calls[0]
    assert call["model"] == settings.qa_model
    assert call["temperature"] == settings.qa_temperature
    assert call["max_tokens"] == settings.qa_max_tokens
    prompt = call["messages"][0]["content"]
    assert "Full name: Ada\nRating: 5" in prompt
    assert "Grace" not in prompt
    assert "QUESTION:\nWho was happy?" in prompt


@pytest.mark.asyncio
async def test_answer_validates_input_and_ownership(session_factory, settings):
    form = await seed_form(session_factory, user_id="owner")
    openai = FakeOpenAIService()
    service = QuestionAnsweringService(
        openai, ContextAssembler(SQLVectorStore(session_factory)), openai, SQLFormRepository(session_factory), settings
    )

    with pytest.raises(ValidationError):
        await service.answer("   ", form.id, "owner")
    with pytest.raises(ValidationError):
        await service.answer("question", form.id, "owner", limit=50)
    with pytest.raises(NotFoundError):
        await service.answer("question", form.id, "someone-else")
    assert openai.embed_calls == []
