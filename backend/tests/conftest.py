from collections.abc import AsyncGenerator, AsyncIterator, Iterable
from typing import Any, Optional
from uuid import UUID

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel.ext.asyncio.session import AsyncSession

from formrag.api.deps import get_openai_service
from formrag.core.config import Settings, get_settings
from formrag.core.errors import GenerationError
from formrag.db.session import get_session_factory, init_db
from formrag.main import app
from formrag.models import Form, FormResponse
from formrag.services.interfaces import Completion

CUSTOMER_SCHEMA = [
    {"id": "name", "label": "Full name", "type": "text"},
    {"id": "rating", "label": "Rating", "type": "number"},
    {"id": "visited", "label": "Visit date", "type": "date"},
    {"id": "tags", "label": "Tags", "type": "checkbox"},
]


class FakeOpenAIService:
    """In-memory stand-in for OpenAIService.

    Embeddings come from *vectors* keyed by exact input text, falling back to
    *default_vector*. Streams yield *tokens* and raise after *fail_after* tokens
    when it is set.
    """

    def __init__(
        self,
        vectors: Optional[dict[str, list[float]]] = None,
        default_vector: Optional[list[float]] = None,
        answer: str = "Most customers rated the visit highly.",
        tokens: Iterable[str] = ("Most ", "customers ", "were ", "happy."),
        fail_after: Optional[int] = None,
        embed_errors: Optional[dict[str, Exception]] = None,
    ) -> None:
        self.vectors = vectors or {}
        self.default_vector = default_vector or [1.0, 0.0, 0.0]
        self.answer = answer
        self.tokens = list(tokens)
        self.fail_after = fail_after
        self.embed_errors = embed_errors or {}
        self.embed_calls: list[str] = []
        self.complete_calls: list[dict[str, Any]] = []
        self.stream_calls: list[dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        return True

    async def embed_text(self, text: str, **_: object) -> list[float]:
        self.embed_calls.append(text)
        for marker, error in self.embed_errors.items():
            if marker in text:
                raise error
        return list(self.vectors.get(text, self.default_vector))

    async def complete(self, messages, *, model: str, temperature: float, max_tokens: int) -> Completion:
        self.complete_calls.append(
            {"messages": messages, "model": model, "temperature": temperature, "max_tokens": max_tokens}
        )
        return Completion(text=self.answer, model=model, finish_reason="stop")

    async def stream_completion(
        self, messages, *, model: str, temperature: float, max_tokens: int
    ) -> AsyncIterator[str]:
        self.stream_calls.append({"messages": messages, "model": model})
        for index, token in enumerate(self.tokens):
            if self.fail_after is not None and index >= self.fail_after:
                raise GenerationError("Chat completion stream failed: connection reset")
            yield token


@pytest.fixture()
def settings() -> Settings:
    return Settings(_env_file=None, database_url="sqlite+aiosqlite:///:memory:")


@pytest_asyncio.fixture()
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'formrag.db'}",
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
def fake_openai() -> FakeOpenAIService:
    return FakeOpenAIService()


async def seed_form(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: str = "user-1",
    title: str = "Customer feedback",
    schema: Optional[list[dict[str, Any]]] = None,
) -> Form:
    form = Form(user_id=user_id, title=title, field_schema=CUSTOMER_SCHEMA if schema is None else schema)
    async with session_factory() as session:
        session.add(form)
        await session.commit()
        await session.refresh(form)
    return form


async def seed_response(
    session_factory: async_sessionmaker[AsyncSession],
    form_id: UUID,
    responses: Optional[dict[str, Any]] = None,
) -> FormResponse:
    response = FormResponse(form_id=form_id, responses=responses)
    async with session_factory() as session:
        session.add(response)
        await session.commit()
        await session.refresh(response)
    return response


@pytest_asyncio.fixture()
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    fake_openai: FakeOpenAIService,
    settings: Settings,
) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_openai_service] = lambda: fake_openai
    app.dependency_overrides[get_settings] = lambda: settings
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client
    app.dependency_overrides.clear()
