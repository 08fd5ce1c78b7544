"""Async OpenAI client wrapper used as embedding and answer generator.

Classes:
    OpenAIService: Generates embeddings, buffered completions and streamed completions.

Functions:
    build_client(provider, max_retries): Construct the SDK client for a configured provider.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Optional, Union

from openai import AsyncAzureOpenAI, AsyncOpenAI, OpenAIError

from formrag.core.config import AzureOpenAIProvider, OpenAIProvider, Settings, get_settings
from formrag.core.errors import GenerationError
from formrag.services.interfaces import ChatPrompt, Completion

SDKClient = Union[AsyncOpenAI, AsyncAzureOpenAI]


def build_client(provider: Union[OpenAIProvider, AzureOpenAIProvider], max_retries: int) -> Optional[SDKClient]:
    if isinstance(provider, AzureOpenAIProvider):
        return AsyncAzureOpenAI(
            api_key=provider.api_key.get_secret_value(),
            azure_endpoint=provider.endpoint,
            api_version=provider.api_version,
            max_retries=max_retries,
        )
    if provider.api_key is None:
        return None
    return AsyncOpenAI(
        api_key=provider.api_key.get_secret_value(),
        base_url=provider.base_url,
        organization=provider.organization,
        max_retries=max_retries,
    )


class OpenAIService:
    def __init__(self, client: Optional[SDKClient] = None, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        if client is not None:
            self._client = client
        else:
            self._client = build_client(self._settings.provider, self._settings.openai_max_retries)

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def _require_client(self) -> SDKClient:
        if self._client is None:
            raise GenerationError("OpenAI client not configured. Set PROVIDER__API_KEY.")
        return self._client

    async def embed_text(self, text: str, *, model: Optional[str] = None) -> list[float]:
        client = self._require_client()
        chosen_model = model or self._settings.embedding_model
        try:
            response = await client.embeddings.create(model=chosen_model, input=text, encoding_format="float")
        except OpenAIError as exc:
            raise GenerationError(f"Embedding request failed: {exc}") from exc

        embedding = response.data[0].embedding if response.data else None
        if not embedding:
            raise GenerationError("Failed to generate embedding from OpenAI")
        return list(embedding)

    async def complete(
        self,
        messages: ChatPrompt,
        *,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        client = self._require_client()
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as exc:
            raise GenerationError(f"Chat completion failed: {exc}") from exc

        choice = response.choices[0] if response.choices else None
        content = (getattr(choice.message, "content", "") or "") if choice else ""
        usage: dict[str, Any] = response.usage.model_dump() if response.usage is not None else {}
        return Completion(
            text=content.strip(),
            model=getattr(response, "model", None) or model,
            finish_reason=getattr(choice, "finish_reason", None),
            usage=usage,
        )

    async def stream_completion(
        self,
        messages: ChatPrompt,
        *,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> AsyncIterator[str]:
        client = self._require_client()
        try:
            stream = await client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
            )
            async for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except OpenAIError as exc:
            raise GenerationError(f"Chat completion stream failed: {exc}") from exc
