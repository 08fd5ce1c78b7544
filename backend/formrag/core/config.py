"""Runtime configuration helpers.

Classes:
    OpenAIProvider: Connection settings for the public OpenAI API.
    AzureOpenAIProvider: Connection settings for an Azure OpenAI deployment.
    Settings: Pydantic settings model capturing environment-driven defaults.

Functions:
    get_settings(): Return a cached Settings instance for dependency injection.
"""

from functools import lru_cache
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OpenAIProvider(BaseModel):
    kind: Literal["openai"] = "openai"
    api_key: Optional[SecretStr] = None
    base_url: Optional[str] = None
    organization: Optional[str] = None


class AzureOpenAIProvider(BaseModel):
    kind: Literal["azure"] = "azure"
    api_key: SecretStr
    endpoint: str
    api_version: str = "2024-06-01"

    @field_validator("endpoint")
    @classmethod
    def require_https(cls, value: str) -> str:
        if not value.startswith("https://"):
            raise ValueError("Azure endpoint must be an https:// URL")
        return value.rstrip("/")


ProviderConfig = Annotated[Union[OpenAIProvider, AzureOpenAIProvider], Field(discriminator="kind")]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_name: str = "Form Response Insights API"
    database_url: str = "sqlite+aiosqlite:///./data/formrag.db"
    log_level: str = "INFO"
    provider: ProviderConfig = Field(default_factory=OpenAIProvider)
    openai_max_retries: int = Field(default=0, ge=0, le=10)
    embedding_model: str = "text-embedding-3-small"
    embedding_max_tokens: int = Field(default=8191, ge=1)
    qa_model: str = "gpt-4o"
    qa_temperature: float = 0.3
    qa_max_tokens: int = 500
    chat_model: str = "gpt-4o-mini"
    chat_temperature: float = 0.7
    chat_max_tokens: int = 1000
    embedding_queue_name: str = "form_response_embeddings"
    embedding_visibility_timeout: int = Field(default=120, ge=1)
    embedding_batch_size: int = Field(default=20, ge=1, le=100)
    chat_search_pool: int = Field(default=100, ge=1)
    chat_context_limit: int = Field(default=20, ge=1)
    chat_history_limit: int = Field(default=10, ge=0)
    persist_partial_answers: bool = False

    @field_validator("log_level")
    @classmethod
    def normalise_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level '{value}'")
        return level


@lru_cache()
def get_settings() -> Settings:
    return Settings()
