"""Convenience exports for API schemas.

Re-exports the pydantic models used across the backend so consumers can import from one module.
"""

from .embeddings import (
    FailedJobSchema,
    ProcessEmbeddingsRequest,
    ProcessEmbeddingsResponse,
    QuestionRequest,
    QuestionResponse,
    RelevantResponseSchema,
)
from .chat import (
    ChatRequest,
    ChatResponse,
    ConversationResource,
    LastMessage,
    MessageResource,
)

__all__ = [
    "ProcessEmbeddingsRequest",
    "ProcessEmbeddingsResponse",
    "FailedJobSchema",
    "QuestionRequest",
    "QuestionResponse",
    "RelevantResponseSchema",
    "ChatRequest",
    "ChatResponse",
    "ConversationResource",
    "LastMessage",
    "MessageResource",
]
