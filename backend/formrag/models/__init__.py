"""Convenience exports for ORM models.

Surface the SQLModel classes so calling code can import them from a single module.
"""

from .form import Form, FormResponse
from .embedding import FormResponseEmbedding
from .queue import QueueMessageRecord
from .conversation import ChatMessage, Conversation, MessageRole

__all__ = [
    "Form",
    "FormResponse",
    "FormResponseEmbedding",
    "QueueMessageRecord",
    "Conversation",
    "ChatMessage",
    "MessageRole",
]
