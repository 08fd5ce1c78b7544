"""Service layer exports.

Expose the pipeline services and their SQL/OpenAI collaborators for easy importing.
"""

from .openai_client import OpenAIService
from .vector_store import SQLVectorStore
from .queue import SQLMessageQueue
from .conversations import SQLConversationStore, SQLFormRepository
from .context import ContextAssembler
from .embedding_worker import EmbeddingWorker
from .question_answering import QuestionAnsweringService
from .chat import ChatOrchestrator

__all__ = [
    "OpenAIService",
    "SQLVectorStore",
    "SQLMessageQueue",
    "SQLConversationStore",
    "SQLFormRepository",
    "ContextAssembler",
    "EmbeddingWorker",
    "QuestionAnsweringService",
    "ChatOrchestrator",
]
