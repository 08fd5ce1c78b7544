"""Route exports for the API layer.

Re-exports the embedding and chat routers so callers can include every endpoint group with a single import.
"""

from .chat import router as chat_router
from .embeddings import router as embeddings_router

__all__ = ["chat_router", "embeddings_router"]
