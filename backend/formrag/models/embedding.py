"""Form response embedding persistence model.

Classes:
    FormResponseEmbedding: The current embedding vector for a form response, one row per response.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Column, LargeBinary
from sqlmodel import Field, SQLModel

from formrag.models.timestamps import utcnow


class FormResponseEmbedding(SQLModel, table=True):
    __tablename__ = "form_response_embeddings"

    response_id: UUID = Field(foreign_key="form_responses.id", primary_key=True)
    form_id: UUID = Field(foreign_key="forms.id", index=True)
    dim: int
    vector: bytes = Field(sa_column=Column(LargeBinary))
    updated_at: datetime = Field(default_factory=utcnow)
