"""Form and form response ORM models.

Forms and their responses are created by the CRUD layer; the ingestion and chat
pipeline only reads them (labels for context rendering, raw fields for hits).

Classes:
    Form: A form owned by a user, carrying its field schema.
    FormResponse: One submitted set of answers keyed by field id.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, JSON, Text
from sqlmodel import Field, SQLModel

from formrag.models.timestamps import utcnow


class Form(SQLModel, table=True):
    __tablename__ = "forms"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(index=True)
    title: str = ""
    description: Optional[str] = Field(default=None, sa_column=Column(Text))
    field_schema: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column("schema", JSON))
    created_at: datetime = Field(default_factory=utcnow)


class FormResponse(SQLModel, table=True):
    __tablename__ = "form_responses"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    form_id: UUID = Field(foreign_key="forms.id", index=True)
    responses: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
