"""Pydantic schemas for embedding ingestion and question answering.

Classes:
    ProcessEmbeddingsRequest, ProcessEmbeddingsResponse, FailedJobSchema: Worker trigger payloads.
    QuestionRequest, QuestionResponse, RelevantResponseSchema: Single-shot question answering payloads.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class ProcessEmbeddingsRequest(BaseModel):
    max_batch_size: int = Field(default=20, ge=1, le=100)


class FailedJobSchema(BaseModel):
    id: str
    error: str


class ProcessEmbeddingsResponse(BaseModel):
    success: bool = True
    processed: int
    skipped: int
    failed: list[FailedJobSchema] = Field(default_factory=list)
    message: Optional[str] = None


class QuestionRequest(BaseModel):
    question: str = Field(min_length=1, max_length=2000)
    form_id: UUID
    limit: int = Field(default=5, ge=1, le=20)
    threshold: float = Field(default=0.7, ge=0.0, le=1.0)

    @field_validator("question")
    @classmethod
    def trim_question(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("question must not be blank")
        return text


class RelevantResponseSchema(BaseModel):
    id: UUID
    content: Optional[dict[str, Any]] = None
    similarity: float


class QuestionResponse(BaseModel):
    success: bool = True
    answer: str
    relevant_responses: list[RelevantResponseSchema] = Field(default_factory=list)
