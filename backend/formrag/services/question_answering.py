"""Single-shot question answering over a form's responses.

Classes:
    RelevantResponse: A cited response returned with an answer.
    AnswerResult: The answer plus the responses it was grounded on.
    QuestionAnsweringService: Embed, retrieve, and answer without persisting anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import UUID

from formrag.core.config import Settings, get_settings
from formrag.core.errors import NotFoundError, ValidationError
from formrag.services.context import ContextAssembler, ContextBlock
from formrag.services.interfaces import AnswerGenerator, EmbeddingGenerator, FormRepository
from formrag.services.prompts import NO_RELEVANT_INFORMATION, QA_FALLBACK_ANSWER, build_qa_prompt

_LOGGER = logging.getLogger(__name__)

MAX_LIMIT = 20


@dataclass(slots=True)
class RelevantResponse:
    id: UUID
    content: Optional[dict[str, Any]]
    similarity: float

    @classmethod
    def from_block(cls, block: ContextBlock) -> "RelevantResponse":
        return cls(id=block.response_id, content=block.fields, similarity=block.similarity)


@dataclass(slots=True)
class AnswerResult:
    answer: str
    relevant_responses: list[RelevantResponse] = field(default_factory=list)


class QuestionAnsweringService:
    def __init__(
        self,
        embedder: EmbeddingGenerator,
        assembler: ContextAssembler,
        generator: AnswerGenerator,
        forms: FormRepository,
        settings: Optional[Settings] = None,
    ) -> None:
        self._embedder = embedder
        self._assembler = assembler
        self._generator = generator
        self._forms = forms
        self._settings = settings or get_settings()

    async def answer(
        self,
        question: str,
        form_id: UUID,
        user_id: str,
        *,
        limit: int = 5,
        threshold: float = 0.7,
    ) -> AnswerResult:
        question = question.strip()
        if not question:
            raise ValidationError("question must not be empty")
        if not 1 <= limit <= MAX_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}")
        if not 0.0 <= threshold <= 1.0:
            raise ValidationError("threshold must be between 0 and 1")

        form = await self._forms.get_owned_form(form_id, user_id)
        if form is None:
            raise NotFoundError("Form not found")

        query_embedding = await self._embedder.embed_text(question)
        blocks = await self._assembler.build_context(query_embedding, form, threshold=threshold, limit=limit)
        _LOGGER.debug("Question on form %s matched %s responses", form_id, len(blocks))

        if not blocks:
            return AnswerResult(answer=NO_RELEVANT_INFORMATION, relevant_responses=[])

        context = "\n\n---\n\n".join(block.text for block in blocks)
        completion = await self._generator.complete(
            [{"role": "user", "content": build_qa_prompt(question, context)}],
            model=self._settings.qa_model,
            temperature=self._settings.qa_temperature,
            max_tokens=self._settings.qa_max_tokens,
        )
        return AnswerResult(
            answer=completion.text or QA_FALLBACK_ANSWER,
            relevant_responses=[RelevantResponse.from_block(block) for block in blocks],
        )
