"""Embedding ingestion and single-shot question answering endpoints.

Endpoints:
    process_embeddings(payload, worker): Drain one bounded batch from the embedding queue.
    answer_question(payload, user_id, service): Answer a question from a form's responses.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from formrag.api.deps import get_current_user_id, get_embedding_worker, get_question_answering_service
from formrag.schemas import (
    FailedJobSchema,
    ProcessEmbeddingsRequest,
    ProcessEmbeddingsResponse,
    QuestionRequest,
    QuestionResponse,
    RelevantResponseSchema,
)
from formrag.services import EmbeddingWorker, QuestionAnsweringService

_LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/embeddings", tags=["embeddings"])


@router.post("/process", response_model=ProcessEmbeddingsResponse)
async def process_embeddings(
    payload: Optional[ProcessEmbeddingsRequest] = None,
    user_id: str = Depends(get_current_user_id),
    worker: EmbeddingWorker = Depends(get_embedding_worker),
) -> ProcessEmbeddingsResponse:
    request = payload or ProcessEmbeddingsRequest()
    _LOGGER.debug("Embedding batch requested by %s", user_id)
    result = await worker.process_batch(request.max_batch_size)
    if not (result.processed or result.skipped or result.failed):
        return ProcessEmbeddingsResponse(processed=0, skipped=0, message="No messages to process")
    _LOGGER.info(
        "Embedding batch processed=%s skipped=%s failed=%s",
        result.processed,
        result.skipped,
        len(result.failed),
    )
    return ProcessEmbeddingsResponse(
        processed=result.processed,
        skipped=result.skipped,
        failed=[FailedJobSchema(id=job.id, error=job.error) for job in result.failed],
    )


@router.post("/answer", response_model=QuestionResponse)
async def answer_question(
    payload: QuestionRequest,
    user_id: str = Depends(get_current_user_id),
    service: QuestionAnsweringService = Depends(get_question_answering_service),
) -> QuestionResponse:
    result = await service.answer(
        payload.question,
        payload.form_id,
        user_id,
        limit=payload.limit,
        threshold=payload.threshold,
    )
    return QuestionResponse(
        answer=result.answer,
        relevant_responses=[
            RelevantResponseSchema(id=item.id, content=item.content, similarity=item.similarity)
            for item in result.relevant_responses
        ],
    )
