"""Queue-driven embedding ingestion for form responses.

Classes:
    FailedJob: A job left on the queue for redelivery, with the reason.
    BatchResult: Tally returned by one worker invocation.
    EmbeddingWorker: Drains one bounded batch from the queue into the vector store.

Functions:
    build_embedding_job(response, form): Render a form response into an EmbeddingJob.
    enqueue_response(queue, response, form): Producer side, called when a response is created.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import UUID

from formrag.core.config import Settings, get_settings
from formrag.core.errors import PermanentJobError
from formrag.models import Form, FormResponse
from formrag.services.context import format_response
from formrag.services.failures import FailureKind, classify_failure, describe_failure
from formrag.services.interfaces import (
    EmbeddingGenerator,
    EmbeddingJob,
    MessageQueue,
    QueueMessage,
    VectorStore,
)
from formrag.utils.text import normalise_for_embedding
from formrag.utils.tokenization import truncate_to_tokens

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class FailedJob:
    id: str
    error: str


@dataclass(slots=True)
class BatchResult:
    processed: int = 0
    skipped: int = 0
    failed: list[FailedJob] = field(default_factory=list)
    acked_msg_ids: list[int] = field(default_factory=list)


@dataclass(slots=True)
class _JobGroup:
    job: EmbeddingJob
    msg_ids: list[int]


def build_embedding_job(response: FormResponse, form: Optional[Form] = None) -> EmbeddingJob:
    text = format_response(response.responses, form.field_schema if form else None) if response.responses else ""
    return EmbeddingJob(id=str(response.id), text=text)


async def enqueue_response(queue: MessageQueue, response: FormResponse, form: Optional[Form] = None) -> int:
    job = build_embedding_job(response, form)
    msg_id = await queue.send(job.to_payload())
    _LOGGER.debug("Queued embedding job for response %s as message %s", job.id, msg_id)
    return msg_id


def parse_job(payload: Any) -> EmbeddingJob:
    """Validate a raw queue payload, raising PermanentJobError for anything malformed."""

    if not isinstance(payload, dict):
        raise PermanentJobError("Embedding job has an invalid format: payload is not an object")
    job_id = payload.get("id")
    text = payload.get("text")
    if not isinstance(job_id, str) or not isinstance(text, str):
        raise PermanentJobError("Embedding job has an invalid format: 'id' and 'text' must be strings")
    try:
        UUID(job_id)
    except ValueError as exc:
        raise PermanentJobError(f"Embedding job has an invalid format: '{job_id}' is not a UUID") from exc
    return EmbeddingJob(id=job_id, text=text)


def _job_id_hint(payload: Any) -> str:
    if isinstance(payload, dict) and isinstance(payload.get("id"), str):
        return payload["id"]
    return "unknown"


class EmbeddingWorker:
    """Pull-and-process worker; every call handles at most one batch and returns.

    Retries come only from queue redelivery, so processing a job must stay safe to
    repeat: the vector store upserts by response id.
    """

    def __init__(
        self,
        queue: MessageQueue,
        embedder: EmbeddingGenerator,
        vector_store: VectorStore,
        settings: Optional[Settings] = None,
    ) -> None:
        self._queue = queue
        self._embedder = embedder
        self._vector_store = vector_store
        self._settings = settings or get_settings()

    async def process_batch(self, max_batch_size: Optional[int] = None) -> BatchResult:
        batch_size = self._settings.embedding_batch_size if max_batch_size is None else max_batch_size
        messages = await self._queue.read(batch_size, self._settings.embedding_visibility_timeout)
        _LOGGER.info("Read %s messages from the embedding queue", len(messages))

        result = BatchResult()
        if not messages:
            return result

        groups = self._group_messages(messages, result)
        outcomes = await asyncio.gather(*(self._process_job(group.job) for group in groups))

        for group, outcome in zip(groups, outcomes):
            if outcome is None:
                result.processed += 1
                result.acked_msg_ids.extend(group.msg_ids)
                continue
            kind = classify_failure(outcome)
            reason = describe_failure(outcome)
            if kind is FailureKind.PERMANENT:
                _LOGGER.warning("Dropping embedding job %s: %s", group.job.id, reason)
                result.skipped += 1
                result.acked_msg_ids.extend(group.msg_ids)
            else:
                _LOGGER.warning("Embedding job %s will be redelivered: %s", group.job.id, reason)
                result.failed.append(FailedJob(id=group.job.id, error=reason))

        await self._ack(result.acked_msg_ids)
        return result

    def _group_messages(self, messages: list[QueueMessage], result: BatchResult) -> list[_JobGroup]:
        """Parse payloads and fold duplicate deliveries of one job into a single unit of work."""

        by_job: dict[str, _JobGroup] = {}
        seen_msg_ids: set[int] = set()
        duplicates: defaultdict[str, int] = defaultdict(int)
        for message in messages:
            if message.msg_id in seen_msg_ids:
                continue
            seen_msg_ids.add(message.msg_id)
            try:
                job = parse_job(message.payload)
            except PermanentJobError as exc:
                _LOGGER.warning(
                    "Dropping message %s (job %s): %s", message.msg_id, _job_id_hint(message.payload), exc
                )
                result.skipped += 1
                result.acked_msg_ids.append(message.msg_id)
                continue

            group = by_job.get(job.id)
            if group is None:
                by_job[job.id] = _JobGroup(job=job, msg_ids=[message.msg_id])
            else:
                group.msg_ids.append(message.msg_id)
                duplicates[job.id] += 1

        for job_id, count in duplicates.items():
            _LOGGER.info("Job %s delivered %s extra time(s) in one batch; embedding once", job_id, count)
        return list(by_job.values())

    async def _process_job(self, job: EmbeddingJob) -> Optional[Exception]:
        try:
            text = normalise_for_embedding(job.text)
            if not text:
                raise PermanentJobError(f"Embedding job {job.id} has an invalid format: empty text")
            truncated = truncate_to_tokens(text, self._settings.embedding_max_tokens, self._settings.embedding_model)
            if truncated != text:
                _LOGGER.info("Truncated embedding input for job %s to %s tokens", job.id, self._settings.embedding_max_tokens)
                text = truncated
            vector = await self._embedder.embed_text(text)
            await self._vector_store.upsert(UUID(job.id), vector)
        except Exception as exc:  # isolated per job; classified by the caller
            return exc
        return None

    async def _ack(self, msg_ids: list[int]) -> None:
        if not msg_ids:
            return
        try:
            await self._queue.delete_many(msg_ids)
        except Exception:
            # Unacked messages reappear after the visibility timeout and are upserted again.
            _LOGGER.warning("Failed to delete %s processed messages from the queue", len(msg_ids), exc_info=True)
