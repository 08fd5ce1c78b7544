"""SQL-backed vector store for form response embeddings.

Vectors are stored as float32 blobs next to their response id; similarity search
loads the form's vectors and ranks them with numpy cosine similarity.

Classes:
    SQLVectorStore: Upsert-by-response-id and top-K cosine search scoped to one form.

Functions:
    encode_vector(vector): Serialise a vector into float32 bytes.
    decode_vector(blob, dim): Inverse of encode_vector.
"""

from __future__ import annotations

import logging
from typing import Sequence
from uuid import UUID

import numpy as np
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from formrag.core.errors import NotFoundError, PersistenceError, TransientUpstreamError, ValidationError
from formrag.db.store import SQLStore
from formrag.models import FormResponse, FormResponseEmbedding
from formrag.models.timestamps import utcnow
from formrag.services.interfaces import SimilarityHit

_LOGGER = logging.getLogger(__name__)
_EPS = 1e-12


def encode_vector(vector: Sequence[float]) -> bytes:
    return np.asarray(vector, dtype=np.float32).tobytes()


def decode_vector(blob: bytes, dim: int) -> np.ndarray:
    array = np.frombuffer(blob, dtype=np.float32)
    if array.shape[0] != dim:
        raise ValueError(f"Stored vector has {array.shape[0]} values, expected {dim}")
    return array


class SQLVectorStore(SQLStore):
    async def upsert(self, response_id: UUID, vector: Sequence[float]) -> None:
        values = np.asarray(vector, dtype=np.float32)
        if values.ndim != 1 or values.shape[0] == 0:
            raise ValidationError("Embedding vector has an invalid format")

        try:
            async with self._writer() as session:
                response = await session.get(FormResponse, response_id)
                if response is None:
                    raise NotFoundError(f"Form response {response_id} not found")

                record = await session.get(FormResponseEmbedding, response_id)
                if record is None:
                    record = FormResponseEmbedding(
                        response_id=response_id,
                        form_id=response.form_id,
                        dim=int(values.shape[0]),
                        vector=encode_vector(values),
                    )
                else:
                    record.form_id = response.form_id
                    record.dim = int(values.shape[0])
                    record.vector = encode_vector(values)
                    record.updated_at = utcnow()
                session.add(record)
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to store embedding for response {response_id}: {exc}") from exc

    async def search(
        self,
        form_id: UUID,
        query_vector: Sequence[float],
        *,
        threshold: float,
        limit: int,
    ) -> list[SimilarityHit]:
        if limit <= 0:
            return []

        query = np.asarray(query_vector, dtype=np.float32)
        query_norm = float(np.linalg.norm(query))
        if query_norm < _EPS:
            return []

        statement = (
            select(FormResponseEmbedding, FormResponse.responses)
            .join(FormResponse, FormResponse.id == FormResponseEmbedding.response_id)
            .where(FormResponseEmbedding.form_id == form_id)
        )
        try:
            async with self._reader() as session:
                rows = (await session.exec(statement)).all()
        except SQLAlchemyError as exc:
            raise TransientUpstreamError(f"Failed to search similar responses: {exc}") from exc

        candidates: list[tuple[UUID, dict | None]] = []
        vectors: list[np.ndarray] = []
        for record, fields in rows:
            if record.dim != query.shape[0]:
                _LOGGER.warning(
                    "Skipping embedding for response %s: dimension %s does not match query %s",
                    record.response_id,
                    record.dim,
                    query.shape[0],
                )
                continue
            candidates.append((record.response_id, fields))
            vectors.append(decode_vector(record.vector, record.dim))

        if not vectors:
            return []

        matrix = np.vstack(vectors)
        norms = np.linalg.norm(matrix, axis=1)
        scores = (matrix @ query) / np.maximum(norms * query_norm, _EPS)
        scores = np.clip(scores, 0.0, 1.0)

        order = np.argsort(-scores, kind="stable")
        hits: list[SimilarityHit] = []
        for index in order:
            score = float(scores[index])
            if score < threshold:
                break
            response_id, fields = candidates[index]
            hits.append(SimilarityHit(response_id=response_id, fields=fields, similarity=score))
            if len(hits) >= limit:
                break
        return hits
