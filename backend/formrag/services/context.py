"""Turn similarity hits into a bounded, human-readable context window.

Classes:
    ContextBlock: One rendered response tagged with its source id and similarity.
    ContextAssembler: Runs the form-scoped search and renders the ranked hits.

Functions:
    field_labels(schema): Index a form field schema by field id.
    format_value(value, field_type): Render one answer value for a prompt.
    format_response(fields, schema): Render a whole response as `label: value` lines.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence
from uuid import UUID

from formrag.models import Form
from formrag.services.interfaces import SimilarityHit, VectorStore

NO_RESPONSE_DATA = "No response data available."
EMPTY_RESPONSE = "Empty response"
NO_RESPONSES_FOUND = "No responses found."
MISSING_VALUE = "N/A"


@dataclass(slots=True)
class ContextBlock:
    response_id: UUID
    similarity: float
    text: str
    fields: Optional[dict[str, Any]]


def field_labels(schema: Any) -> dict[str, dict[str, Any]]:
    """Index field definitions by id; accepts a bare list or a `{"fields": [...]}` wrapper."""

    if isinstance(schema, dict):
        schema = schema.get("fields")
    if not isinstance(schema, list):
        return {}
    indexed: dict[str, dict[str, Any]] = {}
    for field in schema:
        if isinstance(field, dict) and field.get("id") is not None:
            indexed[str(field["id"])] = field
    return indexed


def _format_date(value: str) -> str:
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return value
    return f"{parsed.month}/{parsed.day}/{parsed.year}"


def format_value(value: Any, field_type: Optional[str] = None) -> str:
    if value is None:
        return MISSING_VALUE
    if isinstance(value, (list, tuple)):
        return ", ".join(MISSING_VALUE if item is None else str(item) for item in value)
    if field_type == "date" and isinstance(value, str):
        return _format_date(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def format_response(fields: Optional[dict[str, Any]], schema: Any = None, *, with_types: bool = False) -> str:
    """Render `label: value` lines, or `label [type]: value` when *with_types* is set."""

    if fields is None:
        return NO_RESPONSE_DATA
    labels = field_labels(schema)
    lines = []
    for field_id, value in fields.items():
        definition = labels.get(str(field_id), {})
        label = definition.get("label") or field_id
        field_type = definition.get("type")
        if with_types:
            label = f"{label} [{field_type or 'unknown'}]"
        lines.append(f"{label}: {format_value(value, field_type)}")
    return "\n".join(lines) or EMPTY_RESPONSE


def render_blocks(blocks: Sequence[ContextBlock]) -> str:
    """Numbered rendering used by the chat system prompt."""

    if not blocks:
        return NO_RESPONSES_FOUND
    return "\n\n".join(
        f"Response {index} (Similarity: {block.similarity:.2f}):\n{block.text}\n---"
        for index, block in enumerate(blocks, start=1)
    )


class ContextAssembler:
    def __init__(self, vector_store: VectorStore) -> None:
        self._vector_store = vector_store

    async def build_context(
        self,
        query_embedding: Sequence[float],
        form: Form,
        *,
        threshold: float,
        limit: int,
        pool_size: Optional[int] = None,
        with_types: bool = False,
    ) -> list[ContextBlock]:
        """Search *pool_size* candidates (default *limit*) and keep the best *limit*.

        *with_types* tags each rendered field with its schema type.
        """

        fetch = max(pool_size or limit, limit)
        hits = await self._vector_store.search(form.id, query_embedding, threshold=threshold, limit=fetch)
        ranked = sorted(hits, key=lambda hit: hit.similarity, reverse=True)[:limit]
        return [self._render(hit, form.field_schema, with_types) for hit in ranked]

    def _render(self, hit: SimilarityHit, schema: Any, with_types: bool) -> ContextBlock:
        return ContextBlock(
            response_id=hit.response_id,
            similarity=hit.similarity,
            text=format_response(hit.fields, schema, with_types=with_types),
            fields=hit.fields,
        )
