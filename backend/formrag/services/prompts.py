"""Prompt templates for question answering and chat over form responses."""

from __future__ import annotations

import json
from typing import Any

from formrag.services.context import field_labels

NO_RELEVANT_INFORMATION = "I couldn't find any relevant information to answer your question."
QA_FALLBACK_ANSWER = "Failed to generate an answer."
CHAT_FALLBACK_ANSWER = "I apologize, but I was unable to generate a response."
STREAM_ERROR_MESSAGE = "Stream processing error"

QA_PROMPT_TEMPLATE = """
You are an AI assistant that helps users find information from their form responses.
Use only the information provided in the CONTEXT section to answer the QUESTION.
If the CONTEXT doesn't contain relevant information to answer the QUESTION, say so clearly.
Don't make up information that isn't in the CONTEXT.

CONTEXT:
{context}

QUESTION:
{question}

ANSWER:
"""

CHAT_SYSTEM_TEMPLATE = """You are an AI data analyst for form responses. Analyze form data to extract insights and answer questions accurately.

FORM DETAILS:
Name: {title}
Fields: {fields}

RELEVANT FORM RESPONSES ({count}):
{context}

INSTRUCTIONS:
1. When analyzing data, calculate actual statistics (averages, percentages, counts, etc.)
2. Identify patterns, trends, outliers, and correlations in the data
3. Segment responses by categories when appropriate
4. When asked for specific metrics, calculate and provide exact numbers
5. Format statistics clearly with percentages and actual counts
6. If creating comparisons, use clear relative metrics (e.g., "45% higher than")
7. Reference specific responses by ID when relevant
8. For insufficient data, explain what additional information would help
9. Use analytical thinking - don't just summarize the data
10. Be concise but thorough - prioritize insights over raw data repetition"""


def build_qa_prompt(question: str, context: str) -> str:
    return QA_PROMPT_TEMPLATE.format(context=context, question=question)


def describe_fields(schema: Any) -> str:
    fields = [
        {"id": field_id, "label": definition.get("label") or field_id, "type": definition.get("type")}
        for field_id, definition in field_labels(schema).items()
    ]
    return json.dumps(fields, indent=2)


def build_chat_system_prompt(title: str | None, schema: Any, context: str, count: int) -> str:
    return CHAT_SYSTEM_TEMPLATE.format(
        title=title or "Untitled Form",
        fields=describe_fields(schema),
        count=count,
        context=context,
    )
