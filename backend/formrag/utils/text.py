"""Text normalisation helpers for embedding inputs."""

from __future__ import annotations

import re
import unicodedata

_WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    """Collapse consecutive whitespace characters into single spaces."""

    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def normalise_for_embedding(text: str) -> str:
    """Return NFKC-normalised text with whitespace collapsed.

    Case is preserved: embedding models are case sensitive and answers quote the original text.
    """

    stripped = text.strip() if text else ""
    if not stripped:
        return ""
    return unicodedata.normalize("NFKC", collapse_whitespace(stripped))


def truncate_title(text: str, limit: int = 100) -> str:
    return text[:limit]
