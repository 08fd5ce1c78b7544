"""Failure classification for queued embedding jobs.

A failure is permanent when retrying cannot help: the target row is gone or the
payload is structurally broken. Everything else is transient and is retried by
letting the queue redeliver the message after its visibility timeout.
"""

from __future__ import annotations

from enum import Enum

from formrag.core.errors import PermanentJobError

PERMANENT_ERROR_MARKERS: tuple[str, ...] = ("not found", "invalid format")


class FailureKind(str, Enum):
    PERMANENT = "permanent"
    TRANSIENT = "transient"


def describe_failure(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or exc.__class__.__name__


def classify_failure(exc: BaseException) -> FailureKind:
    if isinstance(exc, PermanentJobError):
        return FailureKind.PERMANENT
    message = describe_failure(exc).lower()
    if any(marker in message for marker in PERMANENT_ERROR_MARKERS):
        return FailureKind.PERMANENT
    return FailureKind.TRANSIENT
