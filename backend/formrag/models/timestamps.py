"""Timestamp helpers shared by the ORM models."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware UTC now; datetime columns reject naive values."""

    return datetime.now(timezone.utc)
