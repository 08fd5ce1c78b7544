"""Durable queue message model.

Classes:
    QueueMessageRecord: A queued payload plus its visibility deadline and delivery count.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Column, Index, JSON
from sqlmodel import Field, SQLModel

from formrag.models.timestamps import utcnow


class QueueMessageRecord(SQLModel, table=True):
    __tablename__ = "queue_messages"
    __table_args__ = (Index("ix_queue_messages_queue_vt", "queue_name", "vt"),)

    msg_id: Optional[int] = Field(default=None, primary_key=True)
    queue_name: str = Field(index=True)
    payload: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    read_ct: int = 0
    enqueued_at: datetime = Field(default_factory=utcnow)
    vt: datetime = Field(default_factory=utcnow)
