"""SQL-backed message queue with visibility timeouts.

Reading a message pushes its visibility deadline forward instead of removing it;
only an explicit delete ends its life. A message that is never deleted becomes
visible again once its deadline passes, which is the pipeline's only retry
mechanism.

Classes:
    SQLMessageQueue: pgmq-style send, read and delete_many over one named queue.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from formrag.core.errors import PersistenceError, TransientUpstreamError
from formrag.db.store import SQLStore
from formrag.models import QueueMessageRecord
from formrag.models.timestamps import utcnow
from formrag.services.interfaces import QueueMessage

_LOGGER = logging.getLogger(__name__)


class SQLMessageQueue(SQLStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], queue_name: str) -> None:
        super().__init__(session_factory)
        self.queue_name = queue_name

    async def send(self, payload: dict[str, Any]) -> int:
        record = QueueMessageRecord(queue_name=self.queue_name, payload=payload)
        try:
            async with self._writer() as session:
                session.add(record)
                await session.commit()
                await session.refresh(record)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to enqueue message on {self.queue_name}: {exc}") from exc
        return int(record.msg_id)

    async def read(self, max_count: int, visibility_timeout: int) -> list[QueueMessage]:
        if max_count <= 0:
            return []

        now = utcnow()
        statement = (
            select(QueueMessageRecord)
            .where(QueueMessageRecord.queue_name == self.queue_name)
            .where(QueueMessageRecord.vt <= now)
            .order_by(QueueMessageRecord.msg_id)
            .limit(max_count)
            .with_for_update(skip_locked=True)
        )
        try:
            async with self._writer() as session:
                records = (await session.exec(statement)).scalars().all()
                deadline = now + timedelta(seconds=visibility_timeout)
                for record in records:
                    record.vt = deadline
                    record.read_ct += 1
                    session.add(record)
                await session.commit()
        except SQLAlchemyError as exc:
            raise TransientUpstreamError(f"Failed to read from queue {self.queue_name}: {exc}") from exc

        return [
            QueueMessage(msg_id=int(record.msg_id), payload=record.payload, read_ct=record.read_ct)
            for record in records
        ]

    async def delete_many(self, msg_ids: Sequence[int]) -> int:
        ids = list(dict.fromkeys(msg_ids))
        if not ids:
            return 0
        statement = (
            delete(QueueMessageRecord)
            .where(QueueMessageRecord.queue_name == self.queue_name)
            .where(QueueMessageRecord.msg_id.in_(ids))
        )
        try:
            async with self._writer() as session:
                result = await session.exec(statement)
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to delete messages from {self.queue_name}: {exc}") from exc
        _LOGGER.debug("Deleted %s of %s messages from %s", result.rowcount, len(ids), self.queue_name)
        return int(result.rowcount or 0)
