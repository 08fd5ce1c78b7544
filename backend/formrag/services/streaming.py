"""Server-sent event plumbing for streamed chat answers.

A streamed turn runs in a detached producer task that writes framed events into
an unbounded channel; the HTTP response only reads from that channel. The
producer never waits on the reader, so a client that disconnects cannot stall
or cancel generation and persistence.

Classes:
    TokenAccumulator: Per-request buffer of streamed tokens.
    EventChannel: Single-producer, single-consumer queue of SSE frames.

Functions:
    format_event(payload): Frame a JSON payload as `data: <json>\\n\\n`.
    spawn_detached(coro): Run a coroutine as a task that outlives the request.
    drain_background_tasks(timeout): Wait for in-flight producers during shutdown.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Coroutine

_LOGGER = logging.getLogger(__name__)

EVENT_STREAM_MEDIA_TYPE = "text/event-stream"
STREAM_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}

_CLOSED = object()
_BACKGROUND_TASKS: set[asyncio.Task[Any]] = set()


def format_event(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


class TokenAccumulator:
    def __init__(self) -> None:
        self._parts: list[str] = []

    def append(self, token: str) -> None:
        self._parts.append(token)

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def __len__(self) -> int:
        return len(self._parts)


class EventChannel:
    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, payload: dict[str, Any]) -> None:
        if self._closed:
            raise RuntimeError("Cannot write to a closed event channel")
        self._queue.put_nowait(format_event(payload))

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def events(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


def spawn_detached(coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
    task = asyncio.create_task(coro)
    _BACKGROUND_TASKS.add(task)
    task.add_done_callback(_BACKGROUND_TASKS.discard)
    return task


async def drain_background_tasks(timeout: float = 30.0) -> None:
    pending = list(_BACKGROUND_TASKS)
    if not pending:
        return
    _LOGGER.info("Waiting for %s streamed chat turns to finish", len(pending))
    done, still_running = await asyncio.wait(pending, timeout=timeout)
    if still_running:
        _LOGGER.warning("%s streamed chat turns did not finish before shutdown", len(still_running))
