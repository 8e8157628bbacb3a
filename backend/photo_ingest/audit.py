"""
Best-effort activity log.

`AuditLog.emit` never blocks and never raises: events go onto a bounded
in-memory queue and a background consumer writes them to `activity_events`.
Events may be lost when the queue is full, when the database write fails, or
when the process stops before the queue is drained.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .logger import logger
from .models import ActivityEvent

DEFAULT_QUEUE_SIZE = 1000
DEFAULT_DRAIN_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class AuditEvent:
    event_type: str
    album_id: Optional[int] = None
    photo_id: Optional[int] = None


class AuditLog:
    def __init__(self, session_factory: sessionmaker, maxsize: int = DEFAULT_QUEUE_SIZE):
        self._session_factory = session_factory
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._task: Optional[asyncio.Task] = None
        self.dropped = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def emit(self, event_type: str, album_id: Optional[int] = None, photo_id: Optional[int] = None) -> bool:
        """Queue an event without waiting. Returns False if the event was dropped."""
        event = AuditEvent(event_type=event_type, album_id=album_id, photo_id=photo_id)
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Audit queue full, dropping {event_type} event",
                extra={"event_type": event_type, "album_id": album_id, "photo_id": photo_id},
            )
            return False
        return True

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._consume())

    async def stop(self, timeout: float = DEFAULT_DRAIN_TIMEOUT_SECONDS) -> None:
        """Give the consumer up to `timeout` seconds to drain, then cancel it."""
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Audit log stopped with {self._queue.qsize()} events unwritten",
                extra={"pending": self._queue.qsize()},
            )
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._write(event)
            except SQLAlchemyError as e:
                logger.warning(
                    f"Failed to log {event.event_type} event: {e}",
                    extra={"event_type": event.event_type, "album_id": event.album_id, "photo_id": event.photo_id},
                )
            finally:
                self._queue.task_done()

    async def _write(self, event: AuditEvent) -> None:
        async with self._session_factory() as db:
            db.add(ActivityEvent(event_type=event.event_type, album_id=event.album_id, photo_id=event.photo_id))
            await db.commit()
