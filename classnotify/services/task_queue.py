"""In-process background queue for notification jobs with observable status."""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from classnotify.errors import TaskNotFoundError


logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True)
class TaskRecord:
    task_id: str
    name: str
    status: TaskStatus = TaskStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    result: Any = None
    error: str | None = None

    @property
    def done(self) -> bool:
        return self.status in (TaskStatus.SUCCEEDED, TaskStatus.FAILED)


class NotificationTaskQueue:
    """
    FIFO of coroutine jobs consumed by a fixed number of asyncio workers.

    A job's return value or exception is kept on its TaskRecord so callers can
    poll for completion. Only the most recent ``max_history`` records are kept.
    """

    def __init__(self, workers: int = 1, max_history: int = 500) -> None:
        self._queue: asyncio.Queue[tuple[TaskRecord, Job]] = asyncio.Queue()
        self._records: OrderedDict[str, TaskRecord] = OrderedDict()
        self._workers = workers
        self._max_history = max_history
        self._worker_tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._worker_tasks)

    async def start(self) -> None:
        if self.running:
            return
        # asyncio.Queue binds to the loop it is first used on; each start gets a fresh one.
        if self._queue.empty():
            self._queue = asyncio.Queue()
        self._worker_tasks = [
            asyncio.create_task(self._worker(index), name=f"notification-worker-{index}")
            for index in range(self._workers)
        ]
        logger.info("Notification task queue started with %d worker(s)", self._workers)

    async def stop(self, drain: bool = True) -> None:
        if drain and self.running:
            await self._queue.join()
        for task in self._worker_tasks:
            task.cancel()
        await asyncio.gather(*self._worker_tasks, return_exceptions=True)
        self._worker_tasks = []
        logger.info("Notification task queue stopped")

    def submit(self, job: Job, *, name: str = "notification") -> TaskRecord:
        record = TaskRecord(task_id=uuid.uuid4().hex, name=name)
        self._records[record.task_id] = record
        excess = len(self._records) - self._max_history
        if excess > 0:
            # Records still pending or running are kept so callers can poll them.
            finished = [task_id for task_id, kept in self._records.items() if kept.done]
            for task_id in finished[:excess]:
                del self._records[task_id]
        self._queue.put_nowait((record, job))
        logger.debug("Queued task %s (%s)", record.task_id, name)
        return record

    def get(self, task_id: str) -> TaskRecord:
        try:
            return self._records[task_id]
        except KeyError:
            raise TaskNotFoundError(task_id=task_id) from None

    async def join(self) -> None:
        await self._queue.join()

    async def _worker(self, index: int) -> None:
        while True:
            record, job = await self._queue.get()
            record.status = TaskStatus.RUNNING
            try:
                record.result = await job()
            except asyncio.CancelledError:
                record.status = TaskStatus.FAILED
                record.error = "cancelled"
                raise
            except Exception as exc:
                logger.exception("Task %s (%s) failed", record.task_id, record.name)
                record.status = TaskStatus.FAILED
                record.error = str(exc) or exc.__class__.__name__
            else:
                record.status = TaskStatus.SUCCEEDED
            finally:
                record.finished_at = datetime.now(timezone.utc)
                self._queue.task_done()
