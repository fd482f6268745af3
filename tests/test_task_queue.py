"""Tests for the in-process notification task queue."""
from __future__ import annotations

import asyncio

import pytest

from classnotify.errors import TaskNotFoundError
from classnotify.services.task_queue import NotificationTaskQueue, TaskStatus


@pytest.mark.asyncio
async def test_jobs_run_in_submission_order():
    queue = NotificationTaskQueue()
    await queue.start()
    order: list[str] = []

    def make_job(label: str):
        async def job():
            await asyncio.sleep(0)
            order.append(label)
            return label

        return job

    records = [queue.submit(make_job(label), name=label) for label in ("a", "b", "c")]
    await queue.join()
    await queue.stop()

    assert order == ["a", "b", "c"]
    assert [r.status for r in records] == [TaskStatus.SUCCEEDED] * 3
    assert records[1].result == "b"
    assert all(r.finished_at is not None for r in records)


@pytest.mark.asyncio
async def test_failed_job_is_recorded_and_worker_keeps_going():
    queue = NotificationTaskQueue()
    await queue.start()

    async def broken():
        raise RuntimeError("smtp down")

    async def fine():
        return 42

    failed = queue.submit(broken)
    succeeded = queue.submit(fine)
    await queue.join()
    await queue.stop()

    assert failed.status is TaskStatus.FAILED
    assert failed.error == "smtp down"
    assert succeeded.status is TaskStatus.SUCCEEDED
    assert queue.get(succeeded.task_id).result == 42


@pytest.mark.asyncio
async def test_stop_drains_pending_jobs():
    queue = NotificationTaskQueue()
    await queue.start()
    done = asyncio.Event()

    async def slow():
        await asyncio.sleep(0.01)
        done.set()

    record = queue.submit(slow)
    await queue.stop(drain=True)

    assert done.is_set()
    assert record.done
    assert not queue.running


@pytest.mark.asyncio
async def test_history_is_bounded():
    queue = NotificationTaskQueue(max_history=2)
    await queue.start()

    async def noop():
        return None

    first = queue.submit(noop)
    await queue.join()
    queue.submit(noop)
    await queue.join()
    queue.submit(noop)
    await queue.join()
    await queue.stop()

    with pytest.raises(TaskNotFoundError):
        queue.get(first.task_id)


def test_unknown_task_id():
    with pytest.raises(TaskNotFoundError):
        NotificationTaskQueue().get("missing")


@pytest.mark.asyncio
async def test_history_stays_bounded_behind_a_long_running_job():
    queue = NotificationTaskQueue(workers=2, max_history=3)
    await queue.start()
    release = asyncio.Event()

    async def slow():
        await release.wait()
        return "slow"

    async def quick():
        return "quick"

    head = queue.submit(slow, name="slow")
    for _ in range(6):
        queue.submit(quick, name="quick")
        await asyncio.sleep(0.01)

    assert len(queue._records) <= 3
    assert queue.get(head.task_id) is head

    release.set()
    await queue.join()
    await queue.stop()
    assert head.status is TaskStatus.SUCCEEDED
