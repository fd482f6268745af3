"""Tests for the standalone rate-limit sweeper."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from classnotify.database import SessionLocal
from classnotify.services.rate_limit_store import SqlRateLimitStore
from scripts import run_scheduler


@pytest.mark.asyncio
async def test_sweep_job_removes_closed_windows(db_session):
    store = SqlRateLimitStore(SessionLocal)
    now = datetime.now(timezone.utc)
    await store.increment("stale@x.com", now - timedelta(hours=2), timedelta(hours=1))
    await store.increment("fresh@x.com", now - timedelta(minutes=5), timedelta(hours=1))

    removed = await run_scheduler.run_sweep_job(store)

    assert removed == 1
    assert await store.get("stale@x.com") is None
    assert (await store.get("fresh@x.com")).count == 1


@pytest.mark.asyncio
async def test_sweep_job_survives_store_errors():
    class BrokenStore:
        async def sweep(self, older_than):
            raise RuntimeError("database is locked")

    assert await run_scheduler.run_sweep_job(BrokenStore()) == 0


def test_second_lock_holder_is_refused(tmp_path):
    lock_path = tmp_path / "locks" / "scheduler.lock"
    first = run_scheduler.acquire_lock(lock_path)
    try:
        with pytest.raises(TimeoutError):
            run_scheduler.acquire_lock(lock_path)
    finally:
        first.release()
