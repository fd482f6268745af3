"""Standalone sweeper for the shared (SQL) verification rate-limit table."""
from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from filelock import FileLock

from classnotify.config import get_settings
from classnotify.database import SessionLocal, run_migrations
from classnotify.logging_config import configure_logging
from classnotify.services.rate_limit_store import SqlRateLimitStore


logger = logging.getLogger("scheduler")


def acquire_lock(lock_path: Path) -> FileLock:
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock = FileLock(str(lock_path))
    lock.acquire(timeout=0)
    return lock


async def run_sweep_job(store: SqlRateLimitStore | None = None) -> int:
    """Delete rate-limit rows whose window closed; returns the number removed."""

    settings = get_settings()
    if store is None:
        store = SqlRateLimitStore(SessionLocal)
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=settings.verification_rate_window_seconds)

    try:
        removed = await store.sweep(cutoff)
    except Exception:
        logger.exception("Rate-limit sweep failed")
        return 0

    logger.info("Rate-limit sweep removed %d record(s) older than %s", removed, cutoff.isoformat())
    return removed


async def main(run_now: bool) -> None:
    configure_logging()
    settings = get_settings()
    run_migrations()

    if settings.rate_limit_backend != "sql":
        logger.warning(
            "RATE_LIMIT_BACKEND is '%s'; the in-memory store is swept by the API process itself.",
            settings.rate_limit_backend,
        )

    lock_path = settings.scheduler_lock_file
    lock = acquire_lock(lock_path)
    logger.info("Acquired scheduler lock at %s", lock_path)
    try:
        if run_now:
            await run_sweep_job()
            return

        scheduler = AsyncIOScheduler()
        scheduler.add_job(run_sweep_job, "interval", minutes=settings.sweep_interval_minutes)
        scheduler.start()

        logger.info(
            "Scheduler running (every %d minutes). Press Ctrl+C to exit.",
            settings.sweep_interval_minutes,
        )
        await asyncio.Event().wait()
    finally:
        lock.release()
        logger.info("Released scheduler lock at %s", lock_path)
        if lock_path.exists():
            lock_path.unlink()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the rate-limit sweeper process")
    parser.add_argument("--run-now", action="store_true", help="Sweep once immediately and exit")
    args = parser.parse_args()

    try:
        asyncio.run(main(run_now=args.run_now))
    except TimeoutError:
        logger.warning("Scheduler already running; exiting.")
