"""Per-identity counters throttling verification-code issuance."""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Protocol

from sqlalchemy import DateTime, case, delete, literal, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from classnotify.models.database_models import RateLimitEntry
from classnotify.models.domain import RateLimitRecord


logger = logging.getLogger(__name__)


class RateLimitStore(Protocol):
    def lock(self, key: str):
        """Async context manager serialising read-then-increment for one key."""
        ...

    async def get(self, key: str) -> RateLimitRecord | None:
        ...

    async def increment(self, key: str, now: datetime, window: timedelta) -> RateLimitRecord:
        """
        Count one more issuance. The window restarts at ``now`` (count=1) when
        there is no record or its window started more than ``window`` ago.
        """
        ...

    async def try_acquire(
        self, key: str, now: datetime, window: timedelta, limit: int
    ) -> RateLimitRecord | None:
        """
        Check the quota and count one issuance as a single atomic step.

        Returns the updated record, or ``None`` when ``limit`` issuances already
        happened inside the current window (nothing is counted then).
        """
        ...

    async def sweep(self, older_than: datetime) -> int:
        """Drop records whose window started before ``older_than``; return how many."""
        ...


class _KeyLocks:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def __call__(self, key: str) -> AsyncIterator[None]:
        lock = self._locks[key]
        async with lock:
            yield

    def discard(self, key: str) -> None:
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]

    def __contains__(self, key: str) -> bool:
        return key in self._locks


def _window_open(current: RateLimitRecord | None, now: datetime, window: timedelta) -> bool:
    return current is not None and current.window_start > now - window


def _next_record(
    current: RateLimitRecord | None, key: str, now: datetime, window: timedelta
) -> RateLimitRecord:
    if not _window_open(current, now, window):
        return RateLimitRecord(identity_key=key, count=1, window_start=now)
    return RateLimitRecord(identity_key=key, count=current.count + 1, window_start=current.window_start)


class InMemoryRateLimitStore:
    """Process-local store; fine for a single worker and for tests."""

    def __init__(self) -> None:
        self._records: dict[str, RateLimitRecord] = {}
        self._locks = _KeyLocks()

    def lock(self, key: str):
        return self._locks(key)

    async def get(self, key: str) -> RateLimitRecord | None:
        return self._records.get(key)

    async def increment(self, key: str, now: datetime, window: timedelta) -> RateLimitRecord:
        record = _next_record(self._records.get(key), key, now, window)
        self._records[key] = record
        return record

    async def try_acquire(
        self, key: str, now: datetime, window: timedelta, limit: int
    ) -> RateLimitRecord | None:
        # No await between the check and the write, so this is atomic on the event loop.
        current = self._records.get(key)
        if _window_open(current, now, window) and current.count >= limit:
            return None
        return await self.increment(key, now, window)

    async def sweep(self, older_than: datetime) -> int:
        stale = [key for key, record in self._records.items() if record.window_start < older_than]
        for key in stale:
            del self._records[key]
            self._locks.discard(key)
        if stale:
            logger.debug("Swept %d rate-limit records", len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._records)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _to_naive_utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None) if value.tzinfo else value


class SqlRateLimitStore:
    """
    Database-backed store so several service processes share one quota.

    The per-key lock only serialises callers inside this process. Across
    processes ``try_acquire`` relies on a single conditional UPDATE, so two
    processes can never both take the last unit of quota.
    """

    def __init__(self, session_factory: Callable[[], Session] | sessionmaker) -> None:
        self._session_factory = session_factory
        self._locks = _KeyLocks()

    def lock(self, key: str):
        return self._locks(key)

    async def get(self, key: str) -> RateLimitRecord | None:
        with self._session_factory() as db:
            entry = db.get(RateLimitEntry, key)
            if entry is None:
                return None
            return RateLimitRecord(
                identity_key=entry.identity_key,
                count=entry.count,
                window_start=_as_utc(entry.window_start),
            )

    async def increment(self, key: str, now: datetime, window: timedelta) -> RateLimitRecord:
        with self._session_factory() as db:
            entry = db.execute(
                select(RateLimitEntry).where(RateLimitEntry.identity_key == key).with_for_update()
            ).scalar_one_or_none()
            current = (
                RateLimitRecord(entry.identity_key, entry.count, _as_utc(entry.window_start))
                if entry is not None
                else None
            )
            record = _next_record(current, key, _as_utc(now), window)
            if entry is None:
                entry = RateLimitEntry(identity_key=key)
                db.add(entry)
            entry.count = record.count
            entry.window_start = _to_naive_utc(record.window_start)
            db.commit()
            return record

    async def try_acquire(
        self, key: str, now: datetime, window: timedelta, limit: int
    ) -> RateLimitRecord | None:
        now_naive = _to_naive_utc(now)
        elapsed = RateLimitEntry.window_start <= _to_naive_utc(now - window)
        statement = (
            update(RateLimitEntry)
            .where(RateLimitEntry.identity_key == key, or_(elapsed, RateLimitEntry.count < limit))
            .values(
                # SET expressions see the pre-update row, so both columns test the same window.
                count=case((elapsed, 1), else_=RateLimitEntry.count + 1),
                window_start=case(
                    (elapsed, literal(now_naive, DateTime())),
                    else_=RateLimitEntry.window_start,
                ),
            )
            .execution_options(synchronize_session=False)
        )

        while True:
            with self._session_factory() as db:
                result = db.execute(statement)
                if result.rowcount == 0:
                    if db.get(RateLimitEntry, key) is not None:
                        db.rollback()
                        return None
                    db.add(RateLimitEntry(identity_key=key, count=1, window_start=now_naive))
                    try:
                        db.flush()
                    except IntegrityError:
                        # Another process created the row first; go again against it.
                        db.rollback()
                        continue
                count, window_start = db.execute(
                    select(RateLimitEntry.count, RateLimitEntry.window_start).where(
                        RateLimitEntry.identity_key == key
                    )
                ).one()
                db.commit()
                return RateLimitRecord(identity_key=key, count=count, window_start=_as_utc(window_start))

    async def sweep(self, older_than: datetime) -> int:
        cutoff = _to_naive_utc(older_than)
        with self._session_factory() as db:
            stale = db.scalars(
                select(RateLimitEntry.identity_key).where(RateLimitEntry.window_start < cutoff)
            ).all()
            removed = 0
            if stale:
                result = db.execute(
                    delete(RateLimitEntry).where(
                        RateLimitEntry.identity_key.in_(stale),
                        RateLimitEntry.window_start < cutoff,
                    )
                )
                removed = result.rowcount or 0
            db.commit()
        for key in stale:
            self._locks.discard(key)
        if removed:
            logger.debug("Swept %d rate-limit rows", removed)
        return removed
