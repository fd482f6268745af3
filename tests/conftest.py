"""Pytest configuration for global fixtures and logging setup."""
from __future__ import annotations

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

_TMP_DIR = Path(tempfile.mkdtemp(prefix="classnotify-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ["LOG_DIR"] = str(_TMP_DIR / "logs")
os.environ["SMTP_HOST"] = ""
os.environ["DISPATCH_INTER_BATCH_DELAY_MS"] = "0"

from classnotify.logging_config import configure_logging

configure_logging()

from classnotify.database import Base, SessionLocal, engine
from classnotify.main import app
from classnotify.models import database_models
from classnotify.models.domain import MailMessage, NotificationPreferences, Recipient, SendReceipt
from classnotify.services.mailer import MailerError

Base.metadata.create_all(bind=engine)


class FakeMailer:
    """Records every message; raises for addresses listed in ``failures``."""

    def __init__(self, failures: dict[str, Exception] | None = None) -> None:
        self.failures = dict(failures or {})
        self.sent: list[MailMessage] = []
        self.attempts: list[str] = []

    async def send(self, message: MailMessage) -> SendReceipt:
        self.attempts.append(message.to)
        error = self.failures.get(message.to)
        if error is not None:
            raise error
        self.sent.append(message)
        return SendReceipt(message_id=f"<{len(self.sent)}@test>")


class FlakyMailer(FakeMailer):
    """Fails the first ``fail_times`` sends with ``error``, then succeeds."""

    def __init__(self, fail_times: int, error: Exception | None = None) -> None:
        super().__init__()
        self.fail_times = fail_times
        self.error = error or MailerError("temporary failure")

    async def send(self, message: MailMessage) -> SendReceipt:
        if self.fail_times > 0:
            self.fail_times -= 1
            self.attempts.append(message.to)
            raise self.error
        return await super().send(message)


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def fake_mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture()
def mailer_factory():
    return FakeMailer


@pytest.fixture()
def flaky_mailer_factory():
    return FlakyMailer


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def make_recipients():
    """Build ``count`` recipients r1..rN, optionally with shared preferences."""

    def _make(count: int, preferences: NotificationPreferences | None = None, prefix: str = "r") -> list[Recipient]:
        return [
            Recipient(
                id=f"{prefix}{index}",
                email=f"{prefix}{index}@school.test",
                display_name=f"Student {index}",
                preferences=preferences,
            )
            for index in range(1, count + 1)
        ]

    return _make


@pytest.fixture(scope="session")
def test_client() -> TestClient:
    """Provide a FastAPI test client."""

    return TestClient(app)


@pytest.fixture()
def db_session() -> Iterator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        _truncate_tables()


@pytest.fixture(autouse=True)
def _reset_overrides() -> Iterator[None]:
    yield
    app.dependency_overrides.clear()


def _truncate_tables() -> None:
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture()
def seed_group(db_session):
    """Create a group with the given members; each member is a dict of User fields."""

    def _seed(members: list[dict], name: str = "Linux Basics") -> str:
        group = database_models.Group(name=name, description="Intro course")
        db_session.add(group)
        db_session.flush()
        for offset, fields in enumerate(members):
            user = database_models.User(
                role=fields.pop("role", "student"),
                is_approved=fields.pop("is_approved", True),
                **fields,
            )
            db_session.add(user)
            db_session.flush()
            db_session.add(
                database_models.GroupMember(
                    group_id=group.id,
                    user_id=user.id,
                    created_at=datetime(2025, 1, 1) + timedelta(minutes=offset),
                )
            )
        db_session.commit()
        return group.id

    return _seed
