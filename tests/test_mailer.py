"""Tests for the SMTP mailer's message composition and error mapping."""
from __future__ import annotations

from typing import Any

import aiosmtplib
import pytest

from classnotify.config import Settings
from classnotify.models.domain import MailMessage
from classnotify.services.mailer import (
    MailerAuthError,
    MailerConnectionError,
    MailerError,
    MailerNotConfiguredError,
    SmtpMailer,
)

MESSAGE = MailMessage(to="student@school.test", subject="Hi", html="<p>Hi</p>", text="Hi")


def _settings(**overrides: Any) -> Settings:
    values = {
        "smtp_host": "smtp.school.test",
        "smtp_port": 587,
        "smtp_username": "mailer@school.test",
        "smtp_password": "app-password",
        "mail_from_email": "noreply@school.test",
        "mail_from_name": "LinuxWorld",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.mark.asyncio
async def test_send_builds_multipart_message(monkeypatch):
    captured: dict[str, Any] = {}

    async def fake_send(message, **kwargs):
        captured["message"] = message
        captured["kwargs"] = kwargs
        return ({}, "OK")

    monkeypatch.setattr(aiosmtplib, "send", fake_send)

    receipt = await SmtpMailer(_settings()).send(MESSAGE)

    email = captured["message"]
    assert email["To"] == "student@school.test"
    assert email["Subject"] == "Hi"
    assert "noreply@school.test" in email["From"]
    assert "LinuxWorld" in email["From"]
    assert receipt.message_id == email["Message-ID"]
    assert [part.get_content_type() for part in email.iter_parts()] == ["text/plain", "text/html"]

    kwargs = captured["kwargs"]
    assert kwargs["hostname"] == "smtp.school.test"
    assert kwargs["start_tls"] is True
    assert kwargs["use_tls"] is False
    assert kwargs["username"] == "mailer@school.test"


@pytest.mark.asyncio
async def test_implicit_tls_without_credentials(monkeypatch):
    captured: dict[str, Any] = {}

    async def fake_send(message, **kwargs):
        captured.update(kwargs)
        return ({}, "OK")

    monkeypatch.setattr(aiosmtplib, "send", fake_send)

    await SmtpMailer(_settings(smtp_security="tls", smtp_username=None, smtp_password=None)).send(MESSAGE)

    assert captured["use_tls"] is True
    assert captured["start_tls"] is False
    assert "username" not in captured


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("raised", "expected"),
    [
        (aiosmtplib.SMTPAuthenticationError(535, "bad credentials"), MailerAuthError),
        (aiosmtplib.SMTPConnectError("refused"), MailerConnectionError),
        (aiosmtplib.SMTPServerDisconnected("gone"), MailerConnectionError),
        (ConnectionRefusedError("refused"), MailerConnectionError),
        (aiosmtplib.SMTPRecipientsRefused([]), MailerError),
    ],
)
async def test_transport_errors_are_categorised(monkeypatch, raised, expected):
    async def fake_send(message, **kwargs):
        raise raised

    monkeypatch.setattr(aiosmtplib, "send", fake_send)

    with pytest.raises(expected) as excinfo:
        await SmtpMailer(_settings()).send(MESSAGE)

    assert type(excinfo.value) is expected


@pytest.mark.asyncio
async def test_unconfigured_mailer_refuses_to_send(monkeypatch):
    async def fake_send(message, **kwargs):  # pragma: no cover - must not be reached
        raise AssertionError("send should not be called")

    monkeypatch.setattr(aiosmtplib, "send", fake_send)
    mailer = SmtpMailer(_settings(smtp_host=None))

    assert mailer.is_configured is False
    with pytest.raises(MailerNotConfiguredError):
        await mailer.send(MESSAGE)
    assert await mailer.verify() is False
