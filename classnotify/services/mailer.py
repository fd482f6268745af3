"""Mail transport abstraction and the SMTP implementation."""
from __future__ import annotations

import logging
from email.headerregistry import Address
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Protocol

import aiosmtplib

from classnotify.config import Settings, get_settings
from classnotify.models.domain import MailMessage, SendReceipt


logger = logging.getLogger(__name__)


class MailerError(Exception):
    """Delivery failed for a reason that is neither auth nor connectivity."""

    kind = "other"


class MailerAuthError(MailerError):
    kind = "auth"


class MailerConnectionError(MailerError):
    kind = "connection"


class MailerNotConfiguredError(MailerError):
    kind = "config"


class Mailer(Protocol):
    async def send(self, message: MailMessage) -> SendReceipt:
        """Send one message or raise a MailerError subclass."""
        ...


def compose_email(sender: Address, message: MailMessage) -> EmailMessage:
    email = EmailMessage()
    email["From"] = sender
    email["To"] = message.to
    email["Subject"] = message.subject
    email["Message-ID"] = make_msgid(domain=sender.domain or None)
    email.set_content(message.text)
    if message.html:
        email.add_alternative(message.html, subtype="html")
    return email


class SmtpMailer:
    """Send messages through an SMTP relay using aiosmtplib."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    @property
    def is_configured(self) -> bool:
        return self._settings.mail_configured

    def _sender(self) -> Address:
        address = self._settings.sender_address or ""
        username, _, domain = address.partition("@")
        return Address(display_name=self._settings.mail_from_name, username=username, domain=domain)

    def _connection_kwargs(self) -> dict:
        settings = self._settings
        kwargs = {
            "hostname": settings.smtp_host,
            "port": settings.smtp_port,
            "timeout": settings.smtp_timeout_seconds,
            "use_tls": settings.smtp_security == "tls",
            "start_tls": True if settings.smtp_security == "starttls" else False,
        }
        if settings.smtp_username and settings.smtp_password:
            kwargs["username"] = settings.smtp_username
            kwargs["password"] = settings.smtp_password
        return kwargs

    async def send(self, message: MailMessage) -> SendReceipt:
        if not self.is_configured:
            raise MailerNotConfiguredError("SMTP_HOST and MAIL_FROM_EMAIL must be configured")

        email = compose_email(self._sender(), message)
        try:
            await aiosmtplib.send(email, **self._connection_kwargs())
        except aiosmtplib.SMTPAuthenticationError as err:
            logger.error("SMTP authentication failed for %s: %s", self._settings.smtp_username, err)
            raise MailerAuthError(str(err)) from err
        except (
            aiosmtplib.SMTPConnectError,
            aiosmtplib.SMTPConnectTimeoutError,
            aiosmtplib.SMTPServerDisconnected,
            aiosmtplib.SMTPTimeoutError,
        ) as err:
            raise MailerConnectionError(str(err) or "SMTP connection failed") from err
        except aiosmtplib.SMTPException as err:
            raise MailerError(str(err)) from err
        except OSError as err:
            raise MailerConnectionError(str(err) or "SMTP connection failed") from err

        logger.debug("Sent '%s' to %s", message.subject, message.to)
        return SendReceipt(message_id=email["Message-ID"])

    async def verify(self) -> bool:
        """Connect (and log in when credentials are set) without sending anything."""

        if not self.is_configured:
            logger.warning("SMTP is not configured; skipping verification")
            return False

        kwargs = self._connection_kwargs()
        username = kwargs.pop("username", None)
        password = kwargs.pop("password", None)
        try:
            async with aiosmtplib.SMTP(**kwargs) as smtp:
                if username and password:
                    await smtp.login(username, password)
        except (aiosmtplib.SMTPException, OSError):
            logger.exception("Email configuration check failed")
            return False
        return True
