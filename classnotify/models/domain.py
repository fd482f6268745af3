"""Plain domain objects shared by the notification services."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class NotificationCategory(str, Enum):
    """Kinds of notification a recipient can opt out of individually."""

    ANNOUNCEMENT = "announcement"
    GROUP_ACTIVITY = "group_activity"

    @classmethod
    def _missing_(cls, value: object):
        # Accept the camelCase spelling used by the web client ("groupActivity").
        if isinstance(value, str):
            normalized = "".join(f"_{c.lower()}" if c.isupper() else c for c in value).strip("_")
            for member in cls:
                if member.value == normalized:
                    return member
        return None

    @property
    def preference_flag(self) -> str:
        return _CATEGORY_FLAGS[self]


_CATEGORY_FLAGS = {
    NotificationCategory.ANNOUNCEMENT: "announcement_emails",
    NotificationCategory.GROUP_ACTIVITY: "group_activity_emails",
}


@dataclass(slots=True, frozen=True)
class NotificationPreferences:
    """Stored opt-out flags. ``None`` means the user never set the flag."""

    email_notifications: bool | None = None
    announcement_emails: bool | None = None
    group_activity_emails: bool | None = None

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> "NotificationPreferences | None":
        """Build preferences from a stored JSON document (camelCase or snake_case keys)."""

        if data is None:
            return None
        return cls(
            email_notifications=_flag(data, "email_notifications", "emailNotifications"),
            announcement_emails=_flag(data, "announcement_emails", "announcementEmails"),
            group_activity_emails=_flag(data, "group_activity_emails", "groupActivityEmails"),
        )

    def to_mapping(self) -> dict[str, bool]:
        """Stored flags only; unset flags are left out."""

        return {
            key: value
            for key, value in (
                ("emailNotifications", self.email_notifications),
                ("announcementEmails", self.announcement_emails),
                ("groupActivityEmails", self.group_activity_emails),
            )
            if value is not None
        }

    def effective(self) -> dict[str, bool]:
        """Flags as the user sees them: anything not explicitly false is on."""

        return {
            "emailNotifications": self.email_notifications is not False,
            "announcementEmails": self.announcement_emails is not False,
            "groupActivityEmails": self.group_activity_emails is not False,
        }


def _flag(data: dict[str, Any], *keys: str) -> bool | None:
    for key in keys:
        if key in data and data[key] is not None:
            return bool(data[key])
    return None


@dataclass(slots=True, frozen=True)
class Recipient:
    """An addressable notification target."""

    id: str
    email: str
    display_name: str
    preferences: NotificationPreferences | None = None


@dataclass(slots=True, frozen=True)
class GroupInfo:
    id: str
    name: str
    description: str = ""


@dataclass(slots=True, frozen=True)
class MailMessage:
    """Structured payload handed to a Mailer."""

    to: str
    subject: str
    html: str
    text: str


@dataclass(slots=True, frozen=True)
class SendReceipt:
    message_id: str


class OutcomeStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


SKIPPED_REASON = "notifications disabled by user"


@dataclass(slots=True, frozen=True)
class DispatchOutcome:
    """Result of one recipient's delivery attempt (or non-attempt)."""

    recipient_id: str
    email: str
    status: OutcomeStatus
    error: str | None = None
    reason: str | None = None


@dataclass(slots=True)
class DispatchSummary:
    """Aggregate over every outcome of a single dispatch call."""

    outcomes: list[DispatchOutcome] = field(default_factory=list)
    batches: int = 0

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def sent(self) -> int:
        return self._count(OutcomeStatus.SENT)

    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    def counts(self) -> dict[str, int]:
        return {
            "notified": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "total": self.total,
        }


class ChallengeState(str, Enum):
    ISSUED = "issued"
    VERIFIED = "verified"
    EXPIRED = "expired"
    SUPERSEDED = "superseded"


@dataclass(slots=True)
class VerificationChallenge:
    """One outstanding verification code for an identity. Never persisted."""

    identity_key: str
    code: str
    issued_at: datetime
    expires_at: datetime
    state: ChallengeState = ChallengeState.ISSUED

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass(slots=True)
class RateLimitRecord:
    identity_key: str
    count: int
    window_start: datetime


@dataclass(slots=True, frozen=True)
class ChallengeHandle:
    """What a caller gets back after requesting a code. The code itself stays out."""

    identity_key: str
    issued_at: datetime
    expires_at: datetime
    message_id: str


@dataclass(slots=True, frozen=True)
class VerifiedChallenge:
    identity_key: str
    verified_at: datetime
