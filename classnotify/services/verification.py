"""One-time numeric verification codes: issue, deliver, throttle, verify."""
from __future__ import annotations

import asyncio
import logging
import secrets
from datetime import datetime, timedelta, timezone
from random import Random
from typing import Any, Awaitable, Callable, Mapping

from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_fixed

from classnotify.errors import (
    CodeExpiredError,
    CodeMismatchError,
    DeliveryFailedError,
    NoChallengeError,
    RateLimitedError,
)
from classnotify.models.domain import (
    ChallengeHandle,
    ChallengeState,
    MailMessage,
    VerificationChallenge,
    VerifiedChallenge,
)
from classnotify.services.mailer import Mailer, MailerAuthError, MailerNotConfiguredError
from classnotify.services.rate_limit_store import RateLimitStore
from classnotify.services.templates import EmailRenderer


logger = logging.getLogger(__name__)

CODE_MIN = 1000
CODE_MAX = 9999

VerificationMessageBuilder = Callable[[str, str, Mapping[str, Any], int], MailMessage]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_transient(exc: BaseException) -> bool:
    # Bad credentials or a missing configuration will not fix themselves on retry.
    return isinstance(exc, Exception) and not isinstance(exc, (MailerAuthError, MailerNotConfiguredError))


class TransientCodeIssuer:
    """
    Issue 4-digit verification codes and check them.

    At most one challenge exists per identity; issuing a new one supersedes the
    previous. Challenges live in process memory only.
    """

    def __init__(
        self,
        mailer: Mailer,
        rate_limit_store: RateLimitStore,
        *,
        code_ttl: timedelta = timedelta(minutes=10),
        rate_limit: int = 5,
        rate_window: timedelta = timedelta(hours=1),
        delivery_retries: int = 2,
        retry_backoff_seconds: float = 0.5,
        message_builder: VerificationMessageBuilder | None = None,
        clock: Callable[[], datetime] = _utcnow,
        rng: Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._mailer = mailer
        self._store = rate_limit_store
        self._code_ttl = code_ttl
        self._rate_limit = rate_limit
        self._rate_window = rate_window
        self._delivery_retries = delivery_retries
        self._retry_backoff_seconds = retry_backoff_seconds
        self._message_builder = message_builder or EmailRenderer().verification_message
        self._clock = clock
        self._rng = rng or secrets.SystemRandom()
        self._sleep = sleep
        self._challenges: dict[str, VerificationChallenge] = {}

    @property
    def rate_limit_store(self) -> RateLimitStore:
        return self._store

    def challenge_state(self, identity_key: str) -> ChallengeState | None:
        challenge = self._challenges.get(identity_key)
        return challenge.state if challenge else None

    def _generate_code(self, previous: VerificationChallenge | None) -> str:
        while True:
            code = str(self._rng.randint(CODE_MIN, CODE_MAX))
            # A superseded code must never verify, so never reissue the same digits.
            if previous is None or code != previous.code:
                return code

    async def _reserve_quota(self, identity_key: str, now: datetime) -> None:
        async with self._store.lock(identity_key):
            record = await self._store.try_acquire(identity_key, now, self._rate_window, self._rate_limit)
        if record is None:
            logger.info("Verification code rate limit hit for %s", identity_key)
            raise RateLimitedError(identity_key=identity_key)

    async def request_code(self, identity_key: str, context: Mapping[str, Any] | None = None) -> ChallengeHandle:
        """
        Issue a fresh code for ``identity_key`` and email it.

        Raises:
            RateLimitedError: quota for the current window is used up; nothing was sent
            DeliveryFailedError: the email could not be sent after all retries
        """
        now = self._clock()
        await self._reserve_quota(identity_key, now)

        previous = self._challenges.get(identity_key)
        challenge = VerificationChallenge(
            identity_key=identity_key,
            code=self._generate_code(previous),
            issued_at=now,
            expires_at=now + self._code_ttl,
        )
        if previous is not None and previous.state is ChallengeState.ISSUED:
            previous.state = ChallengeState.SUPERSEDED
        self._challenges[identity_key] = challenge

        ttl_minutes = max(1, int(self._code_ttl.total_seconds() // 60))
        message = self._message_builder(identity_key, challenge.code, dict(context or {}), ttl_minutes)
        try:
            receipt = await self._deliver(message)
        except Exception as exc:
            if self._challenges.get(identity_key) is challenge:
                del self._challenges[identity_key]
            kind = getattr(exc, "kind", "other")
            logger.error("Verification code delivery to %s failed (%s): %s", identity_key, kind, exc)
            raise DeliveryFailedError(identity_key=identity_key, kind=kind) from exc

        logger.info("Verification code issued for %s (expires %s)", identity_key, challenge.expires_at.isoformat())
        return ChallengeHandle(
            identity_key=identity_key,
            issued_at=challenge.issued_at,
            expires_at=challenge.expires_at,
            message_id=receipt.message_id,
        )

    async def _deliver(self, message: MailMessage):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._delivery_retries + 1),
            wait=wait_fixed(self._retry_backoff_seconds),
            retry=retry_if_exception(_is_transient),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await self._mailer.send(message)

    def verify_code(self, identity_key: str, submitted_code: str) -> VerifiedChallenge:
        """
        Check ``submitted_code`` against the outstanding challenge.

        Raises:
            NoChallengeError: nothing outstanding (never issued, consumed or superseded)
            CodeExpiredError: the validity window has passed, even for the right code
            CodeMismatchError: wrong code; the challenge stays open
        """
        challenge = self._challenges.get(identity_key)
        if challenge is None or challenge.state is not ChallengeState.ISSUED:
            if challenge is not None and challenge.state is ChallengeState.EXPIRED:
                raise CodeExpiredError(identity_key=identity_key)
            raise NoChallengeError(identity_key=identity_key)

        now = self._clock()
        if challenge.is_expired(now):
            challenge.state = ChallengeState.EXPIRED
            raise CodeExpiredError(identity_key=identity_key)

        if not secrets.compare_digest(challenge.code.encode(), str(submitted_code).encode()):
            raise CodeMismatchError(identity_key=identity_key)

        challenge.state = ChallengeState.VERIFIED
        del self._challenges[identity_key]
        logger.info("Verification succeeded for %s", identity_key)
        return VerifiedChallenge(identity_key=identity_key, verified_at=now)

    async def sweep(self) -> dict[str, int]:
        """Purge stale rate-limit records and challenges that expired a full lifetime ago."""

        now = self._clock()
        removed_records = await self._store.sweep(now - self._rate_window)
        cutoff = now - self._code_ttl
        stale = [key for key, ch in self._challenges.items() if ch.expires_at < cutoff]
        for key in stale:
            del self._challenges[key]
        return {"rate_limit_records": removed_records, "challenges": len(stale)}
