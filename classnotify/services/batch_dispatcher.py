"""Paced batch delivery of a notification to many recipients."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from classnotify.errors import InvalidDispatchParametersError
from classnotify.models.domain import (
    SKIPPED_REASON,
    DispatchOutcome,
    DispatchSummary,
    MailMessage,
    NotificationCategory,
    OutcomeStatus,
    Recipient,
)
from classnotify.services.mailer import Mailer
from classnotify.services.recipient_filter import filter_recipients


logger = logging.getLogger(__name__)

MessageBuilder = Callable[[Recipient], MailMessage]
SleepFunc = Callable[[float], Awaitable[None]]

DEFAULT_BATCH_SIZE = 10
DEFAULT_INTER_BATCH_DELAY_MS = 1000


def chunk(items: Sequence[Recipient], size: int) -> list[list[Recipient]]:
    """Split ``items`` into consecutive slices of at most ``size`` elements."""

    return [list(items[start:start + size]) for start in range(0, len(items), size)]


class BatchDispatcher:
    """
    Deliver one message per eligible recipient in fixed-size batches.

    Sends inside a batch run concurrently; the next batch starts only after every
    send of the previous one resolved and the pacing delay elapsed. Individual
    failures are recorded as outcomes and never abort the run.
    """

    def __init__(
        self,
        mailer: Mailer,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        inter_batch_delay_ms: int = DEFAULT_INTER_BATCH_DELAY_MS,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._mailer = mailer
        self._batch_size = batch_size
        self._inter_batch_delay_ms = inter_batch_delay_ms
        self._sleep = sleep

    async def dispatch(
        self,
        recipients: Sequence[Recipient],
        message_builder: MessageBuilder,
        category: NotificationCategory,
        *,
        batch_size: int | None = None,
        inter_batch_delay_ms: int | None = None,
    ) -> DispatchSummary:
        """
        Filter, batch and send.

        Args:
            recipients: Candidate recipients in the order outcomes should be reported
            message_builder: Builds the personalised message for one recipient
            category: Notification category checked against recipient preferences
            batch_size: Overrides the dispatcher default (must be >= 1)
            inter_batch_delay_ms: Overrides the dispatcher default (must be >= 0)

        Returns:
            DispatchSummary with attempted outcomes in input order, followed by
            the skipped recipients.
        """
        size = self._batch_size if batch_size is None else batch_size
        delay_ms = self._inter_batch_delay_ms if inter_batch_delay_ms is None else inter_batch_delay_ms
        if isinstance(size, bool) or not isinstance(size, int) or size < 1:
            raise InvalidDispatchParametersError(reason=f"batch_size must be a positive integer, got {size!r}")
        if isinstance(delay_ms, bool) or not isinstance(delay_ms, int) or delay_ms < 0:
            raise InvalidDispatchParametersError(
                reason=f"inter_batch_delay_ms must be a non-negative integer, got {delay_ms!r}"
            )

        partition = filter_recipients(recipients, category)
        batches = chunk(partition.eligible, size)
        summary = DispatchSummary(batches=len(batches))

        logger.info(
            "Dispatching %s notification | eligible=%d | skipped=%d | batches=%d",
            NotificationCategory(category).value,
            len(partition.eligible),
            len(partition.skipped),
            len(batches),
        )

        for index, batch in enumerate(batches):
            outcomes = await asyncio.gather(
                *(self._deliver(recipient, message_builder) for recipient in batch)
            )
            summary.outcomes.extend(outcomes)
            logger.debug(
                "Batch %d/%d done | sent=%d | failed=%d",
                index + 1,
                len(batches),
                sum(1 for o in outcomes if o.status is OutcomeStatus.SENT),
                sum(1 for o in outcomes if o.status is OutcomeStatus.FAILED),
            )
            if index < len(batches) - 1 and delay_ms:
                await self._sleep(delay_ms / 1000)

        summary.outcomes.extend(
            DispatchOutcome(
                recipient_id=recipient.id,
                email=recipient.email,
                status=OutcomeStatus.SKIPPED,
                reason=SKIPPED_REASON,
            )
            for recipient in partition.skipped
        )

        logger.info(
            "Dispatch finished | sent=%d | failed=%d | skipped=%d | total=%d",
            summary.sent,
            summary.failed,
            summary.skipped,
            summary.total,
        )
        return summary

    async def _deliver(self, recipient: Recipient, message_builder: MessageBuilder) -> DispatchOutcome:
        try:
            message = message_builder(recipient)
            await self._mailer.send(message)
        except Exception as exc:
            logger.warning("Failed to send notification to %s: %s", recipient.email, exc)
            return DispatchOutcome(
                recipient_id=recipient.id,
                email=recipient.email,
                status=OutcomeStatus.FAILED,
                error=str(exc) or exc.__class__.__name__,
            )
        return DispatchOutcome(
            recipient_id=recipient.id,
            email=recipient.email,
            status=OutcomeStatus.SENT,
        )
