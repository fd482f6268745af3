"""Tests for paced batch delivery."""
from __future__ import annotations

import asyncio

import pytest

from classnotify.errors import InvalidDispatchParametersError
from classnotify.models.domain import (
    SKIPPED_REASON,
    MailMessage,
    NotificationCategory,
    NotificationPreferences,
    OutcomeStatus,
)
from classnotify.services.batch_dispatcher import BatchDispatcher, chunk
from classnotify.services.mailer import MailerConnectionError


def build_message(recipient) -> MailMessage:
    return MailMessage(
        to=recipient.email,
        subject="New Announcement",
        html=f"<p>Hello {recipient.display_name}</p>",
        text=f"Hello {recipient.display_name}",
    )


def test_chunk_sizes():
    assert [len(c) for c in chunk(list(range(25)), 10)] == [10, 10, 5]
    assert chunk([], 10) == []


@pytest.mark.asyncio
async def test_25_recipients_go_out_in_three_batches_with_two_pauses(fake_mailer, recording_sleep, make_recipients):
    dispatcher = BatchDispatcher(fake_mailer, batch_size=10, inter_batch_delay_ms=1000, sleep=recording_sleep)

    summary = await dispatcher.dispatch(make_recipients(25), build_message, NotificationCategory.ANNOUNCEMENT)

    assert summary.batches == 3
    assert recording_sleep.calls == [1.0, 1.0]
    assert summary.sent == 25
    assert len(fake_mailer.sent) == 25


@pytest.mark.asyncio
async def test_batches_never_overlap(make_recipients):
    in_flight = 0
    peak = 0
    batch_of_send: list[int] = []
    pauses = 0

    class SlowMailer:
        async def send(self, message):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            batch_of_send.append(pauses)
            await asyncio.sleep(0)
            in_flight -= 1
            return None

    async def pause(seconds):
        nonlocal pauses
        assert in_flight == 0
        pauses += 1

    dispatcher = BatchDispatcher(SlowMailer(), batch_size=4, inter_batch_delay_ms=5, sleep=pause)
    await dispatcher.dispatch(make_recipients(10), build_message, NotificationCategory.ANNOUNCEMENT)

    assert peak == 4
    assert batch_of_send == [0] * 4 + [1] * 4 + [2] * 2


@pytest.mark.asyncio
async def test_one_failure_does_not_affect_siblings(mailer_factory, recording_sleep, make_recipients):
    recipients = make_recipients(10)
    mailer = mailer_factory(failures={recipients[2].email: MailerConnectionError("connection reset")})
    dispatcher = BatchDispatcher(mailer, sleep=recording_sleep)

    summary = await dispatcher.dispatch(recipients, build_message, NotificationCategory.ANNOUNCEMENT)

    statuses = [o.status for o in summary.outcomes]
    assert statuses[2] is OutcomeStatus.FAILED
    assert summary.outcomes[2].error == "connection reset"
    assert all(s is OutcomeStatus.SENT for i, s in enumerate(statuses) if i != 2)
    assert (summary.sent, summary.failed, summary.skipped) == (9, 1, 0)


@pytest.mark.asyncio
async def test_failures_in_first_batch_do_not_stop_later_batches(mailer_factory, recording_sleep, make_recipients):
    recipients = make_recipients(15)
    mailer = mailer_factory(failures={r.email: RuntimeError("boom") for r in recipients[:10]})
    dispatcher = BatchDispatcher(mailer, sleep=recording_sleep)

    summary = await dispatcher.dispatch(recipients, build_message, NotificationCategory.ANNOUNCEMENT)

    assert summary.failed == 10
    assert summary.sent == 5
    assert len(mailer.attempts) == 15


@pytest.mark.asyncio
async def test_message_builder_error_is_a_recipient_failure(fake_mailer, recording_sleep, make_recipients):
    recipients = make_recipients(3)

    def builder(recipient):
        if recipient.id == "r2":
            raise ValueError("template broke")
        return build_message(recipient)

    dispatcher = BatchDispatcher(fake_mailer, sleep=recording_sleep)
    summary = await dispatcher.dispatch(recipients, builder, NotificationCategory.ANNOUNCEMENT)

    assert [o.status for o in summary.outcomes] == [OutcomeStatus.SENT, OutcomeStatus.FAILED, OutcomeStatus.SENT]


@pytest.mark.asyncio
async def test_skipped_recipients_are_appended_and_never_sent(fake_mailer, recording_sleep, make_recipients):
    opted_out = make_recipients(2, NotificationPreferences(email_notifications=False), prefix="out")
    regular = make_recipients(3)
    recipients = [regular[0], opted_out[0], regular[1], opted_out[1], regular[2]]

    dispatcher = BatchDispatcher(fake_mailer, sleep=recording_sleep)
    summary = await dispatcher.dispatch(recipients, build_message, NotificationCategory.ANNOUNCEMENT)

    assert [o.recipient_id for o in summary.outcomes] == ["r1", "r2", "r3", "out1", "out2"]
    assert [o.status for o in summary.outcomes[3:]] == [OutcomeStatus.SKIPPED] * 2
    assert all(o.reason == SKIPPED_REASON for o in summary.outcomes[3:])
    assert {m.to for m in fake_mailer.sent} == {r.email for r in regular}
    assert summary.counts() == {"notified": 3, "failed": 0, "skipped": 2, "total": 5}


@pytest.mark.asyncio
async def test_twelve_recipients_one_pause(fake_mailer, recording_sleep, make_recipients):
    dispatcher = BatchDispatcher(fake_mailer, sleep=recording_sleep)

    summary = await dispatcher.dispatch(make_recipients(12), build_message, NotificationCategory.GROUP_ACTIVITY)

    assert summary.counts() == {"notified": 12, "failed": 0, "skipped": 0, "total": 12}
    assert len(recording_sleep.calls) == 1


@pytest.mark.asyncio
async def test_no_pause_for_single_batch_or_empty_input(fake_mailer, recording_sleep, make_recipients):
    dispatcher = BatchDispatcher(fake_mailer, sleep=recording_sleep)

    await dispatcher.dispatch(make_recipients(10), build_message, NotificationCategory.ANNOUNCEMENT)
    empty = await dispatcher.dispatch([], build_message, NotificationCategory.ANNOUNCEMENT)

    assert recording_sleep.calls == []
    assert empty.total == 0
    assert empty.batches == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("kwargs", [{"batch_size": 0}, {"batch_size": -3}, {"inter_batch_delay_ms": -1}])
async def test_invalid_parameters_are_rejected_before_sending(fake_mailer, make_recipients, kwargs):
    dispatcher = BatchDispatcher(fake_mailer)

    with pytest.raises(InvalidDispatchParametersError):
        await dispatcher.dispatch(make_recipients(2), build_message, NotificationCategory.ANNOUNCEMENT, **kwargs)

    assert fake_mailer.attempts == []
