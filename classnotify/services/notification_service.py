"""Group notification workflow: load recipients, dispatch, record the outcome."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy.orm import Session, selectinload

from classnotify.errors import DispatchNotFoundError
from classnotify.models.database_models import NotificationDispatch, NotificationOutcome
from classnotify.models.domain import DispatchSummary, GroupInfo, NotificationCategory, Recipient
from classnotify.services.batch_dispatcher import BatchDispatcher
from classnotify.services.recipient_filter import coerce_category
from classnotify.services.recipient_source import RecipientSource, SqlRecipientSource
from classnotify.services.templates import EmailRenderer


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DispatchResult:
    dispatch_id: str | None
    group: GroupInfo
    summary: DispatchSummary

    def counts(self) -> dict[str, Any]:
        return {"dispatch_id": self.dispatch_id, **self.summary.counts()}


class NotificationService:
    """Ties the recipient source, the batch dispatcher and the audit tables together."""

    def __init__(
        self,
        dispatcher: BatchDispatcher,
        renderer: EmailRenderer,
        session_factory: Callable[[], Session],
        source_factory: Callable[[Session], RecipientSource] = SqlRecipientSource,
    ) -> None:
        self._dispatcher = dispatcher
        self._renderer = renderer
        self._session_factory = session_factory
        self._source_factory = source_factory

    def ensure_group(self, group_id: str) -> GroupInfo:
        with self._session_factory() as db:
            return self._source_factory(db).get_group(group_id)

    def _load(self, group_id: str) -> tuple[GroupInfo, list[Recipient]]:
        with self._session_factory() as db:
            source = self._source_factory(db)
            group = source.get_group(group_id)
            return group, source.list_recipients(group_id)

    def _message_builder(self, group: GroupInfo, category: NotificationCategory, announcement: Any | None):
        if category is NotificationCategory.ANNOUNCEMENT and announcement is not None:
            return lambda recipient: self._renderer.announcement_message(recipient, group, announcement)
        summary = ""
        if announcement is not None:
            summary = getattr(announcement, "title", "") or ""
        return lambda recipient: self._renderer.group_activity_message(recipient, group, summary)

    async def notify_group(
        self,
        group_id: str,
        category: NotificationCategory,
        announcement: Any | None = None,
    ) -> DispatchResult:
        """
        Send ``category`` notifications to every eligible member of ``group_id``.

        Raises:
            GroupNotFoundError: the group does not exist
            UnknownCategoryError: ``category`` is not a known notification category
        """
        category = coerce_category(category)
        group, recipients = self._load(group_id)
        logger.info(
            "Sending %s notifications to %d members of group %s (%s)",
            category.value,
            len(recipients),
            group.id,
            group.name,
        )

        summary = await self._dispatcher.dispatch(
            recipients,
            self._message_builder(group, category, announcement),
            category,
        )
        subject = getattr(announcement, "title", None) if announcement is not None else None
        dispatch_id = self._record(group, category, subject, summary)
        return DispatchResult(dispatch_id=dispatch_id, group=group, summary=summary)

    def _record(
        self,
        group: GroupInfo,
        category: NotificationCategory,
        subject: str | None,
        summary: DispatchSummary,
    ) -> str | None:
        db = self._session_factory()
        try:
            record = NotificationDispatch(
                group_id=group.id,
                category=category.value,
                subject=subject,
                sent_count=summary.sent,
                failed_count=summary.failed,
                skipped_count=summary.skipped,
                total_count=summary.total,
                batch_count=summary.batches,
            )
            record.outcomes = [
                NotificationOutcome(
                    position=position,
                    recipient_id=outcome.recipient_id,
                    email=outcome.email,
                    status=outcome.status.value,
                    error=outcome.error,
                    reason=outcome.reason,
                )
                for position, outcome in enumerate(summary.outcomes)
            ]
            db.add(record)
            db.commit()
            return record.id
        except Exception:
            # Mail has already gone out; the caller still gets the summary.
            db.rollback()
            logger.exception("Failed to record dispatch for group %s", group.id)
            return None
        finally:
            db.close()

    def get_dispatch(self, dispatch_id: str) -> NotificationDispatch:
        with self._session_factory() as db:
            record = (
                db.query(NotificationDispatch)
                .options(selectinload(NotificationDispatch.outcomes))
                .filter(NotificationDispatch.id == dispatch_id)
                .first()
            )
            if record is None:
                raise DispatchNotFoundError(dispatch_id=dispatch_id)
            db.expunge(record)
            return record
