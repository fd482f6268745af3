"""Loading notification recipients for a group from the database."""
from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy.orm import Session

from classnotify.errors import GroupNotFoundError
from classnotify.models.database_models import Group, GroupMember, User
from classnotify.models.domain import GroupInfo, NotificationPreferences, Recipient


logger = logging.getLogger(__name__)


class RecipientSource(Protocol):
    def get_group(self, group_id: str) -> GroupInfo:
        """Return the group or raise GroupNotFoundError."""
        ...

    def list_recipients(self, group_id: str) -> list[Recipient]:
        ...


def user_to_recipient(user: User) -> Recipient:
    return Recipient(
        id=user.id,
        email=user.email,
        display_name=user.name or user.email,
        preferences=NotificationPreferences.from_mapping(user.notification_preferences),
    )


class SqlRecipientSource:
    """Approved students of a group, in the order they joined it."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def get_group(self, group_id: str) -> GroupInfo:
        group = self._db.get(Group, group_id)
        if group is None:
            raise GroupNotFoundError(group_id=group_id)
        return GroupInfo(id=group.id, name=group.name, description=group.description or "")

    def list_recipients(self, group_id: str) -> list[Recipient]:
        users = (
            self._db.query(User)
            .join(GroupMember, GroupMember.user_id == User.id)
            .filter(
                GroupMember.group_id == group_id,
                User.role == "student",
                User.is_approved.is_(True),
            )
            .order_by(GroupMember.created_at, GroupMember.id)
            .all()
        )
        logger.debug("Loaded %d recipients for group %s", len(users), group_id)
        return [user_to_recipient(user) for user in users]
