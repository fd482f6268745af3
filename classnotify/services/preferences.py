"""Reading and updating a user's notification preferences."""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from classnotify.errors import UserNotFoundError
from classnotify.models.database_models import User
from classnotify.models.domain import NotificationPreferences


logger = logging.getLogger(__name__)


def _load_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id=user_id)
    return user


def get_preferences(db: Session, user_id: str) -> NotificationPreferences:
    """Stored preferences; a user who never saved any gets all flags unset."""

    user = _load_user(db, user_id)
    return NotificationPreferences.from_mapping(user.notification_preferences) or NotificationPreferences()


def update_preferences(
    db: Session,
    user_id: str,
    *,
    email_notifications: bool | None = None,
    announcement_emails: bool | None = None,
    group_activity_emails: bool | None = None,
) -> NotificationPreferences:
    """Merge the given flags over the stored ones. ``None`` leaves a flag as it was."""

    user = _load_user(db, user_id)
    current = NotificationPreferences.from_mapping(user.notification_preferences) or NotificationPreferences()
    merged = NotificationPreferences(
        email_notifications=current.email_notifications if email_notifications is None else email_notifications,
        announcement_emails=current.announcement_emails if announcement_emails is None else announcement_emails,
        group_activity_emails=(
            current.group_activity_emails if group_activity_emails is None else group_activity_emails
        ),
    )
    user.notification_preferences = merged.to_mapping()
    db.commit()
    logger.info("Updated notification preferences for user %s: %s", user_id, user.notification_preferences)
    return merged
