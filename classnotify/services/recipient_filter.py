"""Preference-based eligibility for email notifications."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from classnotify.errors import UnknownCategoryError
from classnotify.models.domain import NotificationCategory, Recipient


@dataclass(slots=True)
class FilterResult:
    eligible: list[Recipient] = field(default_factory=list)
    skipped: list[Recipient] = field(default_factory=list)


def is_eligible(recipient: Recipient, category: NotificationCategory) -> bool:
    """
    Decide whether a recipient should receive a notification of ``category``.

    Users who never saved preferences get everything. Otherwise both the master
    switch and the category flag must not be explicitly ``False``; a flag that
    was never set counts as enabled.
    """
    prefs = recipient.preferences
    if prefs is None:
        return True
    if prefs.email_notifications is False:
        return False
    return getattr(prefs, category.preference_flag) is not False


def coerce_category(value: NotificationCategory | str) -> NotificationCategory:
    try:
        return NotificationCategory(value)
    except ValueError:
        raise UnknownCategoryError(category=value) from None


def filter_recipients(recipients: Iterable[Recipient], category: NotificationCategory) -> FilterResult:
    """Partition recipients into eligible and skipped, keeping input order in both."""

    category = coerce_category(category)
    result = FilterResult()
    for recipient in recipients:
        if is_eligible(recipient, category):
            result.eligible.append(recipient)
        else:
            result.skipped.append(recipient)
    return result
