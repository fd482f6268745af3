"""Domain error hierarchy.

Each error class declares a ``msg_template`` that is formatted with the keyword
arguments passed to the constructor; those arguments are also kept as
attributes so handlers can inspect them.
"""
from __future__ import annotations

from typing import Any


class ClassNotifyError(Exception):
    msg_template = "Notification service error"

    def __init__(self, **ctx: Any) -> None:
        self.ctx = ctx
        for key, value in ctx.items():
            setattr(self, key, value)
        super().__init__(self._render())

    def _render(self) -> str:
        try:
            return self.msg_template.format(**self.ctx)
        except (KeyError, IndexError):
            return self.msg_template


class InvalidDispatchParametersError(ClassNotifyError, ValueError):
    msg_template = "Invalid dispatch parameters: {reason}"


class UnknownCategoryError(ClassNotifyError, ValueError):
    msg_template = "Unknown notification category '{category}'"


class GroupNotFoundError(ClassNotifyError):
    msg_template = "Group '{group_id}' not found"


class UserNotFoundError(ClassNotifyError):
    msg_template = "User '{user_id}' not found"


class DispatchNotFoundError(ClassNotifyError):
    msg_template = "Dispatch '{dispatch_id}' not found"


class TaskNotFoundError(ClassNotifyError):
    msg_template = "Task '{task_id}' not found"


# Verification codes


class VerificationError(ClassNotifyError):
    msg_template = "Verification failed for {identity_key}"


class RateLimitedError(VerificationError):
    msg_template = "Too many attempts for {identity_key}. Please try again later."


class DeliveryFailedError(VerificationError):
    """Raised once the verification email could not be sent after all retries.

    ``kind`` is the failing mailer error's kind (``auth``, ``connection``, ``config``
    or ``other``) so callers can tell a misconfigured transport from a flaky network.
    """

    msg_template = "Could not deliver verification code to {identity_key} ({kind})"


class NoChallengeError(VerificationError):
    msg_template = "No pending verification code for {identity_key}"


class CodeExpiredError(VerificationError):
    msg_template = "Verification code for {identity_key} has expired"


class CodeMismatchError(VerificationError):
    msg_template = "Verification code for {identity_key} does not match"
