"""Pydantic models describing API payloads."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from classnotify.models.domain import NotificationCategory


class CamelModel(BaseModel):
    """Accepts camelCase (web client) and snake_case field names alike."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnnouncementFile(CamelModel):
    name: str
    url: str
    is_downloadable: bool = True


class AnnouncementPayload(CamelModel):
    """Announcement content rendered into the notification email."""

    title: str = ""
    content: str = ""
    files: list[AnnouncementFile] = []


class DispatchRequest(CamelModel):
    category: NotificationCategory
    group_id: str = Field(min_length=1)
    announcement: AnnouncementPayload | None = None


class DispatchResponse(CamelModel):
    dispatch_id: str | None = None
    notified: int
    failed: int
    skipped: int
    total: int


class DispatchOutcomeResponse(CamelModel):
    recipient_id: str
    email: str
    status: str
    error: str | None = None
    reason: str | None = None


class DispatchRecordResponse(DispatchResponse):
    group_id: str
    category: str
    batches: int
    created_at: datetime
    outcomes: list[DispatchOutcomeResponse] = []


class TaskAcceptedResponse(CamelModel):
    task_id: str
    status: str


class TaskStatusResponse(CamelModel):
    task_id: str
    status: str
    summary: DispatchResponse | None = None
    error: str | None = None


class VerificationContext(CamelModel):
    name: str = Field(default="", max_length=200)
    purpose: str = Field(default="signup", max_length=50)


class CodeRequest(CamelModel):
    identity_key: str = Field(min_length=3, max_length=320)
    context: VerificationContext = VerificationContext()

    @field_validator("identity_key")
    @classmethod
    def strip_identity(cls, value: str) -> str:
        return value.strip()


class CodeRequestResponse(CamelModel):
    success: bool = True
    message: str
    expires_at: datetime


class CodeConfirm(CamelModel):
    identity_key: str = Field(min_length=3, max_length=320)
    code: str = Field(min_length=1, max_length=16)

    @field_validator("identity_key", "code")
    @classmethod
    def strip_value(cls, value: str) -> str:
        return value.strip()


class CodeConfirmResponse(CamelModel):
    verified: bool = True


class PreferencesUpdate(CamelModel):
    email_notifications: bool | None = None
    announcement_emails: bool | None = None
    group_activity_emails: bool | None = None


class PreferencesResponse(CamelModel):
    user_id: str
    email_notifications: bool
    announcement_emails: bool
    group_activity_emails: bool
