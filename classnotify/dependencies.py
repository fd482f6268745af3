"""Process-wide service instances exposed as FastAPI dependencies."""
from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from classnotify.config import get_settings
from classnotify.database import SessionLocal
from classnotify.services.batch_dispatcher import BatchDispatcher
from classnotify.services.mailer import Mailer, SmtpMailer
from classnotify.services.notification_service import NotificationService
from classnotify.services.rate_limit_store import InMemoryRateLimitStore, RateLimitStore, SqlRateLimitStore
from classnotify.services.task_queue import NotificationTaskQueue
from classnotify.services.templates import EmailRenderer
from classnotify.services.verification import TransientCodeIssuer


@lru_cache()
def get_mailer() -> Mailer:
    return SmtpMailer(get_settings())


@lru_cache()
def get_renderer() -> EmailRenderer:
    return EmailRenderer(brand_name=get_settings().mail_brand_name)


@lru_cache()
def get_rate_limit_store() -> RateLimitStore:
    if get_settings().rate_limit_backend == "sql":
        return SqlRateLimitStore(SessionLocal)
    return InMemoryRateLimitStore()


@lru_cache()
def get_code_issuer() -> TransientCodeIssuer:
    settings = get_settings()
    return TransientCodeIssuer(
        get_mailer(),
        get_rate_limit_store(),
        code_ttl=timedelta(seconds=settings.verification_code_ttl_seconds),
        rate_limit=settings.verification_rate_limit,
        rate_window=timedelta(seconds=settings.verification_rate_window_seconds),
        delivery_retries=settings.verification_delivery_retries,
        retry_backoff_seconds=settings.verification_retry_backoff_ms / 1000,
        message_builder=get_renderer().verification_message,
    )


@lru_cache()
def get_batch_dispatcher() -> BatchDispatcher:
    settings = get_settings()
    return BatchDispatcher(
        get_mailer(),
        batch_size=settings.dispatch_batch_size,
        inter_batch_delay_ms=settings.dispatch_inter_batch_delay_ms,
    )


@lru_cache()
def get_notification_service() -> NotificationService:
    return NotificationService(get_batch_dispatcher(), get_renderer(), SessionLocal)


@lru_cache()
def get_task_queue() -> NotificationTaskQueue:
    return NotificationTaskQueue()
