"""Router exposing basic system endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter

from classnotify.config import get_settings


logger = logging.getLogger(__name__)


router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("/status")
async def get_status() -> dict[str, str]:
    """Return a minimal status payload."""
    return {"status": "online"}


@router.get("/mail")
async def get_mail_status() -> dict:
    """
    Report whether outgoing mail is configured.

    Does not open a connection to the relay; use ``scripts/check_mail.py`` for that.
    """
    settings = get_settings()
    return {
        "configured": settings.mail_configured,
        "host": settings.smtp_host,
        "port": settings.smtp_port,
        "security": settings.smtp_security,
        "sender": settings.sender_address,
    }
