"""Email verification code endpoints used by the signup flow."""
from __future__ import annotations

import logging
import re
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from classnotify.dependencies import get_code_issuer
from classnotify.errors import (
    CodeExpiredError,
    CodeMismatchError,
    DeliveryFailedError,
    NoChallengeError,
    RateLimitedError,
)
from classnotify.models.schemas import CodeConfirm, CodeConfirmResponse, CodeRequest, CodeRequestResponse
from classnotify.services.verification import TransientCodeIssuer


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/verification", tags=["verification"])

IssuerDep = Annotated[TransientCodeIssuer, Depends(get_code_issuer)]

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_DELIVERY_MESSAGES = {
    "auth": "Email authentication failed. Please check server configuration.",
    "connection": "Failed to connect to email server. Please try again.",
    "config": "Email delivery is not configured on the server.",
}


@router.post("/request", response_model=CodeRequestResponse)
async def request_code(payload: CodeRequest, issuer: IssuerDep) -> CodeRequestResponse:
    """
    Email a fresh verification code to ``identityKey``.

    Raises:
        HTTPException: 400 for an invalid address, 429 when rate limited,
            500 when the email could not be delivered
    """
    identity_key = payload.identity_key.lower()
    if not EMAIL_PATTERN.match(identity_key):
        raise HTTPException(status_code=400, detail="Invalid email address")

    try:
        handle = await issuer.request_code(identity_key, payload.context.model_dump())
    except RateLimitedError:
        raise HTTPException(status_code=429, detail="Too many attempts. Please try again later.")
    except DeliveryFailedError as err:
        raise HTTPException(
            status_code=500,
            detail=_DELIVERY_MESSAGES.get(err.kind, "Failed to send verification code. Please try again."),
        )

    return CodeRequestResponse(
        message="Verification code sent successfully",
        expires_at=handle.expires_at,
    )


@router.post("/confirm", response_model=CodeConfirmResponse)
async def confirm_code(payload: CodeConfirm, issuer: IssuerDep) -> CodeConfirmResponse:
    """
    Check a submitted code.

    Raises:
        HTTPException: 400 on a wrong code or when no code is pending, 410 if it expired
    """
    identity_key = payload.identity_key.lower()
    try:
        issuer.verify_code(identity_key, payload.code)
    except CodeExpiredError:
        raise HTTPException(status_code=410, detail="Verification code has expired. Please request a new one.")
    except CodeMismatchError:
        raise HTTPException(status_code=400, detail="Invalid verification code")
    except NoChallengeError:
        raise HTTPException(status_code=400, detail="No verification code pending for this address")

    return CodeConfirmResponse(verified=True)
