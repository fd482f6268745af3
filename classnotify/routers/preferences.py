"""Notification preference endpoints backing the settings page."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from classnotify.database import get_db
from classnotify.errors import UserNotFoundError
from classnotify.models.schemas import PreferencesResponse, PreferencesUpdate
from classnotify.services import preferences as preference_service

router = APIRouter(prefix="/users", tags=["preferences"])


def _response(user_id: str, prefs) -> PreferencesResponse:
    effective = prefs.effective()
    return PreferencesResponse(
        user_id=user_id,
        email_notifications=effective["emailNotifications"],
        announcement_emails=effective["announcementEmails"],
        group_activity_emails=effective["groupActivityEmails"],
    )


@router.get("/{user_id}/notification-preferences", response_model=PreferencesResponse)
async def read_preferences(user_id: str, db: Annotated[Session, Depends(get_db)]) -> PreferencesResponse:
    """Effective preferences; flags the user never touched read as enabled."""
    try:
        prefs = preference_service.get_preferences(db, user_id)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    return _response(user_id, prefs)


@router.put("/{user_id}/notification-preferences", response_model=PreferencesResponse)
async def write_preferences(
    user_id: str,
    payload: PreferencesUpdate,
    db: Annotated[Session, Depends(get_db)],
) -> PreferencesResponse:
    try:
        prefs = preference_service.update_preferences(
            db,
            user_id,
            email_notifications=payload.email_notifications,
            announcement_emails=payload.announcement_emails,
            group_activity_emails=payload.group_activity_emails,
        )
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    return _response(user_id, prefs)
