"""In-app notification API endpoints."""

from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from manualflow.api.deps import get_current_identity, get_notification_service
from manualflow.core.config import Settings, get_settings
from manualflow.core.security import Identity
from manualflow.services.notifications import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


# Schemas
class NotificationResponse(BaseModel):
    id: int
    title: str
    message: str
    type: str
    related_manual_id: Optional[str]
    related_version_seq: Optional[int]
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime]

    class Config:
        from_attributes = True


class UnreadCountResponse(BaseModel):
    count: int


class UpdatedCountResponse(BaseModel):
    updated: int


# Endpoints
@router.get("", response_model=List[NotificationResponse])
def list_notifications(
    limit: Optional[int] = Query(None, ge=1, le=500),
    identity: Identity = Depends(get_current_identity),
    service: NotificationService = Depends(get_notification_service),
    settings: Settings = Depends(get_settings),
):
    """List the caller's most recent notifications."""
    items = service.list_for_user(identity.username, limit or settings.notification_list_limit)
    return [NotificationResponse.model_validate(n) for n in items]


@router.get("/unread", response_model=List[NotificationResponse])
def list_unread(
    identity: Identity = Depends(get_current_identity),
    service: NotificationService = Depends(get_notification_service),
):
    return [NotificationResponse.model_validate(n) for n in service.list_unread(identity.username)]


@router.get("/unread/count", response_model=UnreadCountResponse)
def unread_count(
    identity: Identity = Depends(get_current_identity),
    service: NotificationService = Depends(get_notification_service),
):
    return UnreadCountResponse(count=service.unread_count(identity.username))


@router.patch("/read-all", response_model=UpdatedCountResponse)
def mark_all_read(
    identity: Identity = Depends(get_current_identity),
    service: NotificationService = Depends(get_notification_service),
):
    return UpdatedCountResponse(updated=service.mark_all_as_read(identity.username))


@router.patch("/{notification_id}/read", status_code=204)
def mark_read(
    notification_id: int,
    identity: Identity = Depends(get_current_identity),
    service: NotificationService = Depends(get_notification_service),
):
    if not service.mark_as_read(notification_id, identity.username):
        raise HTTPException(status_code=404, detail="Notification not found")


@router.delete("/{notification_id}", status_code=204)
def delete_notification(
    notification_id: int,
    identity: Identity = Depends(get_current_identity),
    service: NotificationService = Depends(get_notification_service),
):
    if not service.delete_notification(notification_id, identity.username):
        raise HTTPException(status_code=404, detail="Notification not found")
