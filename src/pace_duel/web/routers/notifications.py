"""Notification routes."""

from fastapi import APIRouter, Depends

from ...services import NotificationService
from ..deps import get_current_user_id, get_notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    unread_only: bool = False,
    user_id: int = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    notifications = await service.list_for_user(user_id, unread_only=unread_only)
    return {"notifications": [n.to_dict() for n in notifications]}


@router.get("/unread-count")
async def unread_count(
    user_id: int = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    return {"unread": await service.unread_count(user_id)}


@router.post("/read-all")
async def mark_all_read(
    user_id: int = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service),
):
    await service.mark_all_read(user_id)
    return {"status": "ok"}
