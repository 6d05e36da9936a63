"""Notifications API endpoints."""

from typing import Dict, Any

from fastapi import APIRouter, HTTPException, status, Depends, Security

from auth import get_current_user
from notifications import NotificationManager, get_notification_manager

router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"]
)

@router.get("")
async def get_notifications(
    user: Dict[str, Any] = Security(get_current_user),
    notifications: NotificationManager = Depends(get_notification_manager)
):
    """The caller's notifications, oldest first."""
    try:
        return await notifications.list(user['id'])
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Error fetching notifications", "error": str(e)}
        )

@router.post("/clear")
async def clear_notifications(
    user: Dict[str, Any] = Security(get_current_user),
    notifications: NotificationManager = Depends(get_notification_manager)
):
    """Remove all of the caller's notifications."""
    try:
        await notifications.clear(user['id'])
        return {"message": "Notifications cleared"}
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Error clearing notifications", "error": str(e)}
        )

# Export the router
__all__ = ['router']
