from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from database import get_db
from schemas import NotificationResponse, ReadAllResponse
from crud import get_notifications, mark_notification_read, mark_all_read
from errors import not_found
from auth import get_current_user
from models import User

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationResponse])
def get_user_notifications(
    is_read: Optional[bool] = Query(None, alias="isRead"),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user)
):
    return get_notifications(db, user.id, limit, is_read)


@router.patch("/read-all", response_model=ReadAllResponse)
def mark_all_as_read(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    updated = mark_all_read(db, user.id)
    return ReadAllResponse(message="All notifications marked as read", updated_count=updated)


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(notification_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    notification = mark_notification_read(db, notification_id, user.id)
    if not notification:
        raise not_found("Notification not found")
    return notification
