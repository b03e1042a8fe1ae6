"""
Notification dispatcher: persist first, then push best-effort.

``queue_notification`` adds a row inside the caller's transaction. ``deliver``
pushes already-committed rows to connected users. ``notify`` does both for
callers that do not manage their own transaction.
"""
from sqlalchemy.orm import Session
from typing import Iterable, Optional
from connections import manager
from models import Notification
from schemas import NotificationResponse
import logging

logger = logging.getLogger(__name__)


def serialize_notification(notification: Notification) -> dict:
    return NotificationResponse.model_validate(notification).model_dump(mode="json", by_alias=True)


def queue_notification(
    db: Session,
    user_id: int,
    type: str,
    message: str,
    related_entity_id: Optional[int] = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        message=message,
        related_entity_id=related_entity_id,
        is_read=False,
    )
    db.add(notification)
    db.flush()
    return notification


def push(user_id: int, payload: dict) -> bool:
    return manager.push(user_id, payload)


def deliver(notifications: Iterable[Notification]) -> int:
    """Push committed notifications to whichever recipients are online."""
    pushed = 0
    for notification in notifications:
        if push(notification.user_id, {"type": "notification", "data": serialize_notification(notification)}):
            pushed += 1
    return pushed


def notify(
    db: Session,
    user_id: int,
    type: str,
    message: str,
    related_entity_id: Optional[int] = None,
) -> Notification:
    notification = queue_notification(db, user_id, type, message, related_entity_id)
    db.commit()
    db.refresh(notification)
    deliver([notification])
    logger.debug("Notified user %s (%s)", user_id, type)
    return notification
