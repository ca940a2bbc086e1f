"""
In-app notifications for email activity
Replies and delivery failures surface in the staff notification panel.
The notifications table is optional; without it these calls are no-ops.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database import get_schema_features
from ..models import Notification
from ..utils.sanitization import truncate

logger = logging.getLogger(__name__)

SYSTEM_USER = "system"


def create_notification(
    db: Session,
    title: str,
    message: str,
    notification_type: str,
    related_matter_id: Optional[int] = None,
    action_url: Optional[str] = None,
    priority: str = "medium",
) -> Optional[Notification]:
    """
    Add a notification inside a SAVEPOINT so a failure never disturbs the
    caller's transaction. Returns None when notifications are unavailable.
    """
    if not get_schema_features(db).notifications:
        logger.debug(f"Notifications table unavailable, skipping '{title}'")
        return None

    notification = Notification(
        user_id=SYSTEM_USER,
        title=title,
        message=message,
        type=notification_type,
        priority=priority,
        related_matter_id=related_matter_id,
        action_url=action_url,
    )
    try:
        with db.begin_nested():
            db.add(notification)
        return notification
    except SQLAlchemyError as e:
        logger.warning(f"⚠️ Could not record notification '{title}': {e}")
        return None


def reply_action_url(
    matter_id: int, deadline_id: Optional[int] = None, hearing_id: Optional[int] = None
) -> str:
    if deadline_id is not None:
        return f"/deadlines?id={deadline_id}"
    if hearing_id is not None:
        return f"/calendar?id={hearing_id}"
    return f"/matters/{matter_id}"


def notify_email_reply(
    db: Session,
    matter_id: int,
    from_address: str,
    reply_type: str,
    deadline_id: Optional[int] = None,
    hearing_id: Optional[int] = None,
) -> Optional[Notification]:
    return create_notification(
        db,
        title="Email Reply Received",
        message=f"Reply received from {from_address} regarding {reply_type}",
        notification_type="message",
        related_matter_id=matter_id,
        action_url=reply_action_url(matter_id, deadline_id, hearing_id),
    )


def notify_delivery_failure(
    db: Session, matter_id: int, email: Optional[str], reason: Optional[str]
) -> Optional[Notification]:
    return create_notification(
        db,
        title="Email Delivery Failed",
        message=f"Email to {email or 'unknown recipient'} failed: {truncate(reason) or 'Unknown error'}",
        notification_type="system",
        related_matter_id=matter_id,
        action_url=f"/matters/{matter_id}",
    )
