"""
Notification API routes - the caller's own notifications.

Every endpoint is scoped to the user identified by X-User-Id; another
user's notification is reported as not found.
"""

import time
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from answerdesk.config import Settings
from answerdesk.database import get_db
from answerdesk.dependencies import get_current_user, get_settings, page_limit
from answerdesk.logging_config import get_logger, log_with_context
from answerdesk.models.user import User
from answerdesk.schemas import pagination, serialize_notification
from answerdesk.services import notification_store

router = APIRouter()
logger = get_logger("http")


@router.get("/api/notifications")
def list_notifications(
    type: Optional[str] = Query(None, description="Filter by notification type"),
    priority: Optional[str] = Query(None, description="Filter by priority"),
    status: Optional[str] = Query(None, description="Filter by status"),
    date_from: Optional[str] = Query(None, description="ISO 8601 lower bound on created_at"),
    date_to: Optional[str] = Query(None, description="ISO 8601 upper bound on created_at"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
):
    """List the caller's notifications, newest first."""
    start_time = time.time()
    limit = page_limit(settings, limit)

    items, total = notification_store.list_notifications(
        db, user.id,
        type=type, priority=priority, status=status,
        date_from=date_from, date_to=date_to,
        page=page, limit=limit,
    )

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Listed {} notifications (page {}, total {})".format(len(items), page, total),
        context={"user_id": user.id},
        extra_data={"duration_ms": round(duration_ms, 2)})

    return {
        "success": True,
        "data": [serialize_notification(n) for n in items],
        "pagination": pagination(page, limit, total),
    }


@router.get("/api/notifications/counts")
def notification_counts(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"success": True, "data": notification_store.counts(db, user.id)}


@router.patch("/api/notifications/read-all")
def mark_all_read(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    modified = notification_store.mark_all_read(db, user.id)
    return {
        "success": True,
        "data": {"modified_count": modified},
        "message": "Marked {} notifications as read".format(modified),
    }


@router.patch("/api/notifications/{notification_id}/read")
def mark_read(notification_id: str, user: User = Depends(get_current_user),
              db: Session = Depends(get_db)):
    notification = notification_store.mark_read(db, notification_id, user.id)
    return {"success": True, "data": serialize_notification(notification)}


@router.patch("/api/notifications/{notification_id}/acknowledge")
def acknowledge(notification_id: str, user: User = Depends(get_current_user),
                db: Session = Depends(get_db)):
    notification = notification_store.acknowledge(db, notification_id, user.id)
    return {"success": True, "data": serialize_notification(notification)}


@router.patch("/api/notifications/{notification_id}/dismiss")
def dismiss(notification_id: str, user: User = Depends(get_current_user),
            db: Session = Depends(get_db)):
    notification = notification_store.dismiss(db, notification_id, user.id)
    return {"success": True, "data": serialize_notification(notification)}


@router.delete("/api/notifications/{notification_id}")
def delete_notification(notification_id: str, user: User = Depends(get_current_user),
                        db: Session = Depends(get_db)):
    notification_store.soft_delete(db, notification_id, user.id)
    return {"success": True, "message": "Notification deleted"}
