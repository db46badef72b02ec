"""
Notification Store - persistence primitives for notifications.

Every operation is scoped to a recipient: a notification that exists but
belongs to someone else is reported as not found.
"""

import json
from datetime import datetime, timezone
from typing import Optional, Tuple, List

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from answerdesk.database import utcnow
from answerdesk.errors import NotFoundError, ValidationError
from answerdesk.logging_config import get_logger, log_with_context
from answerdesk.models.enums import NotificationStatus, Priority
from answerdesk.models.notification import Notification
from answerdesk.models.user import User
from answerdesk.schemas import notification_metadata_adapter

logger = get_logger("notifications")


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO 8601 date filter into a naive UTC datetime.
    Returns None (filter ignored) if the value cannot be parsed.
    """
    if not value:
        return None
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
        if dt.tzinfo is not None:
            dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
        return dt
    except (ValueError, TypeError):
        log_with_context(logger, "WARNING", "Ignoring unparseable date filter: {}".format(value))
        return None


def _encode_metadata(notification_type: str, metadata) -> str:
    if metadata is None:
        return "{}"
    if not isinstance(metadata, BaseModel):
        try:
            metadata = notification_metadata_adapter.validate_python(metadata)
        except PydanticValidationError as e:
            raise ValidationError("Invalid notification metadata: {}".format(e.errors()[0]["msg"]))
    if metadata.type != notification_type:
        raise ValidationError(
            "Metadata of type {} cannot be attached to a {} notification".format(metadata.type, notification_type)
        )
    return json.dumps(metadata.model_dump(mode="json"))


def create(db: Session, *, type: str, title: str, message: str, recipient_id: str,
           priority: str = Priority.MEDIUM.value,
           related_entity_id: Optional[str] = None,
           related_entity_type: Optional[str] = None,
           metadata=None, commit: bool = True) -> Notification:
    """
    Create an UNREAD notification for a single recipient.

    Raises NotFoundError if the recipient does not exist. With commit=False
    the record is only flushed so the caller can commit it together with
    its own changes.
    """
    if db.get(User, recipient_id) is None:
        raise NotFoundError("Recipient not found")

    notification = Notification(
        type=str(type.value if hasattr(type, "value") else type),
        priority=str(priority.value if hasattr(priority, "value") else priority),
        status=NotificationStatus.UNREAD.value,
        title=title.strip(),
        message=message.strip(),
        recipient_id=recipient_id,
        related_entity_id=related_entity_id,
        related_entity_type=related_entity_type,
        is_active=True,
        created_at=utcnow(),
    )
    notification.metadata_json = _encode_metadata(notification.type, metadata)
    db.add(notification)

    if commit:
        db.commit()
        db.refresh(notification)
    else:
        db.flush()

    log_with_context(logger, "INFO",
        "Notification created: {} for {}".format(notification.type, recipient_id),
        context={"notification_id": notification.id, "recipient_id": recipient_id},
        extra_data={"priority": notification.priority})
    return notification


def list_notifications(db: Session, recipient_id: str, *,
                       type: Optional[str] = None,
                       priority: Optional[str] = None,
                       status: Optional[str] = None,
                       date_from: Optional[str] = None,
                       date_to: Optional[str] = None,
                       page: int = 1, limit: int = 20) -> Tuple[List[Notification], int]:
    """Return one page of active notifications, newest first, plus the total."""
    query = db.query(Notification).filter(
        Notification.recipient_id == recipient_id,
        Notification.is_active.is_(True),
    )
    if type:
        query = query.filter(Notification.type == type.upper())
    if priority:
        query = query.filter(Notification.priority == priority.upper())
    if status:
        query = query.filter(Notification.status == status.upper())
    from_dt = parse_date(date_from)
    if from_dt:
        query = query.filter(Notification.created_at >= from_dt)
    to_dt = parse_date(date_to)
    if to_dt:
        query = query.filter(Notification.created_at <= to_dt)

    total = query.count()
    items = (query.order_by(Notification.created_at.desc(), Notification.id.desc())
             .offset((page - 1) * limit).limit(limit).all())
    return items, total


def get_owned(db: Session, notification_id: str, recipient_id: str) -> Notification:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.recipient_id == recipient_id,
        Notification.is_active.is_(True),
    ).first()
    if not notification:
        raise NotFoundError("Notification not found")
    return notification


def _set_status(db: Session, notification_id: str, recipient_id: str,
                status: NotificationStatus, timestamp_field: str) -> Notification:
    notification = get_owned(db, notification_id, recipient_id)
    notification.status = status.value
    setattr(notification, timestamp_field, utcnow())
    db.commit()
    db.refresh(notification)

    log_with_context(logger, "INFO",
        "Notification {} marked {}".format(notification_id, status.value),
        context={"notification_id": notification_id, "recipient_id": recipient_id})
    return notification


def mark_read(db: Session, notification_id: str, recipient_id: str) -> Notification:
    return _set_status(db, notification_id, recipient_id, NotificationStatus.READ, "read_at")


def acknowledge(db: Session, notification_id: str, recipient_id: str) -> Notification:
    return _set_status(db, notification_id, recipient_id, NotificationStatus.ACKNOWLEDGED, "acknowledged_at")


def dismiss(db: Session, notification_id: str, recipient_id: str) -> Notification:
    return _set_status(db, notification_id, recipient_id, NotificationStatus.DISMISSED, "dismissed_at")


def mark_all_read(db: Session, recipient_id: str) -> int:
    """Mark every UNREAD notification of the recipient READ. Returns the count changed."""
    modified = db.query(Notification).filter(
        Notification.recipient_id == recipient_id,
        Notification.status == NotificationStatus.UNREAD.value,
        Notification.is_active.is_(True),
    ).update(
        {Notification.status: NotificationStatus.READ.value, Notification.read_at: utcnow()},
        synchronize_session=False,
    )
    db.commit()

    log_with_context(logger, "INFO",
        "Marked {} notifications as read".format(modified),
        context={"recipient_id": recipient_id})
    return modified


def counts(db: Session, recipient_id: str) -> dict:
    """
    {unread, urgent, total} over active notifications. urgent counts
    URGENT priority notifications that are still UNREAD or READ.
    """
    base = db.query(Notification).filter(
        Notification.recipient_id == recipient_id,
        Notification.is_active.is_(True),
    )
    return {
        "unread": base.filter(Notification.status == NotificationStatus.UNREAD.value).count(),
        "urgent": base.filter(
            Notification.priority == Priority.URGENT.value,
            Notification.status.in_([NotificationStatus.UNREAD.value, NotificationStatus.READ.value]),
        ).count(),
        "total": base.count(),
    }


def soft_delete(db: Session, notification_id: str, recipient_id: str) -> Notification:
    notification = get_owned(db, notification_id, recipient_id)
    notification.is_active = False
    db.commit()

    log_with_context(logger, "INFO", "Notification {} deleted".format(notification_id),
        context={"notification_id": notification_id, "recipient_id": recipient_id})
    return notification


def acknowledge_related(db: Session, related_entity_id: str) -> int:
    """
    Acknowledge all UNREAD notifications about an entity. Does not commit;
    the caller commits with its own transition.
    """
    return db.query(Notification).filter(
        Notification.related_entity_id == related_entity_id,
        Notification.status == NotificationStatus.UNREAD.value,
        Notification.is_active.is_(True),
    ).update(
        {Notification.status: NotificationStatus.ACKNOWLEDGED.value, Notification.acknowledged_at: utcnow()},
        synchronize_session=False,
    )
