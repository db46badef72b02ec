"""
Notification model - messages addressed to a single recipient.

There is no multi-recipient notification: an event that concerns a teacher
and their admin produces two rows.
"""

import uuid
import json
from sqlalchemy import Column, Text, DateTime, ForeignKey, String, Boolean, Index
from answerdesk.database import Base, utcnow


class Notification(Base):
    """
    SQLAlchemy model for the notifications table.

    Status normally moves UNREAD -> READ -> ACKNOWLEDGED, or to DISMISSED
    from any state, but writes are not restricted to that order.
    Deletion is soft (is_active = False).
    """
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(String(32), nullable=False)
    priority = Column(String(16), nullable=False, default="MEDIUM")
    status = Column(String(16), nullable=False, default="UNREAD")
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    recipient_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    related_entity_id = Column(String(36), nullable=True)
    related_entity_type = Column(String(32), nullable=True,
                                 doc="answerSheet | missingPaper | exam")
    metadata_json = Column(Text, nullable=False, default="{}",
                           doc="Event metadata as JSON, keyed by type")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    read_at = Column(DateTime, nullable=True)
    acknowledged_at = Column(DateTime, nullable=True)
    dismissed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_notifications_recipient_status", "recipient_id", "status", "created_at"),
        Index("ix_notifications_related", "related_entity_id", "related_entity_type"),
    )

    @property
    def metadata_dict(self):
        """Parse metadata JSON string to dict."""
        if isinstance(self.metadata_json, dict):
            return self.metadata_json
        try:
            return json.loads(self.metadata_json) if self.metadata_json else {}
        except (json.JSONDecodeError, TypeError):
            return {}

    def __repr__(self):
        return f"<Notification(id={self.id}, type='{self.type}', recipient={self.recipient_id}, status='{self.status}')>"
