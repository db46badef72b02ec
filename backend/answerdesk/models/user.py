"""
User model - staff members who report issues and receive notifications.

Teachers point at their administrative owner through admin_id so that
AI-processing notifications can be delivered to both.
"""

import uuid
import json
from sqlalchemy import Column, Text, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship
from answerdesk.database import Base, utcnow


class User(Base):
    """
    SQLAlchemy model for the users table.

    class_ids holds a JSON list of class identifiers the staff member has
    access to; admins are not restricted by it.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique user identifier")
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    role = Column(String(16), nullable=False, default="TEACHER",
                  doc="TEACHER | ADMIN")
    admin_id = Column(String(36), ForeignKey("users.id"), nullable=True,
                      doc="Administrative owner of a teacher")
    class_ids = Column(Text, nullable=False, default="[]",
                       doc="Accessible class ids as JSON list")
    created_at = Column(DateTime, default=utcnow)

    admin = relationship("User", remote_side="User.id")

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"

    @property
    def class_id_list(self) -> list:
        """Parse class_ids JSON string to a list."""
        if isinstance(self.class_ids, list):
            return self.class_ids
        try:
            return json.loads(self.class_ids) if self.class_ids else []
        except (json.JSONDecodeError, TypeError):
            return []

    def __repr__(self):
        return f"<User(id={self.id}, name='{self.name}', role='{self.role}')>"
