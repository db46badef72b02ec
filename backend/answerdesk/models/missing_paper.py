"""
MissingPaperTracking model - one record per reported (exam, student) anomaly.

Tracks absences, missing or late sheets and sheet quality problems through
the PENDING -> REPORTED -> ACKNOWLEDGED -> RESOLVED lifecycle, with
ESCALATED reachable from REPORTED or ACKNOWLEDGED. Records are archived
with is_active = False, never deleted.
"""

import uuid
import json
from sqlalchemy import (
    Column, Text, DateTime, ForeignKey, String, Boolean, Integer, Index,
)
from sqlalchemy.orm import relationship
from answerdesk.database import Base, utcnow


class MissingPaperTracking(Base):
    """
    SQLAlchemy model for the missing_paper_tracking table.

    is_completed implies status == RESOLVED. is_red_flag is a severity
    marker independent of status.
    """
    __tablename__ = "missing_paper_tracking"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    exam_id = Column(String(36), ForeignKey("exams.id"), nullable=False)
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False)
    class_id = Column(String(36), nullable=False)
    subject_id = Column(String(36), nullable=False)
    type = Column(String(24), nullable=False)
    status = Column(String(16), nullable=False, default="PENDING")

    reported_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    reported_at = Column(DateTime, nullable=False, default=utcnow)
    reason = Column(Text, nullable=False)
    details = Column(Text, nullable=True)

    acknowledged_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    acknowledged_at = Column(DateTime, nullable=True)
    admin_remarks = Column(Text, nullable=True)

    resolved_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    resolution_notes = Column(Text, nullable=True)

    escalated_to = Column(String(36), ForeignKey("users.id"), nullable=True)
    escalated_at = Column(DateTime, nullable=True)
    escalation_reason = Column(Text, nullable=True)

    priority = Column(String(16), nullable=False, default="MEDIUM")
    is_red_flag = Column(Boolean, nullable=False, default=False)
    requires_acknowledgment = Column(Boolean, nullable=False, default=True)

    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=True)
    completion_notes = Column(Text, nullable=True)

    answer_sheet_id = Column(String(36), ForeignKey("answer_sheets.id"), nullable=True)
    related_notification_ids = Column(Text, nullable=False, default="[]",
                                      doc="Linked notification ids as JSON list")

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    version = Column(Integer, nullable=False)

    exam = relationship("Exam")
    student = relationship("Student")

    __table_args__ = (
        Index("ix_missing_paper_exam_student", "exam_id", "student_id"),
        Index("ix_missing_paper_status_priority", "status", "priority"),
        Index("ix_missing_paper_red_flag", "is_red_flag"),
        Index("ix_missing_paper_class_status", "class_id", "status"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def notification_id_list(self) -> list:
        """Parse related_notification_ids JSON string to a list."""
        if isinstance(self.related_notification_ids, list):
            return self.related_notification_ids
        try:
            return json.loads(self.related_notification_ids) if self.related_notification_ids else []
        except (json.JSONDecodeError, TypeError):
            return []

    def link_notification(self, notification_id: str):
        ids = self.notification_id_list
        ids.append(notification_id)
        self.related_notification_ids = json.dumps(ids)

    def __repr__(self):
        return f"<MissingPaperTracking(id={self.id}, exam={self.exam_id}, student={self.student_id}, type='{self.type}', status='{self.status}')>"
