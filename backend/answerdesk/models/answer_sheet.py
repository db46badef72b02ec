"""
AnswerSheet and AnswerSheetFlag models.

An answer sheet is one scanned paper for one (exam, student) pair. Its
lifecycle (upload, AI correction, review) is driven by the evaluation
component; this service only reads those fields and records flags.

Flags are kept in their own table ordered by `position`, which is the
flag index exposed over the API. Flags are never deleted, only resolved.
"""

import uuid
from sqlalchemy import (
    Column, Text, DateTime, ForeignKey, String, Boolean, Float, Integer, Index,
)
from sqlalchemy.orm import relationship
from answerdesk.database import Base, utcnow


class AnswerSheet(Base):
    """
    SQLAlchemy model for the answer_sheets table.

    `version` is an optimistic concurrency counter: a write based on a
    stale read fails with StaleDataError instead of overwriting.
    """
    __tablename__ = "answer_sheets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique answer sheet identifier")
    exam_id = Column(String(36), ForeignKey("exams.id"), nullable=False)
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False)
    uploaded_by = Column(String(36), ForeignKey("users.id"), nullable=False,
                         doc="Teacher who uploaded the scan")
    original_file_name = Column(Text, nullable=True)
    status = Column(String(24), nullable=False, default="UPLOADED",
                    doc="UPLOADED | PROCESSING | AI_CORRECTED | MANUALLY_REVIEWED | COMPLETED | MISSING | ABSENT")
    scan_quality = Column(String(16), nullable=False, default="GOOD")
    is_aligned = Column(Boolean, nullable=False, default=True)
    roll_number_detected = Column(Text, nullable=True)
    roll_number_confidence = Column(Float, nullable=True, doc="0-100")
    ai_confidence = Column(Float, nullable=True, doc="0-1")
    ai_percentage = Column(Float, nullable=True)
    is_missing = Column(Boolean, nullable=False, default=False)
    missing_reason = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    uploaded_at = Column(DateTime, default=utcnow)
    processed_at = Column(DateTime, nullable=True)
    last_flagged_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False)

    exam = relationship("Exam", back_populates="answer_sheets")
    student = relationship("Student", back_populates="answer_sheets")
    flags = relationship(
        "AnswerSheetFlag",
        back_populates="answer_sheet",
        order_by="AnswerSheetFlag.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_answer_sheets_exam_id", "exam_id"),
        Index("ix_answer_sheets_student_id", "student_id"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def unresolved_flags(self):
        return [f for f in self.flags if not f.resolved]

    def __repr__(self):
        return f"<AnswerSheet(id={self.id}, exam={self.exam_id}, student={self.student_id}, status='{self.status}')>"


class AnswerSheetFlag(Base):
    """
    SQLAlchemy model for the answer_sheet_flags table.

    resolved_by / resolved_at are set if and only if resolved is true.
    """
    __tablename__ = "answer_sheet_flags"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    answer_sheet_id = Column(String(36), ForeignKey("answer_sheets.id"), nullable=False)
    position = Column(Integer, nullable=False,
                      doc="Index of the flag within its answer sheet")
    type = Column(String(32), nullable=False)
    severity = Column(String(16), nullable=False)
    description = Column(Text, nullable=False)
    detected_at = Column(DateTime, nullable=False, default=utcnow)
    detected_by = Column(String(36), nullable=True,
                         doc="User id, or NULL for automated detection")
    resolved = Column(Boolean, nullable=False, default=False)
    resolved_by = Column(String(36), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    resolution_notes = Column(Text, nullable=True)
    auto_resolved = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False)

    answer_sheet = relationship("AnswerSheet", back_populates="flags")

    __table_args__ = (
        Index("ix_answer_sheet_flags_sheet", "answer_sheet_id", "position", unique=True),
    )
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<AnswerSheetFlag(sheet={self.answer_sheet_id}, position={self.position}, type='{self.type}', resolved={self.resolved})>"
