"""
Exam model - an exam sat by one class in one subject.
"""

import uuid
from sqlalchemy import Column, Text, DateTime, String, ForeignKey
from sqlalchemy.orm import relationship
from answerdesk.database import Base, utcnow


class Exam(Base):
    __tablename__ = "exams"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique exam identifier")
    title = Column(Text, nullable=False)
    class_id = Column(String(36), nullable=False,
                      doc="Class sitting the exam")
    subject_id = Column(String(36), nullable=False,
                        doc="Subject being examined")
    scheduled_at = Column(DateTime, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    answer_sheets = relationship("AnswerSheet", back_populates="exam")

    def __repr__(self):
        return f"<Exam(id={self.id}, title='{self.title}', class={self.class_id})>"
