"""
Student model - students who sit exams.

Students belong to a single class; exam completion status is computed over
every student in the exam's class.
"""

import uuid
from sqlalchemy import Column, Text, DateTime, String, Index
from sqlalchemy.orm import relationship
from answerdesk.database import Base, utcnow


class Student(Base):
    """SQLAlchemy model for the students table."""
    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique student identifier")
    full_name = Column(Text, nullable=False,
                       doc="Student's full name")
    roll_number = Column(Text, nullable=True,
                         doc="Roll number printed on answer sheets")
    class_id = Column(String(36), nullable=False,
                      doc="Class the student is enrolled in")
    created_at = Column(DateTime, default=utcnow,
                        doc="Timestamp when student record was created")

    answer_sheets = relationship("AnswerSheet", back_populates="student")

    __table_args__ = (
        Index("ix_students_class_id", "class_id"),
    )

    def __repr__(self):
        return f"<Student(id={self.id}, name='{self.full_name}', roll='{self.roll_number}')>"
