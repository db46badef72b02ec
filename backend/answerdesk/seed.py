"""
Demo dataset - reference entities this service reads but does not manage.

Creates an admin, two teachers (one owned by the admin), a class of
students and an exam, with stable ids so that load_data.py and manual API
calls can refer to them.

Usage:
    python -m answerdesk.seed        # uses DATABASE_URL / ANSWERDESK_* settings
"""

import json
from datetime import timedelta

from sqlalchemy.orm import Session

from answerdesk.config import Settings
from answerdesk.database import build_engine, build_session_factory, create_tables, utcnow
from answerdesk.logging_config import setup_logging, get_logger, log_with_context
from answerdesk.models.exam import Exam
from answerdesk.models.student import Student
from answerdesk.models.user import User

logger = get_logger("db")

ADMIN_ID = "00000000-0000-0000-0000-00000000a001"
TEACHER_ID = "00000000-0000-0000-0000-00000000b001"
OTHER_TEACHER_ID = "00000000-0000-0000-0000-00000000b002"
CLASS_ID = "class-10a"
OTHER_CLASS_ID = "class-10b"
SUBJECT_ID = "subject-math"
EXAM_ID = "00000000-0000-0000-0000-00000000e001"

STUDENTS = [
    ("00000000-0000-0000-0000-00000000d001", "Asha Menon", "10A01"),
    ("00000000-0000-0000-0000-00000000d002", "Rahul Nair", "10A02"),
    ("00000000-0000-0000-0000-00000000d003", "Meera Pillai", "10A03"),
    ("00000000-0000-0000-0000-00000000d004", "Arjun Das", "10A04"),
]


def seed_demo_data(db: Session) -> dict:
    """
    Insert the demo dataset if it is not already present.
    Returns the ids of the created (or existing) entities.
    """
    if db.get(User, ADMIN_ID) is None:
        db.add(User(id=ADMIN_ID, name="Principal Admin", email="admin@school.test",
                    role="ADMIN", class_ids="[]"))
        db.add(User(id=TEACHER_ID, name="Class Teacher", email="teacher@school.test",
                    role="TEACHER", admin_id=ADMIN_ID, class_ids=json.dumps([CLASS_ID])))
        db.add(User(id=OTHER_TEACHER_ID, name="Visiting Teacher", email="visitor@school.test",
                    role="TEACHER", class_ids=json.dumps([OTHER_CLASS_ID])))
        db.flush()

        for student_id, name, roll in STUDENTS:
            db.add(Student(id=student_id, full_name=name, roll_number=roll, class_id=CLASS_ID))

        db.add(Exam(id=EXAM_ID, title="Mathematics Mid-Term", class_id=CLASS_ID,
                    subject_id=SUBJECT_ID, scheduled_at=utcnow() - timedelta(days=1),
                    created_by=TEACHER_ID))
        db.commit()

        log_with_context(logger, "INFO", "Demo data seeded",
            extra_data={"users": 3, "students": len(STUDENTS), "exams": 1})
    else:
        log_with_context(logger, "INFO", "Demo data already present; skipping")

    return {
        "admin_id": ADMIN_ID,
        "teacher_id": TEACHER_ID,
        "other_teacher_id": OTHER_TEACHER_ID,
        "exam_id": EXAM_ID,
        "class_id": CLASS_ID,
        "student_ids": [s[0] for s in STUDENTS],
    }


def main():
    settings = Settings()
    setup_logging(settings.log_level, settings.app_name)
    engine = build_engine(settings)
    create_tables(engine)
    session = build_session_factory(engine)()
    try:
        ids = seed_demo_data(session)
    finally:
        session.close()
    print(json.dumps(ids, indent=2))


if __name__ == "__main__":
    main()
