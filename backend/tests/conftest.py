"""
Shared test fixtures.

Every test gets its own application built from explicit Settings over a
fresh in-memory SQLite database, seeded with the demo dataset.
"""

import pytest
from fastapi.testclient import TestClient

from answerdesk.config import Settings
from answerdesk.main import create_app
from answerdesk.models.answer_sheet import AnswerSheet
from answerdesk.seed import seed_demo_data


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", environment="test", log_level="WARNING")


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(app):
    session = app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def ids(db):
    """Seeded ids: admin_id, teacher_id, other_teacher_id, exam_id, class_id, student_ids."""
    return seed_demo_data(db)


@pytest.fixture
def sheet(db, ids):
    """A freshly uploaded answer sheet for the first student, without flags."""
    record = AnswerSheet(
        exam_id=ids["exam_id"],
        student_id=ids["student_ids"][0],
        uploaded_by=ids["teacher_id"],
        original_file_name="asha.pdf",
        roll_number_detected="10A01",
        roll_number_confidence=95.0,
    )
    db.add(record)
    db.commit()
    return record