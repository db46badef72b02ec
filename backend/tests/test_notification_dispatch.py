"""
Test: AI processing notifications and the answer sheet events that trigger them.
"""
import pytest
from sqlalchemy.exc import OperationalError

from answerdesk.errors import ConflictError, InvalidStateError, ValidationError
from answerdesk.models.answer_sheet import AnswerSheet
from answerdesk.models.notification import Notification
from answerdesk.models.user import User
from answerdesk.schemas import SheetAnalysis
from answerdesk.services import answer_sheets, flag_management, notification_dispatch, notification_store


class TestDispatch:
    def test_correction_complete_goes_to_teacher_and_admin(self, db, ids, sheet):
        created = notification_dispatch.ai_correction_complete(
            db, ids["teacher_id"], sheet.id, "Jane Doe", 82, 0.91)

        assert {n.recipient_id for n in created} == {ids["teacher_id"], ids["admin_id"]}
        for n in created:
            assert n.type == "AI_CORRECTION_COMPLETE"
            assert n.priority == "LOW"
            assert "82%" in n.message
            assert "(Confidence: 91%)" in n.message
            assert n.related_entity_id == sheet.id
            assert n.metadata_dict["student_name"] == "Jane Doe"

    def test_started_message(self, db, ids, sheet):
        created = notification_dispatch.ai_processing_started(db, ids["teacher_id"], sheet.id, "Jane Doe")
        assert len(created) == 2
        assert created[0].message == (
            "Answer sheet for Jane Doe is being processed by AI. This may take 5-10 minutes.")
        assert created[0].priority == "LOW"

    def test_failed_is_high_priority(self, db, ids, sheet):
        created = notification_dispatch.ai_processing_failed(
            db, ids["teacher_id"], sheet.id, "Jane Doe", "timeout")
        assert {n.priority for n in created} == {"HIGH"}
        assert created[0].message.endswith("Error: timeout")

    def test_teacher_without_admin_gets_one(self, db, ids, sheet):
        created = notification_dispatch.ai_processing_started(
            db, ids["other_teacher_id"], sheet.id, "Jane Doe")
        assert [n.recipient_id for n in created] == [ids["other_teacher_id"]]

    def test_store_failure_is_swallowed(self, db, ids, sheet, monkeypatch):
        def broken_create(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("database is locked"))

        monkeypatch.setattr(notification_store, "create", broken_create)
        assert notification_dispatch.ai_processing_started(db, ids["teacher_id"], sheet.id, "Jane") == []


class TestRegisterSheet:
    def test_register_runs_detection(self, db, ids, settings):
        teacher = db.get(User, ids["teacher_id"])
        sheet = answer_sheets.register_sheet(
            db, exam_id=ids["exam_id"], student_id=ids["student_ids"][1], uploader=teacher,
            analysis=SheetAnalysis(roll_number_detected=None, file_format="image/gif"),
            settings=settings)

        assert sheet.status == "UPLOADED"
        assert {f.type for f in sheet.flags} == {"UNMATCHED_ROLL", "INVALID_FORMAT"}
        assert sheet.last_flagged_at is not None

    def test_second_upload_conflicts(self, db, ids, settings, sheet):
        teacher = db.get(User, ids["teacher_id"])
        with pytest.raises(ConflictError):
            answer_sheets.register_sheet(
                db, exam_id=ids["exam_id"], student_id=ids["student_ids"][0], uploader=teacher,
                analysis=SheetAnalysis(), settings=settings)

    def test_failed_detection_leaves_no_sheet(self, db, ids, settings, monkeypatch):
        def broken_detect(*args, **kwargs):
            raise RuntimeError("detector crashed")

        monkeypatch.setattr(flag_management, "detect_flags", broken_detect)
        teacher = db.get(User, ids["teacher_id"])
        with pytest.raises(RuntimeError):
            answer_sheets.register_sheet(
                db, exam_id=ids["exam_id"], student_id=ids["student_ids"][1], uploader=teacher,
                analysis=SheetAnalysis(), settings=settings)

        db.rollback()
        assert db.query(AnswerSheet).filter(AnswerSheet.student_id == ids["student_ids"][1]).count() == 0


class TestAIEvents:
    def test_started_then_completed(self, db, ids, sheet):
        updated = answer_sheets.record_ai_event(db, sheet.id, "STARTED")
        assert updated.status == "PROCESSING"

        updated = answer_sheets.record_ai_event(db, sheet.id, "COMPLETED", percentage=72.5, confidence=0.88)
        assert updated.status == "AI_CORRECTED"
        assert updated.ai_percentage == 72.5
        assert updated.processed_at is not None

        types = [n.type for n in db.query(Notification).filter(Notification.recipient_id == ids["teacher_id"])]
        assert sorted(types) == ["AI_CORRECTION_COMPLETE", "AI_PROCESSING_STARTED"]

    def test_completed_requires_figures(self, db, sheet):
        with pytest.raises(ValidationError):
            answer_sheets.record_ai_event(db, sheet.id, "COMPLETED", percentage=50)

    def test_failure_flags_for_manual_review(self, db, ids, sheet):
        updated = answer_sheets.record_ai_event(db, sheet.id, "FAILED", error_message="model timeout")
        assert updated.status == "UPLOADED"
        assert updated.flags[-1].type == "MANUAL_REVIEW_REQUIRED"
        assert "model timeout" in updated.flags[-1].description

    def test_unknown_event(self, db, sheet):
        with pytest.raises(ValidationError):
            answer_sheets.record_ai_event(db, sheet.id, "PAUSED")

    def test_closed_sheet_rejects_events(self, db, sheet):
        sheet.status = "ABSENT"
        db.commit()
        with pytest.raises(InvalidStateError):
            answer_sheets.record_ai_event(db, sheet.id, "STARTED")
