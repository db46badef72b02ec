"""
Answer sheet registration and AI processing events.

Registering a sheet runs automatic flag detection on the scan figures
supplied with it. AI events move the sheet through PROCESSING and
AI_CORRECTED and notify the uploading teacher (and their admin).
"""

from typing import Optional

from sqlalchemy.orm import Session

from answerdesk.config import Settings
from answerdesk.database import utcnow, commit_or_conflict
from answerdesk.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from answerdesk.logging_config import get_logger, log_with_context
from answerdesk.models.answer_sheet import AnswerSheet
from answerdesk.models.enums import AnswerSheetStatus, FlagSeverity, FlagType
from answerdesk.models.exam import Exam
from answerdesk.models.student import Student
from answerdesk.models.user import User
from answerdesk.schemas import FlagCreate, SheetAnalysis
from answerdesk.services import flag_management, notification_dispatch

logger = get_logger("flags")

AI_EVENTS = ("STARTED", "COMPLETED", "FAILED")

# Sheets in these states are no longer expecting AI results
_CLOSED = {AnswerSheetStatus.MISSING.value, AnswerSheetStatus.ABSENT.value,
           AnswerSheetStatus.COMPLETED.value}


def register_sheet(db: Session, *, exam_id: str, student_id: str, uploader: User,
                   analysis: SheetAnalysis, settings: Settings,
                   original_file_name: Optional[str] = None) -> AnswerSheet:
    """
    Create the answer sheet for an (exam, student) pair and auto-detect flags.

    Only one active sheet may exist per pair.
    """
    exam = db.get(Exam, exam_id)
    if not exam:
        raise NotFoundError("Exam not found")
    student = db.get(Student, student_id)
    if not student:
        raise NotFoundError("Student not found")

    existing = db.query(AnswerSheet).filter(
        AnswerSheet.exam_id == exam_id,
        AnswerSheet.student_id == student_id,
        AnswerSheet.is_active.is_(True),
    ).first()
    if existing:
        raise ConflictError("Answer sheet already uploaded for this student and exam")

    sheet = AnswerSheet(
        exam_id=exam.id,
        student_id=student.id,
        uploaded_by=uploader.id,
        original_file_name=original_file_name,
        status=AnswerSheetStatus.UPLOADED.value,
        uploaded_at=utcnow(),
    )
    db.add(sheet)
    # committed together with the detected flags
    db.flush()

    log_with_context(logger, "INFO", "Answer sheet registered",
        context={"answer_sheet_id": sheet.id, "exam_id": exam_id, "student_id": student_id},
        extra_data={"file_name": original_file_name})

    flag_management.auto_detect_flags(db, sheet.id, analysis, settings)
    return flag_management.get_answer_sheet(db, sheet.id)


def record_ai_event(db: Session, answer_sheet_id: str, event: str, *,
                    percentage: Optional[float] = None,
                    confidence: Optional[float] = None,
                    error_message: Optional[str] = None) -> AnswerSheet:
    """
    Apply an AI processing event to a sheet, then notify.

    STARTED   -> PROCESSING
    COMPLETED -> AI_CORRECTED, stores percentage and confidence
    FAILED    -> back to UPLOADED with a MANUAL_REVIEW_REQUIRED flag
    """
    event = event.upper()
    if event not in AI_EVENTS:
        raise ValidationError("Unknown AI event: {}".format(event))

    sheet = flag_management.get_answer_sheet(db, answer_sheet_id)
    if sheet.status in _CLOSED:
        raise InvalidStateError("Answer sheet is {} and cannot be processed".format(sheet.status))

    student_name = sheet.student.full_name if sheet.student else "Unknown student"

    if event == "STARTED":
        sheet.status = AnswerSheetStatus.PROCESSING.value
    elif event == "COMPLETED":
        if percentage is None or confidence is None:
            raise ValidationError("percentage and confidence are required for COMPLETED")
        sheet.status = AnswerSheetStatus.AI_CORRECTED.value
        sheet.ai_percentage = percentage
        sheet.ai_confidence = confidence
        sheet.processed_at = utcnow()
    else:
        error_message = error_message or "Unknown error"
        sheet.status = AnswerSheetStatus.UPLOADED.value
        flag_management.append_flag(sheet, FlagCreate(
            type=FlagType.MANUAL_REVIEW_REQUIRED,
            severity=FlagSeverity.HIGH,
            description="AI processing failed: {}".format(error_message),
        ))
    commit_or_conflict(db, "Answer sheet was modified by another request")

    log_with_context(logger, "INFO", "AI event {} recorded".format(event),
        context={"answer_sheet_id": answer_sheet_id},
        extra_data={"status": sheet.status})

    if event == "STARTED":
        notification_dispatch.ai_processing_started(db, sheet.uploaded_by, sheet.id, student_name)
    elif event == "COMPLETED":
        notification_dispatch.ai_correction_complete(
            db, sheet.uploaded_by, sheet.id, student_name, percentage, confidence)
    else:
        notification_dispatch.ai_processing_failed(
            db, sheet.uploaded_by, sheet.id, student_name, error_message)

    return flag_management.get_answer_sheet(db, answer_sheet_id)
