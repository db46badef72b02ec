"""
Notification Dispatch - fan-out of AI processing events.

Each event produces one notification for the teacher who uploaded the sheet
and one for that teacher's admin, if they have one. Dispatch is best
effort: a failure to store a notification is logged and never propagates
to the caller, whose own work has already succeeded.
"""

from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from answerdesk.database import utcnow
from answerdesk.errors import AppError
from answerdesk.logging_config import get_logger, log_with_context
from answerdesk.models.enums import NotificationType, Priority
from answerdesk.models.notification import Notification
from answerdesk.models.user import User
from answerdesk.schemas import (
    AICorrectionCompleteMetadata, AIProcessingFailedMetadata, AIProcessingStartedMetadata,
)
from answerdesk.services import notification_store

logger = get_logger("notifications")


def _recipients(db: Session, teacher_id: str) -> List[str]:
    teacher = db.get(User, teacher_id)
    if teacher is None:
        return [teacher_id]
    recipients = [teacher.id]
    if teacher.admin_id and teacher.admin_id != teacher.id:
        recipients.append(teacher.admin_id)
    return recipients


def _fan_out(db: Session, teacher_id: str, answer_sheet_id: str, *,
             notification_type: NotificationType, priority: Priority,
             title: str, message: str, metadata) -> List[Notification]:
    created = []
    for recipient_id in _recipients(db, teacher_id):
        try:
            created.append(notification_store.create(
                db,
                type=notification_type.value,
                priority=priority.value,
                title=title,
                message=message,
                recipient_id=recipient_id,
                related_entity_id=answer_sheet_id,
                related_entity_type="answerSheet",
                metadata=metadata,
            ))
        except (AppError, SQLAlchemyError) as e:
            db.rollback()
            log_with_context(logger, "ERROR", "Failed to dispatch notification",
                context={"answer_sheet_id": answer_sheet_id, "recipient_id": recipient_id},
                extra_data={"type": notification_type.value, "error": str(e)},
                exc_info=True)
    return created


def ai_processing_started(db: Session, teacher_id: str, answer_sheet_id: str,
                          student_name: str) -> List[Notification]:
    return _fan_out(
        db, teacher_id, answer_sheet_id,
        notification_type=NotificationType.AI_PROCESSING_STARTED,
        priority=Priority.LOW,
        title="AI Processing Started",
        message="Answer sheet for {} is being processed by AI. This may take 5-10 minutes.".format(student_name),
        metadata=AIProcessingStartedMetadata(student_name=student_name, started_at=utcnow()),
    )


def ai_correction_complete(db: Session, teacher_id: str, answer_sheet_id: str,
                           student_name: str, percentage: float,
                           confidence: float) -> List[Notification]:
    """confidence is a fraction in [0, 1]; the message shows it as a rounded percentage."""
    return _fan_out(
        db, teacher_id, answer_sheet_id,
        notification_type=NotificationType.AI_CORRECTION_COMPLETE,
        priority=Priority.LOW,
        title="AI Correction Complete",
        message="Answer sheet for {} has been processed by AI. Student scored {}% (Confidence: {}%)".format(
            student_name, _format_number(percentage), round(confidence * 100)),
        metadata=AICorrectionCompleteMetadata(
            student_name=student_name,
            percentage=percentage,
            confidence=confidence,
            completed_at=utcnow(),
        ),
    )


def ai_processing_failed(db: Session, teacher_id: str, answer_sheet_id: str,
                         student_name: str, error_message: str) -> List[Notification]:
    return _fan_out(
        db, teacher_id, answer_sheet_id,
        notification_type=NotificationType.AI_PROCESSING_FAILED,
        priority=Priority.HIGH,
        title="AI Processing Failed",
        message="AI processing failed for {}'s answer sheet. Please review manually. Error: {}".format(
            student_name, error_message),
        metadata=AIProcessingFailedMetadata(
            student_name=student_name,
            error_message=error_message,
            failed_at=utcnow(),
        ),
    )


def _format_number(value: float) -> str:
    # 85.0 -> "85", 72.5 -> "72.5"
    return "{:g}".format(value)
