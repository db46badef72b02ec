"""
Missing-Paper Tracking Service - absences, missing sheets and sheet problems.

Every lifecycle change goes through TRANSITIONS, the single table of legal
(state, event) pairs shared by the HTTP layer and internal callers:

    PENDING      --REPORT-->      REPORTED
    PENDING      --ACKNOWLEDGE--> ACKNOWLEDGED
    REPORTED     --ACKNOWLEDGE--> ACKNOWLEDGED
    REPORTED     --ESCALATE-->    ESCALATED
    ACKNOWLEDGED --RESOLVE-->     RESOLVED
    ACKNOWLEDGED --ESCALATE-->    ESCALATED
    ESCALATED    --RESOLVE-->     RESOLVED

Anything else raises InvalidStateError. Resolution requires prior
acknowledgment (or escalation). PENDING records are opened by automatic
flag detection; reports from staff start at REPORTED.

Each transition creates a notification and links its id to the record.
"""

import time
from typing import List, Optional, Tuple

from sqlalchemy import case
from sqlalchemy.orm import Session, selectinload

from answerdesk.database import utcnow, commit_or_conflict
from answerdesk.errors import (
    ConflictError, ForbiddenError, InvalidStateError, NotFoundError,
)
from answerdesk.logging_config import get_logger, log_with_context
from answerdesk.models.answer_sheet import AnswerSheet
from answerdesk.models.enums import (
    AnswerSheetStatus, NotificationType, Priority, PRIORITY_RANK,
    TrackingEvent, TrackingStatus, TrackingType,
)
from answerdesk.models.exam import Exam
from answerdesk.models.missing_paper import MissingPaperTracking
from answerdesk.models.student import Student
from answerdesk.models.user import User
from answerdesk.schemas import SystemAlertMetadata, TrackingReportMetadata, serialize_tracking
from answerdesk.services import notification_store

logger = get_logger("tracking")

TRANSITIONS = {
    (TrackingStatus.PENDING, TrackingEvent.REPORT): TrackingStatus.REPORTED,
    (TrackingStatus.PENDING, TrackingEvent.ACKNOWLEDGE): TrackingStatus.ACKNOWLEDGED,
    (TrackingStatus.REPORTED, TrackingEvent.ACKNOWLEDGE): TrackingStatus.ACKNOWLEDGED,
    (TrackingStatus.REPORTED, TrackingEvent.ESCALATE): TrackingStatus.ESCALATED,
    (TrackingStatus.ACKNOWLEDGED, TrackingEvent.RESOLVE): TrackingStatus.RESOLVED,
    (TrackingStatus.ACKNOWLEDGED, TrackingEvent.ESCALATE): TrackingStatus.ESCALATED,
    (TrackingStatus.ESCALATED, TrackingEvent.RESOLVE): TrackingStatus.RESOLVED,
}

RED_FLAG_TYPES = {TrackingType.ABSENT, TrackingType.MISSING_SHEET}

DEFAULT_PRIORITY = {
    TrackingType.ABSENT: Priority.HIGH,
    TrackingType.MISSING_SHEET: Priority.HIGH,
    TrackingType.LATE_SUBMISSION: Priority.MEDIUM,
    TrackingType.QUALITY_ISSUE: Priority.MEDIUM,
    TrackingType.ROLL_NUMBER_ISSUE: Priority.MEDIUM,
}

REPORT_NOTIFICATION_TYPE = {
    TrackingType.ABSENT: NotificationType.ABSENT_STUDENT,
    TrackingType.MISSING_SHEET: NotificationType.MISSING_SHEET,
}


def next_state(current: str, event: TrackingEvent) -> TrackingStatus:
    """Look up the state reached by `event` from `current`, or raise InvalidStateError."""
    target = TRANSITIONS.get((TrackingStatus(current), event))
    if target is None:
        raise InvalidStateError(
            "Cannot {} a record in {} status".format(event.value.lower(), current)
        )
    return target


def is_red_flag(tracking_type: TrackingType, priority: Priority) -> bool:
    return tracking_type in RED_FLAG_TYPES and PRIORITY_RANK[priority] >= PRIORITY_RANK[Priority.HIGH]


def get_record(db: Session, tracking_id: str) -> MissingPaperTracking:
    record = db.query(MissingPaperTracking).options(
        selectinload(MissingPaperTracking.exam),
        selectinload(MissingPaperTracking.student),
    ).filter(
        MissingPaperTracking.id == tracking_id,
        MissingPaperTracking.is_active.is_(True),
    ).first()
    if not record:
        raise NotFoundError("Missing paper record not found")
    return record


def _find_active(db: Session, exam_id: str, student_id: str, tracking_type: TrackingType):
    return db.query(MissingPaperTracking).filter(
        MissingPaperTracking.exam_id == exam_id,
        MissingPaperTracking.student_id == student_id,
        MissingPaperTracking.type == tracking_type.value,
        MissingPaperTracking.is_active.is_(True),
    ).first()


def _notify(db: Session, record: MissingPaperTracking, recipient_id: str, *,
            notification_type: NotificationType, priority: Priority,
            title: str, message: str, metadata):
    notification = notification_store.create(
        db,
        type=notification_type.value,
        priority=priority.value,
        title=title,
        message=message,
        recipient_id=recipient_id,
        related_entity_id=record.id,
        related_entity_type="missingPaper",
        metadata=metadata,
        commit=False,
    )
    record.link_notification(notification.id)
    return notification


def _notify_event(db: Session, record: MissingPaperTracking, recipient_id: str,
                  event: str, title: str, message: str,
                  remarks: Optional[str] = None, priority: Priority = Priority.LOW):
    return _notify(
        db, record, recipient_id,
        notification_type=NotificationType.SYSTEM_ALERT,
        priority=priority,
        title=title,
        message=message,
        metadata=SystemAlertMetadata(event=event, tracking_id=record.id, remarks=remarks),
    )


def report(db: Session, *, exam_id: str, student_id: str, tracking_type: TrackingType,
           reason: str, reporter: User, details: Optional[str] = None,
           priority: Optional[Priority] = None) -> MissingPaperTracking:
    """
    Record a staff report for an (exam, student) pair.

    The reporter must be an admin or have access to the exam's class. A
    PENDING record of the same type opened by automatic detection is
    promoted to REPORTED; any other active record of that type is a
    conflict.
    """
    exam = db.get(Exam, exam_id)
    if not exam:
        raise NotFoundError("Exam not found")
    student = db.get(Student, student_id)
    if not student:
        raise NotFoundError("Student not found")
    if not reporter.is_admin and exam.class_id not in reporter.class_id_list:
        raise ForbiddenError("Access denied to this class")

    priority = priority or DEFAULT_PRIORITY[tracking_type]
    now = utcnow()

    record = _find_active(db, exam_id, student_id, tracking_type)
    if record is not None:
        if record.status != TrackingStatus.PENDING.value:
            raise ConflictError("Missing paper already reported for this student and exam")
        record.status = next_state(record.status, TrackingEvent.REPORT).value
    else:
        record = MissingPaperTracking(
            exam_id=exam.id,
            student_id=student.id,
            class_id=exam.class_id,
            subject_id=exam.subject_id,
            type=tracking_type.value,
            status=TrackingStatus.REPORTED.value,
            requires_acknowledgment=True,
            related_notification_ids="[]",
            is_active=True,
            created_at=now,
        )
        db.add(record)

    record.reported_by = reporter.id
    record.reported_at = now
    record.reason = reason.strip()
    record.details = details
    record.priority = priority.value
    record.is_red_flag = is_red_flag(tracking_type, priority)

    sheet = db.query(AnswerSheet).filter(
        AnswerSheet.exam_id == exam_id,
        AnswerSheet.student_id == student_id,
        AnswerSheet.is_active.is_(True),
    ).first()
    if sheet:
        record.answer_sheet_id = sheet.id
        if tracking_type in RED_FLAG_TYPES:
            sheet.is_missing = True
            sheet.missing_reason = record.reason
            sheet.status = (AnswerSheetStatus.ABSENT.value if tracking_type == TrackingType.ABSENT
                            else AnswerSheetStatus.MISSING.value)
    db.flush()

    notification_type = REPORT_NOTIFICATION_TYPE.get(tracking_type, NotificationType.MANUAL_REVIEW_REQUIRED)
    _notify(
        db, record, reporter.admin_id or reporter.id,
        notification_type=notification_type,
        priority=priority,
        title="Missing Paper Reported",
        message="{} reported for {} in {}: {}".format(
            tracking_type.value.replace("_", " ").title(), student.full_name, exam.title, record.reason),
        metadata=TrackingReportMetadata(
            type=notification_type.value,
            tracking_id=record.id,
            tracking_type=tracking_type,
            exam_title=exam.title,
            student_name=student.full_name,
            reason=record.reason,
            reported_by=reporter.id,
        ),
    )

    commit_or_conflict(db)
    db.refresh(record)

    log_with_context(logger, "INFO", "Missing paper reported",
        context={"tracking_id": record.id, "exam_id": exam_id, "student_id": student_id},
        extra_data={"type": tracking_type.value, "priority": record.priority, "red_flag": record.is_red_flag})
    return record


def open_detected_issue(db: Session, sheet: AnswerSheet, tracking_type: TrackingType,
                        reason: str) -> Optional[MissingPaperTracking]:
    """
    Open a PENDING record for a problem found by automatic detection.

    Does nothing if an active record of the same type exists for the
    sheet's (exam, student). Does not commit.
    """
    if _find_active(db, sheet.exam_id, sheet.student_id, tracking_type) is not None:
        return None

    exam = db.get(Exam, sheet.exam_id)
    priority = DEFAULT_PRIORITY[tracking_type]
    record = MissingPaperTracking(
        exam_id=sheet.exam_id,
        student_id=sheet.student_id,
        class_id=exam.class_id,
        subject_id=exam.subject_id,
        type=tracking_type.value,
        status=TrackingStatus.PENDING.value,
        reported_by=sheet.uploaded_by,
        reported_at=utcnow(),
        reason=reason,
        priority=priority.value,
        is_red_flag=is_red_flag(tracking_type, priority),
        requires_acknowledgment=True,
        answer_sheet_id=sheet.id,
        related_notification_ids="[]",
        is_active=True,
        created_at=utcnow(),
    )
    db.add(record)
    db.flush()

    _notify(
        db, record, sheet.uploaded_by,
        notification_type=NotificationType.MANUAL_REVIEW_REQUIRED,
        priority=priority,
        title="Answer Sheet Needs Review",
        message="Automatic checks found a problem with an answer sheet: {}".format(reason),
        metadata=TrackingReportMetadata(
            type=NotificationType.MANUAL_REVIEW_REQUIRED.value,
            tracking_id=record.id,
            tracking_type=tracking_type,
            exam_title=exam.title,
            student_name=sheet.student.full_name if sheet.student else None,
            reason=reason,
            reported_by=sheet.uploaded_by,
        ),
    )

    log_with_context(logger, "INFO", "Detected issue opened as pending",
        context={"tracking_id": record.id, "answer_sheet_id": sheet.id},
        extra_data={"type": tracking_type.value})
    return record


def acknowledge(db: Session, tracking_id: str, acknowledged_by: User,
                admin_remarks: Optional[str] = None,
                priority: Optional[Priority] = None) -> MissingPaperTracking:
    """Admin triage: REPORTED (or PENDING) -> ACKNOWLEDGED."""
    record = get_record(db, tracking_id)
    record.status = next_state(record.status, TrackingEvent.ACKNOWLEDGE).value
    record.acknowledged_by = acknowledged_by.id
    record.acknowledged_at = utcnow()
    record.admin_remarks = admin_remarks
    if priority:
        record.priority = priority.value

    notification_store.acknowledge_related(db, record.id)
    _notify_event(db, record, record.reported_by, "ACKNOWLEDGED",
                  "Missing Paper Acknowledged",
                  "Your report about {} was acknowledged.".format(
                      record.student.full_name if record.student else "a student"),
                  remarks=admin_remarks)

    commit_or_conflict(db)
    db.refresh(record)

    log_with_context(logger, "INFO", "Missing paper acknowledged",
        context={"tracking_id": tracking_id, "user_id": acknowledged_by.id})
    return record


def resolve(db: Session, tracking_id: str, resolved_by: User,
            resolution_notes: Optional[str] = None,
            completion_notes: Optional[str] = None) -> MissingPaperTracking:
    """ACKNOWLEDGED or ESCALATED -> RESOLVED, marking the record completed."""
    record = get_record(db, tracking_id)
    record.status = next_state(record.status, TrackingEvent.RESOLVE).value
    now = utcnow()
    record.resolved_by = resolved_by.id
    record.resolved_at = now
    record.resolution_notes = resolution_notes
    record.is_completed = True
    record.completed_at = now
    record.completion_notes = completion_notes

    _notify_event(db, record, record.reported_by, "RESOLVED",
                  "Missing Paper Resolved",
                  "The report about {} has been resolved.".format(
                      record.student.full_name if record.student else "a student"),
                  remarks=resolution_notes)

    commit_or_conflict(db)
    db.refresh(record)

    log_with_context(logger, "INFO", "Missing paper resolved",
        context={"tracking_id": tracking_id, "user_id": resolved_by.id})
    return record


def escalate(db: Session, tracking_id: str, escalated_to: str,
             escalation_reason: str) -> MissingPaperTracking:
    """REPORTED or ACKNOWLEDGED -> ESCALATED, notifying the escalation target."""
    record = get_record(db, tracking_id)
    if db.get(User, escalated_to) is None:
        raise NotFoundError("Escalation target not found")
    record.status = next_state(record.status, TrackingEvent.ESCALATE).value
    record.escalated_to = escalated_to
    record.escalated_at = utcnow()
    record.escalation_reason = escalation_reason

    _notify_event(db, record, escalated_to, "ESCALATED",
                  "Missing Paper Escalated",
                  "A missing paper report has been escalated to you: {}".format(escalation_reason),
                  remarks=escalation_reason, priority=Priority.URGENT)

    commit_or_conflict(db)
    db.refresh(record)

    log_with_context(logger, "INFO", "Missing paper escalated",
        context={"tracking_id": tracking_id, "escalated_to": escalated_to})
    return record


def archive(db: Session, tracking_id: str) -> MissingPaperTracking:
    record = get_record(db, tracking_id)
    record.is_active = False
    commit_or_conflict(db)
    log_with_context(logger, "INFO", "Missing paper record archived",
        context={"tracking_id": tracking_id})
    return record


def _filtered(db: Session, exam_id: Optional[str], status: Optional[str],
              priority: Optional[str], red_flag: Optional[bool]):
    query = db.query(MissingPaperTracking).options(
        selectinload(MissingPaperTracking.exam),
        selectinload(MissingPaperTracking.student),
    ).filter(MissingPaperTracking.is_active.is_(True))
    if exam_id:
        query = query.filter(MissingPaperTracking.exam_id == exam_id)
    if status:
        query = query.filter(MissingPaperTracking.status == status.upper())
    if priority:
        query = query.filter(MissingPaperTracking.priority == priority.upper())
    if red_flag is not None:
        query = query.filter(MissingPaperTracking.is_red_flag.is_(red_flag))
    return query


def list_for_staff(db: Session, user: User, *, exam_id: Optional[str] = None,
                   status: Optional[str] = None, priority: Optional[str] = None,
                   page: int = 1, limit: int = 10) -> Tuple[List[MissingPaperTracking], int]:
    """Records in the caller's classes or reported by the caller, newest first."""
    query = _filtered(db, exam_id, status, priority, None)
    if not user.is_admin:
        query = query.filter(
            MissingPaperTracking.class_id.in_(user.class_id_list)
            | (MissingPaperTracking.reported_by == user.id)
        )
    total = query.count()
    items = (query.order_by(MissingPaperTracking.created_at.desc())
             .offset((page - 1) * limit).limit(limit).all())
    return items, total


def list_for_admin(db: Session, *, exam_id: Optional[str] = None,
                   status: Optional[str] = None, priority: Optional[str] = None,
                   is_red_flag: Optional[bool] = None,
                   page: int = 1, limit: int = 10) -> Tuple[List[MissingPaperTracking], int]:
    """All active records: red flags first, then by priority, then newest."""
    query = _filtered(db, exam_id, status, priority, is_red_flag)
    priority_rank = case(
        {p.value: rank for p, rank in PRIORITY_RANK.items()},
        value=MissingPaperTracking.priority,
        else_=0,
    )
    total = query.count()
    items = (query.order_by(
                MissingPaperTracking.is_red_flag.desc(),
                priority_rank.desc(),
                MissingPaperTracking.created_at.desc(),
             ).offset((page - 1) * limit).limit(limit).all())
    return items, total


def get_exam_completion_status(db: Session, exam_id: str) -> dict:
    """
    Per-exam view of uploads and tracking records.

    A student requires action while they have no sheet and no resolved
    record, or while any of their records is unresolved. The exam is
    complete when no student requires action.
    """
    start_time = time.time()
    exam = db.get(Exam, exam_id)
    if not exam:
        raise NotFoundError("Exam not found")

    students = db.query(Student).filter(Student.class_id == exam.class_id).order_by(
        Student.roll_number, Student.full_name).all()
    records = db.query(MissingPaperTracking).filter(
        MissingPaperTracking.exam_id == exam_id,
        MissingPaperTracking.is_active.is_(True),
    ).order_by(MissingPaperTracking.created_at.desc(), MissingPaperTracking.id).all()
    sheets = db.query(AnswerSheet).filter(
        AnswerSheet.exam_id == exam_id,
        AnswerSheet.is_active.is_(True),
    ).all()

    def count(status: TrackingStatus) -> int:
        return sum(1 for r in records if r.status == status.value)

    sheet_by_student = {s.student_id: s for s in sheets}
    rows = []
    for student in students:
        sheet = sheet_by_student.get(student.id)
        own = [r for r in records if r.student_id == student.id]
        open_records = [r for r in own if r.status != TrackingStatus.RESOLVED.value]
        has_resolved = any(r.status == TrackingStatus.RESOLVED.value for r in own)
        current = open_records[0] if open_records else (own[0] if own else None)
        uploaded = sheet is not None and not sheet.is_missing
        rows.append({
            "student_id": student.id,
            "student_name": student.full_name,
            "roll_number": student.roll_number,
            "has_answer_sheet": uploaded,
            "answer_sheet_status": sheet.status if sheet else "NOT_UPLOADED",
            "has_missing_paper": bool(own),
            "missing_paper_status": current.status if current else None,
            "is_red_flag": any(r.is_red_flag for r in own),
            "requires_action": bool(open_records) or (not uploaded and not has_resolved),
        })

    status = {
        "exam_id": exam.id,
        "exam_title": exam.title,
        "total_students": len(students),
        "uploaded_sheets": sum(1 for s in sheets if not s.is_missing),
        "missing_papers": len(records),
        "pending": count(TrackingStatus.PENDING),
        "reported": count(TrackingStatus.REPORTED),
        "acknowledged": count(TrackingStatus.ACKNOWLEDGED),
        "resolved": count(TrackingStatus.RESOLVED),
        "escalated": count(TrackingStatus.ESCALATED),
        "red_flags": sum(1 for r in records if r.is_red_flag),
        "is_complete": not any(row["requires_action"] for row in rows),
        "students": rows,
    }

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO", "Exam completion status computed",
        context={"exam_id": exam_id},
        extra_data={"duration_ms": round(duration_ms, 2), "records": len(records)})
    return status


def get_red_flag_summary(db: Session, exam_id: Optional[str] = None) -> dict:
    """Counts of active red-flagged records by priority, type and status."""
    query = _filtered(db, exam_id, None, None, True)
    red_flags = query.order_by(MissingPaperTracking.created_at.desc()).all()
    red_flags.sort(key=lambda r: PRIORITY_RANK[Priority(r.priority)], reverse=True)

    return {
        "total_red_flags": len(red_flags),
        "by_priority": {p.value: sum(1 for r in red_flags if r.priority == p.value) for p in Priority},
        "by_type": {t.value: sum(1 for r in red_flags if r.type == t.value) for t in TrackingType},
        "by_status": {s.value: sum(1 for r in red_flags if r.status == s.value) for s in TrackingStatus},
        "details": [serialize_tracking(r) for r in red_flags],
    }
