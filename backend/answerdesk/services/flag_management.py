"""
Flag Management Service - data-quality flags on answer sheets.

Flags are appended to a sheet (manually or by automatic detection) and are
only ever resolved, never removed. The flag index used by callers is the
flag's `position` within its sheet.

Auto-detection rules (thresholds come from Settings):
- roll number missing                 -> UNMATCHED_ROLL, HIGH
- roll confidence < threshold         -> LOW_CONFIDENCE_ROLL_NUMBER,
                                         HIGH below the critical level, else MEDIUM
- scan quality POOR / UNREADABLE      -> POOR_QUALITY, HIGH / CRITICAL
- sheet not aligned                   -> ALIGNMENT_ISSUE, MEDIUM
- file larger than the size limit     -> SIZE_TOO_LARGE, MEDIUM
- MIME type not in the allowed list   -> INVALID_FORMAT, HIGH
"""

import time
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from answerdesk.config import Settings
from answerdesk.database import utcnow, commit_or_conflict
from answerdesk.errors import AppError, NotFoundError, ValidationError
from answerdesk.logging_config import get_logger, log_with_context
from answerdesk.models.answer_sheet import AnswerSheet, AnswerSheetFlag
from answerdesk.models.enums import FlagSeverity, FlagType, ScanQuality, TrackingType
from answerdesk.models.exam import Exam
from answerdesk.schemas import (
    BulkItemResult, FlagCreate, FlagResolution, FlagResolveResult, SheetAnalysis,
)
from answerdesk.services import missing_papers

logger = get_logger("flags")

ROLL_NUMBER_FLAGS = {FlagType.UNMATCHED_ROLL.value, FlagType.LOW_CONFIDENCE_ROLL_NUMBER.value}


def get_answer_sheet(db: Session, answer_sheet_id: str) -> AnswerSheet:
    sheet = db.query(AnswerSheet).options(
        selectinload(AnswerSheet.flags),
        selectinload(AnswerSheet.student),
    ).filter(AnswerSheet.id == answer_sheet_id).first()
    if not sheet:
        raise NotFoundError("Answer sheet not found")
    return sheet


def _apply_resolution(flag: AnswerSheetFlag, resolution: FlagResolution, resolved_at):
    flag.resolved = True
    flag.resolved_by = resolution.resolved_by
    flag.resolved_at = resolved_at
    if resolution.resolution_notes is not None:
        flag.resolution_notes = resolution.resolution_notes
    flag.auto_resolved = resolution.auto_resolved


def append_flag(sheet: AnswerSheet, data: FlagCreate) -> AnswerSheetFlag:
    now = utcnow()
    flag = AnswerSheetFlag(
        position=len(sheet.flags),
        type=data.type.value,
        severity=data.severity.value,
        description=data.description,
        detected_at=now,
        detected_by=data.detected_by,
        resolved=False,
        auto_resolved=data.auto_resolved,
    )
    sheet.flags.append(flag)
    sheet.last_flagged_at = now
    return flag


def add_flag(db: Session, answer_sheet_id: str, data: FlagCreate) -> AnswerSheetFlag:
    """Append a flag to an answer sheet."""
    sheet = get_answer_sheet(db, answer_sheet_id)
    flag = append_flag(sheet, data)
    commit_or_conflict(db, "Answer sheet was modified by another request")
    db.refresh(flag)

    log_with_context(logger, "INFO",
        "Flag {} ({}) added to answer sheet".format(flag.type, flag.severity),
        context={"answer_sheet_id": answer_sheet_id, "flag_index": flag.position})
    return flag


def resolve_flag(db: Session, answer_sheet_id: str, flag_index: int,
                 resolution: FlagResolution) -> FlagResolveResult:
    """
    Resolve the flag at `flag_index`.

    Resolving an already-resolved flag changes nothing and reports
    already_resolved=True with the original resolver. A concurrent
    resolution of the same flag raises ConflictError.
    """
    sheet = get_answer_sheet(db, answer_sheet_id)
    if flag_index < 0 or flag_index >= len(sheet.flags):
        raise ValidationError("Invalid flag index")

    flag = sheet.flags[flag_index]
    if flag.resolved:
        log_with_context(logger, "INFO", "Flag already resolved; nothing to do",
            context={"answer_sheet_id": answer_sheet_id, "flag_index": flag_index})
        return FlagResolveResult(position=flag_index, already_resolved=True, resolved_by=flag.resolved_by)

    _apply_resolution(flag, resolution, utcnow())
    commit_or_conflict(db, "Flag was resolved by another request")

    log_with_context(logger, "INFO", "Flag resolved",
        context={"answer_sheet_id": answer_sheet_id, "flag_index": flag_index},
        extra_data={"resolved_by": resolution.resolved_by})
    return FlagResolveResult(position=flag_index, already_resolved=False, resolved_by=resolution.resolved_by)


def resolve_all_flags(db: Session, answer_sheet_id: str, resolution: FlagResolution) -> int:
    """Resolve every unresolved flag on a sheet. Returns how many were resolved."""
    sheet = get_answer_sheet(db, answer_sheet_id)
    unresolved = sheet.unresolved_flags
    if not unresolved:
        return 0

    now = utcnow()
    for flag in unresolved:
        _apply_resolution(flag, resolution, now)
    commit_or_conflict(db, "Flags were resolved by another request")

    log_with_context(logger, "INFO",
        "Resolved {} flags".format(len(unresolved)),
        context={"answer_sheet_id": answer_sheet_id},
        extra_data={"resolved_by": resolution.resolved_by})
    return len(unresolved)


def get_answer_sheet_flags(db: Session, answer_sheet_id: str) -> List[AnswerSheetFlag]:
    return list(get_answer_sheet(db, answer_sheet_id).flags)


def _require_exam(db: Session, exam_id: str) -> Exam:
    exam = db.get(Exam, exam_id)
    if not exam:
        raise NotFoundError("Exam not found")
    return exam


def get_flagged_answer_sheets(db: Session, exam_id: str,
                              severity: Optional[str] = None,
                              flag_type: Optional[str] = None,
                              resolved: Optional[bool] = None) -> List[AnswerSheet]:
    """
    Answer sheets of an exam carrying at least one flag that matches all
    of the given criteria, most recently flagged first.
    """
    _require_exam(db, exam_id)
    sheets = db.query(AnswerSheet).options(
        selectinload(AnswerSheet.flags),
        selectinload(AnswerSheet.student),
    ).filter(
        AnswerSheet.exam_id == exam_id,
        AnswerSheet.last_flagged_at.isnot(None),
    ).order_by(AnswerSheet.last_flagged_at.desc()).all()

    def matches(flag):
        if severity and flag.severity != severity.upper():
            return False
        if flag_type and flag.type != flag_type.upper():
            return False
        if resolved is not None and flag.resolved != resolved:
            return False
        return True

    return [s for s in sheets if any(matches(f) for f in s.flags)]


def get_flag_statistics(db: Session, exam_id: str) -> dict:
    """
    Aggregate flag figures over all answer sheets of an exam.

    Resolution time is measured from detection to resolution. resolution_rate
    is resolved/total (0 when there are no flags).
    """
    start_time = time.time()
    _require_exam(db, exam_id)

    flags = db.query(AnswerSheetFlag).join(AnswerSheet).filter(
        AnswerSheet.exam_id == exam_id
    ).all()

    by_type = {t.value: 0 for t in FlagType}
    by_severity = {s.value: 0 for s in FlagSeverity}
    resolved_count = 0
    critical_count = 0
    resolution_seconds = 0.0
    timed_count = 0

    for flag in flags:
        by_type[flag.type] = by_type.get(flag.type, 0) + 1
        by_severity[flag.severity] = by_severity.get(flag.severity, 0) + 1
        if flag.severity == FlagSeverity.CRITICAL.value:
            critical_count += 1
        if flag.resolved:
            resolved_count += 1
            if flag.resolved_at and flag.detected_at:
                resolution_seconds += (flag.resolved_at - flag.detected_at).total_seconds()
                timed_count += 1

    total = len(flags)
    stats = {
        "total_flags": total,
        "resolved_flags": resolved_count,
        "unresolved_flags": total - resolved_count,
        "critical_flags": critical_count,
        "flags_by_type": by_type,
        "flags_by_severity": by_severity,
        "average_resolution_time_hours": (resolution_seconds / timed_count / 3600) if timed_count else 0.0,
        "resolution_rate": (resolved_count / total) if total else 0.0,
    }

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO", "Flag statistics computed",
        context={"exam_id": exam_id},
        extra_data={"total_flags": total, "duration_ms": round(duration_ms, 2)})
    return stats


def detect_flags(analysis: SheetAnalysis, settings: Settings) -> List[FlagCreate]:
    """Apply the detection rules to scan analysis figures."""
    found = []

    if not analysis.roll_number_detected:
        found.append(FlagCreate(
            type=FlagType.UNMATCHED_ROLL,
            severity=FlagSeverity.HIGH,
            description="Roll number not detected",
        ))
    elif (analysis.roll_number_confidence is not None
          and analysis.roll_number_confidence < settings.roll_confidence_threshold):
        severity = (FlagSeverity.HIGH
                    if analysis.roll_number_confidence < settings.roll_confidence_critical
                    else FlagSeverity.MEDIUM)
        found.append(FlagCreate(
            type=FlagType.LOW_CONFIDENCE_ROLL_NUMBER,
            severity=severity,
            description="Roll number detected with low confidence ({:.0f}%)".format(
                analysis.roll_number_confidence),
        ))

    if analysis.scan_quality in (ScanQuality.POOR, ScanQuality.UNREADABLE):
        found.append(FlagCreate(
            type=FlagType.POOR_QUALITY,
            severity=(FlagSeverity.CRITICAL if analysis.scan_quality == ScanQuality.UNREADABLE
                      else FlagSeverity.HIGH),
            description="Poor scan quality: {}".format(analysis.scan_quality.value),
        ))

    if analysis.is_aligned is False:
        found.append(FlagCreate(
            type=FlagType.ALIGNMENT_ISSUE,
            severity=FlagSeverity.MEDIUM,
            description="Answer sheet appears to be misaligned",
        ))

    if analysis.file_size and analysis.file_size > settings.max_sheet_size_bytes:
        found.append(FlagCreate(
            type=FlagType.SIZE_TOO_LARGE,
            severity=FlagSeverity.MEDIUM,
            description="File size exceeds recommended limit",
        ))

    if analysis.file_format and analysis.file_format not in settings.allowed_sheet_formats:
        found.append(FlagCreate(
            type=FlagType.INVALID_FORMAT,
            severity=FlagSeverity.HIGH,
            description="Unsupported file format: {}".format(analysis.file_format),
        ))

    return found


def auto_detect_flags(db: Session, answer_sheet_id: str, analysis: SheetAnalysis,
                      settings: Settings) -> List[AnswerSheetFlag]:
    """
    Derive flags from scan analysis and attach them to the sheet.

    Fields missing from `analysis` fall back to the values stored on the
    sheet; fields present are stored on it. Roll-number flags and critical
    quality flags also open a PENDING tracking record for the student.
    Re-running can re-flag an issue that was already resolved.
    """
    sheet = get_answer_sheet(db, answer_sheet_id)

    if analysis.roll_number_detected is not None:
        sheet.roll_number_detected = analysis.roll_number_detected
    if analysis.roll_number_confidence is not None:
        sheet.roll_number_confidence = analysis.roll_number_confidence
    if analysis.scan_quality is not None:
        sheet.scan_quality = analysis.scan_quality.value
    if analysis.is_aligned is not None:
        sheet.is_aligned = analysis.is_aligned

    effective = SheetAnalysis(
        roll_number_detected=sheet.roll_number_detected,
        roll_number_confidence=sheet.roll_number_confidence,
        scan_quality=sheet.scan_quality,
        is_aligned=sheet.is_aligned,
        file_size=analysis.file_size,
        file_format=analysis.file_format,
    )

    added = [append_flag(sheet, data) for data in detect_flags(effective, settings)]

    if any(f.type in ROLL_NUMBER_FLAGS for f in added):
        missing_papers.open_detected_issue(
            db, sheet, TrackingType.ROLL_NUMBER_ISSUE,
            "Roll number could not be matched reliably")
    if any(f.type == FlagType.POOR_QUALITY.value and f.severity == FlagSeverity.CRITICAL.value
           for f in added):
        missing_papers.open_detected_issue(
            db, sheet, TrackingType.QUALITY_ISSUE,
            "Answer sheet scan is unreadable")

    commit_or_conflict(db, "Answer sheet was modified by another request")
    for flag in added:
        db.refresh(flag)

    log_with_context(logger, "INFO",
        "Auto-detected {} flags".format(len(added)),
        context={"answer_sheet_id": answer_sheet_id},
        extra_data={"types": [f.type for f in added]})
    return added


def bulk_resolve_flags(db: Session, answer_sheet_ids: List[str],
                       resolution: FlagResolution) -> List[BulkItemResult]:
    """
    Resolve all flags on many sheets. A failure on one sheet is recorded
    in its result entry and the batch carries on.
    """
    results = []
    for sheet_id in answer_sheet_ids:
        try:
            count = resolve_all_flags(db, sheet_id, resolution)
            results.append(BulkItemResult(id=sheet_id, outcome="ok", resolved_count=count))
        except (AppError, SQLAlchemyError) as e:
            db.rollback()
            reason = e.message if isinstance(e, AppError) else "Database error"
            log_with_context(logger, "WARNING", "Bulk resolve failed for one sheet",
                context={"answer_sheet_id": sheet_id}, extra_data={"reason": reason})
            results.append(BulkItemResult(id=sheet_id, outcome="error", reason=reason))

    log_with_context(logger, "INFO",
        "Bulk resolve processed {} sheets".format(len(answer_sheet_ids)),
        extra_data={"failed": sum(1 for r in results if r.outcome == "error")})
    return results
