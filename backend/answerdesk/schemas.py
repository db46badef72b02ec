"""
Pydantic schemas shared between services and routes, plus the ORM
serializers used to shape API responses.
"""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from answerdesk.models.enums import (
    FlagSeverity, FlagType, ScanQuality, TrackingType,
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ── Flags ─────────────────────────────────────────────────────

class FlagCreate(BaseModel):
    """Payload for adding a flag to an answer sheet."""
    type: FlagType
    severity: FlagSeverity
    description: str = Field(..., min_length=1)
    detected_by: Optional[str] = None
    auto_resolved: bool = False


class FlagResolution(BaseModel):
    """Who resolved a flag and why."""
    resolved_by: str
    resolution_notes: Optional[str] = None
    auto_resolved: bool = False


class SheetAnalysis(BaseModel):
    """Scan analysis figures used for automatic flag detection."""
    roll_number_detected: Optional[str] = None
    roll_number_confidence: Optional[float] = Field(None, ge=0, le=100)
    scan_quality: Optional[ScanQuality] = None
    is_aligned: Optional[bool] = None
    file_size: Optional[int] = Field(None, ge=0)
    file_format: Optional[str] = None


class BulkItemResult(BaseModel):
    """Outcome of one item in a continue-on-error bulk operation."""
    id: str
    outcome: Literal["ok", "error"]
    reason: Optional[str] = None
    resolved_count: int = 0


class FlagResolveResult(BaseModel):
    position: int
    already_resolved: bool
    resolved_by: Optional[str] = None


# ── Notification metadata (tagged by notification type) ──────

class AIProcessingStartedMetadata(BaseModel):
    model_config = {"extra": "allow"}
    type: Literal["AI_PROCESSING_STARTED"] = "AI_PROCESSING_STARTED"
    student_name: str
    started_at: datetime
    estimated_completion_time: str = "5-10 minutes"


class AICorrectionCompleteMetadata(BaseModel):
    model_config = {"extra": "allow"}
    type: Literal["AI_CORRECTION_COMPLETE"] = "AI_CORRECTION_COMPLETE"
    student_name: str
    percentage: float
    confidence: float
    completed_at: datetime


class AIProcessingFailedMetadata(BaseModel):
    model_config = {"extra": "allow"}
    type: Literal["AI_PROCESSING_FAILED"] = "AI_PROCESSING_FAILED"
    student_name: str
    error_message: str
    failed_at: datetime


class TrackingReportMetadata(BaseModel):
    """Metadata for notifications raised by a missing-paper report."""
    model_config = {"extra": "allow"}
    type: Literal["MISSING_SHEET", "ABSENT_STUDENT", "MANUAL_REVIEW_REQUIRED"]
    tracking_id: str
    tracking_type: TrackingType
    exam_title: Optional[str] = None
    student_name: Optional[str] = None
    reason: str
    reported_by: str


class SystemAlertMetadata(BaseModel):
    model_config = {"extra": "allow"}
    type: Literal["SYSTEM_ALERT"] = "SYSTEM_ALERT"
    event: str
    tracking_id: Optional[str] = None
    remarks: Optional[str] = None


NotificationMetadata = Annotated[
    Union[
        AIProcessingStartedMetadata,
        AICorrectionCompleteMetadata,
        AIProcessingFailedMetadata,
        TrackingReportMetadata,
        SystemAlertMetadata,
    ],
    Field(discriminator="type"),
]

notification_metadata_adapter = TypeAdapter(NotificationMetadata)


# ── Serializers ──────────────────────────────────────────────

def serialize_flag(flag) -> dict:
    return {
        "index": flag.position,
        "type": flag.type,
        "severity": flag.severity,
        "description": flag.description,
        "detected_at": _iso(flag.detected_at),
        "detected_by": flag.detected_by,
        "resolved": flag.resolved,
        "resolved_by": flag.resolved_by,
        "resolved_at": _iso(flag.resolved_at),
        "resolution_notes": flag.resolution_notes,
        "auto_resolved": flag.auto_resolved,
    }


def serialize_answer_sheet(sheet, include_flags: bool = True) -> dict:
    result = {
        "id": sheet.id,
        "exam_id": sheet.exam_id,
        "student_id": sheet.student_id,
        "uploaded_by": sheet.uploaded_by,
        "original_file_name": sheet.original_file_name,
        "status": sheet.status,
        "scan_quality": sheet.scan_quality,
        "is_aligned": sheet.is_aligned,
        "roll_number_detected": sheet.roll_number_detected,
        "roll_number_confidence": sheet.roll_number_confidence,
        "ai_confidence": sheet.ai_confidence,
        "ai_percentage": sheet.ai_percentage,
        "is_missing": sheet.is_missing,
        "missing_reason": sheet.missing_reason,
        "uploaded_at": _iso(sheet.uploaded_at),
        "processed_at": _iso(sheet.processed_at),
        "last_flagged_at": _iso(sheet.last_flagged_at),
        "flag_count": len(sheet.flags),
        "unresolved_flag_count": len(sheet.unresolved_flags),
        "student": {
            "id": sheet.student.id,
            "full_name": sheet.student.full_name,
            "roll_number": sheet.student.roll_number,
        } if sheet.student else None,
    }
    if include_flags:
        result["flags"] = [serialize_flag(f) for f in sheet.flags]
    return result


def serialize_notification(notification) -> dict:
    return {
        "id": notification.id,
        "type": notification.type,
        "priority": notification.priority,
        "status": notification.status,
        "title": notification.title,
        "message": notification.message,
        "recipient_id": notification.recipient_id,
        "related_entity_id": notification.related_entity_id,
        "related_entity_type": notification.related_entity_type,
        "metadata": notification.metadata_dict,
        "is_active": notification.is_active,
        "created_at": _iso(notification.created_at),
        "read_at": _iso(notification.read_at),
        "acknowledged_at": _iso(notification.acknowledged_at),
        "dismissed_at": _iso(notification.dismissed_at),
    }


def serialize_tracking(record) -> dict:
    return {
        "id": record.id,
        "exam_id": record.exam_id,
        "student_id": record.student_id,
        "class_id": record.class_id,
        "subject_id": record.subject_id,
        "type": record.type,
        "status": record.status,
        "reported_by": record.reported_by,
        "reported_at": _iso(record.reported_at),
        "reason": record.reason,
        "details": record.details,
        "acknowledged_by": record.acknowledged_by,
        "acknowledged_at": _iso(record.acknowledged_at),
        "admin_remarks": record.admin_remarks,
        "resolved_by": record.resolved_by,
        "resolved_at": _iso(record.resolved_at),
        "resolution_notes": record.resolution_notes,
        "escalated_to": record.escalated_to,
        "escalated_at": _iso(record.escalated_at),
        "escalation_reason": record.escalation_reason,
        "priority": record.priority,
        "is_red_flag": record.is_red_flag,
        "requires_acknowledgment": record.requires_acknowledgment,
        "is_completed": record.is_completed,
        "completed_at": _iso(record.completed_at),
        "completion_notes": record.completion_notes,
        "answer_sheet_id": record.answer_sheet_id,
        "related_notification_ids": record.notification_id_list,
        "is_active": record.is_active,
        "created_at": _iso(record.created_at),
        "exam": {"id": record.exam.id, "title": record.exam.title} if record.exam else None,
        "student": {
            "id": record.student.id,
            "full_name": record.student.full_name,
            "roll_number": record.student.roll_number,
        } if record.student else None,
    }


def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit if limit else 0,
    }
