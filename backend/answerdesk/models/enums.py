"""
Enumerations stored as plain strings in the database.
Names and values must stay identical; they are persisted verbatim.
"""

from enum import Enum


class UserRole(str, Enum):
    TEACHER = "TEACHER"
    ADMIN = "ADMIN"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


PRIORITY_RANK = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.URGENT: 3,
}


class NotificationType(str, Enum):
    MISSING_SHEET = "MISSING_SHEET"
    ABSENT_STUDENT = "ABSENT_STUDENT"
    AI_CORRECTION_COMPLETE = "AI_CORRECTION_COMPLETE"
    AI_PROCESSING_STARTED = "AI_PROCESSING_STARTED"
    AI_PROCESSING_FAILED = "AI_PROCESSING_FAILED"
    MANUAL_REVIEW_REQUIRED = "MANUAL_REVIEW_REQUIRED"
    SYSTEM_ALERT = "SYSTEM_ALERT"


class NotificationStatus(str, Enum):
    UNREAD = "UNREAD"
    READ = "READ"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    DISMISSED = "DISMISSED"


class AnswerSheetStatus(str, Enum):
    UPLOADED = "UPLOADED"
    PROCESSING = "PROCESSING"
    AI_CORRECTED = "AI_CORRECTED"
    MANUALLY_REVIEWED = "MANUALLY_REVIEWED"
    COMPLETED = "COMPLETED"
    MISSING = "MISSING"
    ABSENT = "ABSENT"


class ScanQuality(str, Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"
    UNREADABLE = "UNREADABLE"


class FlagType(str, Enum):
    UNMATCHED_ROLL = "UNMATCHED_ROLL"
    LOW_CONFIDENCE_ROLL_NUMBER = "LOW_CONFIDENCE_ROLL_NUMBER"
    POOR_QUALITY = "POOR_QUALITY"
    MISSING_PAGES = "MISSING_PAGES"
    ALIGNMENT_ISSUE = "ALIGNMENT_ISSUE"
    DUPLICATE_UPLOAD = "DUPLICATE_UPLOAD"
    INVALID_FORMAT = "INVALID_FORMAT"
    SIZE_TOO_LARGE = "SIZE_TOO_LARGE"
    CORRUPTED_FILE = "CORRUPTED_FILE"
    MANUAL_REVIEW_REQUIRED = "MANUAL_REVIEW_REQUIRED"


class FlagSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class TrackingType(str, Enum):
    ABSENT = "ABSENT"
    MISSING_SHEET = "MISSING_SHEET"
    LATE_SUBMISSION = "LATE_SUBMISSION"
    QUALITY_ISSUE = "QUALITY_ISSUE"
    ROLL_NUMBER_ISSUE = "ROLL_NUMBER_ISSUE"


class TrackingStatus(str, Enum):
    PENDING = "PENDING"
    REPORTED = "REPORTED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"
    ESCALATED = "ESCALATED"


class TrackingEvent(str, Enum):
    """Events that drive the missing-paper state machine."""
    REPORT = "REPORT"
    ACKNOWLEDGE = "ACKNOWLEDGE"
    RESOLVE = "RESOLVE"
    ESCALATE = "ESCALATE"
