"""
Answer sheet API routes - registration of uploaded scans and AI processing
events reported by the evaluation component.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from answerdesk.config import Settings
from answerdesk.database import get_db
from answerdesk.dependencies import get_current_user, get_settings
from answerdesk.models.enums import ScanQuality
from answerdesk.models.user import User
from answerdesk.schemas import SheetAnalysis, serialize_answer_sheet
from answerdesk.services import answer_sheets, flag_management

router = APIRouter()


# ── Pydantic schemas ─────────────────────────────────────────

class RegisterSheetRequest(BaseModel):
    """An uploaded scan plus the figures produced by scan analysis."""
    exam_id: str
    student_id: str
    original_file_name: Optional[str] = None
    roll_number_detected: Optional[str] = None
    roll_number_confidence: Optional[float] = Field(None, ge=0, le=100)
    scan_quality: ScanQuality = ScanQuality.GOOD
    is_aligned: bool = True
    file_size: Optional[int] = Field(None, ge=0)
    file_format: Optional[str] = None


class AIEventRequest(BaseModel):
    event: Literal["STARTED", "COMPLETED", "FAILED"]
    percentage: Optional[float] = Field(None, ge=0, le=100)
    confidence: Optional[float] = Field(None, ge=0, le=1)
    error_message: Optional[str] = None


@router.post("/api/answer-sheets", status_code=201)
def register_answer_sheet(body: RegisterSheetRequest, user: User = Depends(get_current_user),
                          settings: Settings = Depends(get_settings),
                          db: Session = Depends(get_db)):
    sheet = answer_sheets.register_sheet(
        db,
        exam_id=body.exam_id,
        student_id=body.student_id,
        uploader=user,
        original_file_name=body.original_file_name,
        analysis=SheetAnalysis(
            roll_number_detected=body.roll_number_detected,
            roll_number_confidence=body.roll_number_confidence,
            scan_quality=body.scan_quality,
            is_aligned=body.is_aligned,
            file_size=body.file_size,
            file_format=body.file_format,
        ),
        settings=settings,
    )
    return {"success": True, "data": serialize_answer_sheet(sheet), "message": "Answer sheet registered"}


@router.get("/api/answer-sheets/{answer_sheet_id}")
def get_answer_sheet(answer_sheet_id: str, user: User = Depends(get_current_user),
                     db: Session = Depends(get_db)):
    sheet = flag_management.get_answer_sheet(db, answer_sheet_id)
    return {"success": True, "data": serialize_answer_sheet(sheet)}


@router.post("/api/answer-sheets/{answer_sheet_id}/ai-events")
def ai_event(answer_sheet_id: str, body: AIEventRequest, user: User = Depends(get_current_user),
             db: Session = Depends(get_db)):
    sheet = answer_sheets.record_ai_event(
        db, answer_sheet_id, body.event,
        percentage=body.percentage,
        confidence=body.confidence,
        error_message=body.error_message,
    )
    return {"success": True, "data": serialize_answer_sheet(sheet, include_flags=False)}
