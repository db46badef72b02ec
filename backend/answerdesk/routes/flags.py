"""
Flag API routes - data-quality flags on answer sheets, plus per-exam
flag listings and statistics.
"""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from answerdesk.config import Settings
from answerdesk.database import get_db
from answerdesk.dependencies import get_current_user, get_settings
from answerdesk.models.enums import FlagSeverity, FlagType
from answerdesk.models.user import User
from answerdesk.schemas import (
    FlagCreate, FlagResolution, SheetAnalysis, serialize_answer_sheet, serialize_flag,
)
from answerdesk.services import flag_management

router = APIRouter()


# ── Pydantic schemas ─────────────────────────────────────────

class AddFlagRequest(BaseModel):
    type: FlagType
    severity: FlagSeverity
    description: str = Field(..., min_length=1)


class ResolveRequest(BaseModel):
    resolution_notes: Optional[str] = None


class BulkResolveRequest(BaseModel):
    answer_sheet_ids: List[str] = Field(..., min_length=1)
    resolution_notes: Optional[str] = None


def _resolution(user: User, body: Optional[ResolveRequest]) -> FlagResolution:
    return FlagResolution(
        resolved_by=user.id,
        resolution_notes=body.resolution_notes if body else None,
    )


@router.post("/api/flags/bulk-resolve")
def bulk_resolve(body: BulkResolveRequest, user: User = Depends(get_current_user),
                 db: Session = Depends(get_db)):
    """Resolve all flags on several sheets; each sheet reports its own outcome."""
    results = flag_management.bulk_resolve_flags(
        db, body.answer_sheet_ids,
        FlagResolution(resolved_by=user.id, resolution_notes=body.resolution_notes),
    )
    ok = sum(1 for r in results if r.outcome == "ok")
    return {
        "success": True,
        "data": [r.model_dump() for r in results],
        "message": "Processed {} answer sheets ({} failed)".format(len(results), len(results) - ok),
    }


@router.post("/api/flags/{answer_sheet_id}", status_code=201)
def add_flag(answer_sheet_id: str, body: AddFlagRequest,
             user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    flag = flag_management.add_flag(db, answer_sheet_id, FlagCreate(
        type=body.type,
        severity=body.severity,
        description=body.description,
        detected_by=user.id,
    ))
    return {"success": True, "data": serialize_flag(flag), "message": "Flag added"}


@router.get("/api/flags/{answer_sheet_id}")
def get_flags(answer_sheet_id: str, user: User = Depends(get_current_user),
              db: Session = Depends(get_db)):
    flags = flag_management.get_answer_sheet_flags(db, answer_sheet_id)
    return {"success": True, "data": [serialize_flag(f) for f in flags]}


@router.patch("/api/flags/{answer_sheet_id}/resolve-all")
def resolve_all(answer_sheet_id: str, body: Optional[ResolveRequest] = Body(None),
                user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    count = flag_management.resolve_all_flags(db, answer_sheet_id, _resolution(user, body))
    return {
        "success": True,
        "data": {"resolved_count": count},
        "message": "Resolved {} flags".format(count),
    }


@router.patch("/api/flags/{answer_sheet_id}/{flag_index}/resolve")
def resolve_flag(answer_sheet_id: str, flag_index: int,
                 body: Optional[ResolveRequest] = Body(None),
                 user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    result = flag_management.resolve_flag(db, answer_sheet_id, flag_index, _resolution(user, body))
    return {
        "success": True,
        "data": result.model_dump(),
        "message": "Flag already resolved" if result.already_resolved else "Flag resolved",
    }


@router.post("/api/flags/{answer_sheet_id}/auto-detect")
def auto_detect(answer_sheet_id: str, analysis: Optional[SheetAnalysis] = Body(None),
                user: User = Depends(get_current_user),
                settings: Settings = Depends(get_settings),
                db: Session = Depends(get_db)):
    """Run detection rules against the sheet, optionally with fresh scan figures."""
    added = flag_management.auto_detect_flags(db, answer_sheet_id, analysis or SheetAnalysis(), settings)
    return {
        "success": True,
        "data": [serialize_flag(f) for f in added],
        "message": "Detected {} flags".format(len(added)),
    }


@router.get("/api/exams/{exam_id}/flags")
def exam_flagged_sheets(
    exam_id: str,
    severity: Optional[str] = Query(None, description="Only flags of this severity"),
    type: Optional[str] = Query(None, description="Only flags of this type"),
    resolved: Optional[bool] = Query(None, description="Only resolved / unresolved flags"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sheets = flag_management.get_flagged_answer_sheets(
        db, exam_id, severity=severity, flag_type=type, resolved=resolved)
    return {"success": True, "data": [serialize_answer_sheet(s) for s in sheets]}


@router.get("/api/exams/{exam_id}/flag-statistics")
def exam_flag_statistics(exam_id: str, user: User = Depends(get_current_user),
                         db: Session = Depends(get_db)):
    return {"success": True, "data": flag_management.get_flag_statistics(db, exam_id)}
