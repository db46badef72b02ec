"""
Missing-paper API routes.

Staff report absences and missing sheets; admins acknowledge, escalate,
resolve and archive the resulting records.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from answerdesk.config import Settings
from answerdesk.database import get_db
from answerdesk.dependencies import get_current_user, get_settings, page_limit, require_admin
from answerdesk.models.enums import Priority, TrackingType
from answerdesk.models.user import User
from answerdesk.schemas import pagination, serialize_tracking
from answerdesk.services import missing_papers

router = APIRouter()


# ── Pydantic schemas ─────────────────────────────────────────

class ReportRequest(BaseModel):
    exam_id: str
    student_id: str
    type: TrackingType
    reason: str = Field(..., min_length=1)
    details: Optional[str] = None
    priority: Optional[Priority] = None


class AcknowledgeRequest(BaseModel):
    admin_remarks: Optional[str] = None
    priority: Optional[Priority] = None


class ResolveRequest(BaseModel):
    resolution_notes: Optional[str] = None
    completion_notes: Optional[str] = None


class EscalateRequest(BaseModel):
    escalated_to: str
    escalation_reason: str = Field(..., min_length=1)


@router.post("/api/missing-papers/report", status_code=201)
def report_missing_paper(body: ReportRequest, user: User = Depends(get_current_user),
                         db: Session = Depends(get_db)):
    record = missing_papers.report(
        db,
        exam_id=body.exam_id,
        student_id=body.student_id,
        tracking_type=body.type,
        reason=body.reason,
        reporter=user,
        details=body.details,
        priority=body.priority,
    )
    return {"success": True, "data": serialize_tracking(record), "message": "Missing paper reported"}


@router.get("/api/missing-papers/staff")
def staff_missing_papers(
    exam_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
):
    limit = page_limit(settings, limit)
    items, total = missing_papers.list_for_staff(
        db, user, exam_id=exam_id, status=status, priority=priority, page=page, limit=limit)
    return {
        "success": True,
        "data": [serialize_tracking(r) for r in items],
        "pagination": pagination(page, limit, total),
    }


@router.get("/api/missing-papers/admin")
def admin_missing_papers(
    exam_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    is_red_flag: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    admin: User = Depends(require_admin),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
):
    """All active records, red flags first, then priority, then newest."""
    limit = page_limit(settings, limit)
    items, total = missing_papers.list_for_admin(
        db, exam_id=exam_id, status=status, priority=priority,
        is_red_flag=is_red_flag, page=page, limit=limit)
    return {
        "success": True,
        "data": [serialize_tracking(r) for r in items],
        "pagination": pagination(page, limit, total),
    }


@router.get("/api/missing-papers/red-flags")
def red_flag_summary(exam_id: Optional[str] = Query(None),
                     admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return {"success": True, "data": missing_papers.get_red_flag_summary(db, exam_id)}


@router.get("/api/missing-papers/completion-status/{exam_id}")
def completion_status(exam_id: str, user: User = Depends(get_current_user),
                      db: Session = Depends(get_db)):
    return {"success": True, "data": missing_papers.get_exam_completion_status(db, exam_id)}


@router.patch("/api/missing-papers/{tracking_id}/acknowledge")
def acknowledge(tracking_id: str, body: Optional[AcknowledgeRequest] = Body(None),
                admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    body = body or AcknowledgeRequest()
    record = missing_papers.acknowledge(
        db, tracking_id, admin, admin_remarks=body.admin_remarks, priority=body.priority)
    return {"success": True, "data": serialize_tracking(record), "message": "Missing paper acknowledged"}


@router.patch("/api/missing-papers/{tracking_id}/resolve")
def resolve(tracking_id: str, body: Optional[ResolveRequest] = Body(None),
            admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    body = body or ResolveRequest()
    record = missing_papers.resolve(
        db, tracking_id, admin,
        resolution_notes=body.resolution_notes, completion_notes=body.completion_notes)
    return {"success": True, "data": serialize_tracking(record), "message": "Missing paper resolved"}


@router.patch("/api/missing-papers/{tracking_id}/escalate")
def escalate(tracking_id: str, body: EscalateRequest,
             admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    record = missing_papers.escalate(db, tracking_id, body.escalated_to, body.escalation_reason)
    return {"success": True, "data": serialize_tracking(record), "message": "Missing paper escalated"}


@router.delete("/api/missing-papers/{tracking_id}")
def archive(tracking_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    missing_papers.archive(db, tracking_id)
    return {"success": True, "message": "Missing paper record archived"}
