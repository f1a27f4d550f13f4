from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from admissions_scheduler.base.models import (
    CancelRequest,
    InterviewCreate,
    InterviewPage,
    InterviewResponse,
    InterviewStatus,
    InterviewType,
    InterviewUpdate,
    Principal,
    RescheduleRequest,
    SummaryDispatchResponse,
    SummaryStatusResponse,
)
from admissions_scheduler.db.filters import InterviewFilter
from admissions_scheduler.db.session import get_db
from admissions_scheduler.routers.dependencies import get_engine, require_principal
from admissions_scheduler.services.engine import SchedulingEngine

router = APIRouter()


# === Queries ===

@router.get("", response_model=InterviewPage)
def list_interviews(
    status_filter: Optional[InterviewStatus] = Query(None, alias="status"),
    type_filter: Optional[InterviewType] = Query(None, alias="type"),
    application_id: Optional[int] = Query(None, alias="applicationId"),
    interviewer_id: Optional[int] = Query(None, alias="interviewerId"),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    page: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    filters = {
        InterviewFilter.STATUS: status_filter,
        InterviewFilter.TYPE: type_filter,
        InterviewFilter.APPLICATION_ID: application_id,
        InterviewFilter.INTERVIEWER_ID: interviewer_id,
        InterviewFilter.DATE_FROM: date_from,
        InterviewFilter.DATE_TO: date_to,
    }
    return engine.calendar.list_interviews(db, filters, page=page, limit=limit)


@router.get("/application/{application_id}", response_model=List[InterviewResponse])
def interviews_for_application(
    application_id: int,
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    rows = engine.calendar.interviews_for_application(db, application_id)
    return [InterviewResponse.model_validate(row) for row in rows]


@router.get("/application/{application_id}/summary-status", response_model=SummaryStatusResponse)
def summary_status(
    application_id: int,
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    return engine.summaries.summary_status(db, application_id)


@router.get("/{interview_id}", response_model=InterviewResponse)
def get_interview(interview_id: int, db: Session = Depends(get_db), engine: SchedulingEngine = Depends(get_engine)):
    return InterviewResponse.model_validate(engine.calendar.get_interview(db, interview_id))


# === Booking & lifecycle ===

@router.post("", response_model=InterviewResponse, status_code=status.HTTP_201_CREATED)
def book_interview(
    req: InterviewCreate,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    interview = engine.booking.book(db, req, booked_by=principal.user_id)
    return InterviewResponse.model_validate(interview)


@router.put("/{interview_id}", response_model=InterviewResponse)
def update_interview(
    interview_id: int,
    req: InterviewUpdate,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    return InterviewResponse.model_validate(engine.lifecycle.update_details(db, interview_id, req))


@router.patch("/{interview_id}/cancel", response_model=InterviewResponse)
def cancel_interview(
    interview_id: int,
    req: CancelRequest,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    interview = engine.lifecycle.cancel(db, interview_id, req.reason, cancelled_by=principal.user_id)
    return InterviewResponse.model_validate(interview)


@router.patch("/{interview_id}/reschedule", response_model=InterviewResponse)
def reschedule_interview(
    interview_id: int,
    req: RescheduleRequest,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    interview = engine.lifecycle.reschedule(
        db, interview_id, req.new_date, req.new_time, req.reason, rescheduled_by=principal.user_id
    )
    return InterviewResponse.model_validate(interview)


@router.patch("/{interview_id}/confirm", response_model=InterviewResponse)
def confirm_interview(
    interview_id: int,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    return InterviewResponse.model_validate(engine.lifecycle.confirm(db, interview_id))


@router.patch("/{interview_id}/complete", response_model=InterviewResponse)
def complete_interview(
    interview_id: int,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    return InterviewResponse.model_validate(engine.lifecycle.complete(db, interview_id))


@router.post(
    "/application/{application_id}/summary",
    response_model=SummaryDispatchResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def send_interview_summary(
    application_id: int,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    dispatch = engine.summaries.send_summary(db, application_id, requested_by=principal.user_id)
    return SummaryDispatchResponse.model_validate(dispatch)
