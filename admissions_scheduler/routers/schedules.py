from typing import List

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.orm import Session

from admissions_scheduler.base.models import (
    InterviewerSummary,
    Principal,
    RecurringBlockEntry,
    ScheduleBlockCreate,
    ScheduleBlockResponse,
    ScheduleBlockUpdate,
)
from admissions_scheduler.db.session import get_db
from admissions_scheduler.routers.dependencies import get_engine, require_principal
from admissions_scheduler.services.engine import SchedulingEngine

router = APIRouter()


def _out(blocks) -> List[ScheduleBlockResponse]:
    return [ScheduleBlockResponse.model_validate(block) for block in blocks]


@router.get("/interviewers-with-schedules/{year}", response_model=List[InterviewerSummary])
def interviewers_with_schedules(
    year: int = Path(..., ge=2000, le=2100),
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    return engine.registry.interviewers_with_schedules(db, year)


@router.get("/interviewer/{interviewer_id}", response_model=List[ScheduleBlockResponse])
def list_schedules(interviewer_id: int, db: Session = Depends(get_db), engine: SchedulingEngine = Depends(get_engine)):
    return _out(engine.registry.list_for_interviewer(db, interviewer_id))


@router.get("/interviewer/{interviewer_id}/year/{year}", response_model=List[ScheduleBlockResponse])
def list_schedules_for_year(
    interviewer_id: int,
    year: int = Path(..., ge=2000, le=2100),
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    return _out(engine.registry.list_for_interviewer(db, interviewer_id, year=year))


@router.post("", response_model=ScheduleBlockResponse, status_code=status.HTTP_201_CREATED)
def create_schedule(
    req: ScheduleBlockCreate,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    return ScheduleBlockResponse.model_validate(engine.registry.create_block(db, req))


@router.post(
    "/interviewer/{interviewer_id}/recurring/{year}",
    response_model=List[ScheduleBlockResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_recurring_schedules(
    interviewer_id: int,
    entries: List[RecurringBlockEntry],
    year: int = Path(..., ge=2000, le=2100),
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    return _out(engine.registry.create_recurring(db, interviewer_id, year, entries))


@router.put("/{block_id}", response_model=ScheduleBlockResponse)
def update_schedule(
    block_id: int,
    req: ScheduleBlockUpdate,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    return ScheduleBlockResponse.model_validate(engine.registry.update_block(db, block_id, req))


@router.put("/{block_id}/deactivate", response_model=ScheduleBlockResponse)
def deactivate_schedule(
    block_id: int,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    return ScheduleBlockResponse.model_validate(engine.registry.deactivate_block(db, block_id))
