from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from admissions_scheduler.base.models import CalendarEntry
from admissions_scheduler.db.session import get_db
from admissions_scheduler.routers.dependencies import get_engine
from admissions_scheduler.services.engine import SchedulingEngine

router = APIRouter()


@router.get("", response_model=List[CalendarEntry])
def calendar_view(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    return engine.calendar.calendar(db, start_date, end_date)
