from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from admissions_scheduler.base.config import settings
from admissions_scheduler.base.errors import ValidationError
from admissions_scheduler.base.models import SlotOut, SlotsResponse
from admissions_scheduler.db.session import get_db
from admissions_scheduler.routers.dependencies import get_engine
from admissions_scheduler.services.engine import SchedulingEngine
from admissions_scheduler.utils.time_utils import format_hhmm, format_window, parse_date

router = APIRouter()


@router.get("", response_model=SlotsResponse)
def available_slots(
    interviewer_id: Optional[int] = Query(None, alias="interviewerId"),
    on_date: Optional[str] = Query(None, alias="date"),
    duration_minutes: int = Query(settings.DEFAULT_INTERVIEW_DURATION, alias="durationMinutes"),
    db: Session = Depends(get_db),
    engine: SchedulingEngine = Depends(get_engine),
):
    if interviewer_id is None:
        raise ValidationError("interviewerId is required", {"field": "interviewerId"})
    target = parse_date(on_date, "date")

    result = engine.slots.compute_slots(db, interviewer_id, target, duration_minutes)

    message = None
    if not result.has_schedule:
        message = "Interviewer has no schedule configured for this date"
    elif not result.has_availability:
        message = "All slots are booked for this date"

    return SlotsResponse(
        available_slots=[
            SlotOut(time=format_hhmm(slot), display=format_window(slot, duration_minutes))
            for slot in result.slots
        ],
        has_availability=result.has_availability,
        message=message,
    )
