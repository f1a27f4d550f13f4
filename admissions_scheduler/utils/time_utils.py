from datetime import date, time
from typing import Optional

from admissions_scheduler.base.errors import ValidationError
from admissions_scheduler.base.models import MAX_INTERVIEW_MINUTES, MIN_INTERVIEW_MINUTES

MINUTES_PER_DAY = 24 * 60


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise ValidationError(f"Time offset {minutes} minutes is outside a single day")
    return time(hour=minutes // 60, minute=minutes % 60)


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def format_window(start: time, duration_minutes: int) -> str:
    end_minutes = to_minutes(start) + duration_minutes
    end_label = f"{end_minutes // 60:02d}:{end_minutes % 60:02d}"
    return f"{format_hhmm(start)} - {end_label}"


def parse_date(value: Optional[str], field: str = "date") -> date:
    if not value:
        raise ValidationError(f"{field} is required", {"field": field})
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)", {"field": field, "value": value})


def require_bookable_duration(duration_minutes: int) -> int:
    """Slots are only offered for durations a booking would accept."""
    if duration_minutes is None or not MIN_INTERVIEW_MINUTES <= duration_minutes <= MAX_INTERVIEW_MINUTES:
        raise ValidationError(
            f"durationMinutes must be between {MIN_INTERVIEW_MINUTES} and {MAX_INTERVIEW_MINUTES}",
            {"field": "durationMinutes", "value": duration_minutes},
        )
    return duration_minutes


def require_fits_in_day(start: time, duration_minutes: int) -> None:
    if to_minutes(start) + duration_minutes > MINUTES_PER_DAY:
        raise ValidationError(
            "Interview window must end on the same day",
            {"time": format_hhmm(start), "durationMinutes": duration_minutes},
        )
