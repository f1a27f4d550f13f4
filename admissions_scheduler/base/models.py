from datetime import date, datetime, time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# === Domain Enums ===

class ScheduleKind(str, Enum):
    RECURRING = "RECURRING"
    SPECIFIC_DATE = "SPECIFIC_DATE"


class DayOfWeek(str, Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @classmethod
    def from_date(cls, value: date) -> "DayOfWeek":
        return list(cls)[value.weekday()]


class InterviewType(str, Enum):
    FAMILY = "FAMILY"
    STUDENT = "STUDENT"
    DIRECTOR = "DIRECTOR"
    PSYCHOLOGIST = "PSYCHOLOGIST"
    ACADEMIC = "ACADEMIC"
    CYCLE_DIRECTOR = "CYCLE_DIRECTOR"


class InterviewMode(str, Enum):
    IN_PERSON = "IN_PERSON"
    VIRTUAL = "VIRTUAL"
    HYBRID = "HYBRID"


class InterviewStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    RESCHEDULED = "RESCHEDULED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({InterviewStatus.COMPLETED, InterviewStatus.CANCELLED})
BLOCKING_STATUSES = frozenset({
    InterviewStatus.SCHEDULED,
    InterviewStatus.CONFIRMED,
    InterviewStatus.RESCHEDULED,
})


class EvaluationType(str, Enum):
    FAMILY_INTERVIEW = "FAMILY_INTERVIEW"
    PSYCHOLOGICAL_INTERVIEW = "PSYCHOLOGICAL_INTERVIEW"
    CYCLE_DIRECTOR_INTERVIEW = "CYCLE_DIRECTOR_INTERVIEW"
    CYCLE_DIRECTOR_REPORT = "CYCLE_DIRECTOR_REPORT"


class EvaluationStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ApiModel(BaseModel):
    """Base schema: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# === 🗓 Schedule Blocks ===

class ScheduleBlockCreate(ApiModel):
    interviewer_id: int = Field(..., description="Staff user id of the interviewer")
    kind: ScheduleKind = Field(ScheduleKind.RECURRING, description="RECURRING (weekly) or SPECIFIC_DATE")
    day_of_week: Optional[DayOfWeek] = Field(None, description="Required for RECURRING blocks")
    specific_date: Optional[date] = Field(None, description="Required for SPECIFIC_DATE blocks")
    year: Optional[int] = Field(None, ge=2000, le=2100, description="Admission year the block applies to")
    start_time: time
    end_time: time
    notes: Optional[str] = Field(None, max_length=1000)


class RecurringBlockEntry(ApiModel):
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    notes: Optional[str] = Field(None, max_length=1000)


class ScheduleBlockUpdate(ApiModel):
    kind: Optional[ScheduleKind] = None
    day_of_week: Optional[DayOfWeek] = None
    specific_date: Optional[date] = None
    year: Optional[int] = Field(None, ge=2000, le=2100)
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    notes: Optional[str] = Field(None, max_length=1000)
    active: Optional[bool] = None


class ScheduleBlockResponse(ApiModel):
    id: int
    interviewer_id: int
    kind: ScheduleKind
    day_of_week: Optional[DayOfWeek]
    specific_date: Optional[date]
    year: int
    start_time: time
    end_time: time
    active: bool
    notes: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class InterviewerSummary(ApiModel):
    id: int
    full_name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    schedule_count: int


# === ⏱ Slots ===

class SlotOut(ApiModel):
    time: str = Field(..., description="Start time, HH:MM")
    display: str = Field(..., description="Human readable window, e.g. '09:00 - 09:20'")


class SlotsResponse(ApiModel):
    available_slots: List[SlotOut]
    has_availability: bool
    message: Optional[str] = None


# === 🎤 Interviews ===

MIN_INTERVIEW_MINUTES = 15
MAX_INTERVIEW_MINUTES = 180


class InterviewCreate(ApiModel):
    application_id: int = Field(..., gt=0)
    type: InterviewType
    primary_interviewer_id: int = Field(..., gt=0)
    secondary_interviewer_id: Optional[int] = Field(None, gt=0)
    scheduled_date: date
    scheduled_time: time
    duration_minutes: int = Field(60, ge=MIN_INTERVIEW_MINUTES, le=MAX_INTERVIEW_MINUTES)
    location: Optional[str] = Field(None, max_length=200)
    mode: InterviewMode = InterviewMode.IN_PERSON
    notes: Optional[str] = Field(None, max_length=1000)


class InterviewUpdate(ApiModel):
    location: Optional[str] = Field(None, max_length=200)
    mode: Optional[InterviewMode] = None
    notes: Optional[str] = Field(None, max_length=1000)


class CancelRequest(ApiModel):
    reason: str = Field(..., max_length=500)


class RescheduleRequest(ApiModel):
    new_date: date
    new_time: time
    reason: str = Field(..., max_length=500)


class InterviewResponse(ApiModel):
    id: int
    application_id: int
    primary_interviewer_id: int
    secondary_interviewer_id: Optional[int]
    type: InterviewType
    scheduled_date: date
    scheduled_time: time
    duration_minutes: int
    location: Optional[str]
    mode: InterviewMode
    status: InterviewStatus
    notes: Optional[str]
    cancellation_reason: Optional[str]
    cancelled_by: Optional[int]
    cancelled_at: Optional[datetime]
    reschedule_reason: Optional[str]
    rescheduled_by: Optional[int]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @property
    def participant_ids(self) -> List[int]:
        ids = [self.primary_interviewer_id]
        if self.secondary_interviewer_id is not None:
            ids.append(self.secondary_interviewer_id)
        return ids


class InterviewPage(ApiModel):
    data: List[InterviewResponse]
    total: int
    page: int
    limit: int


class CalendarEntry(ApiModel):
    id: int
    application_id: int
    student_name: Optional[str]
    primary_interviewer_name: Optional[str]
    secondary_interviewer_name: Optional[str]
    type: InterviewType
    status: InterviewStatus
    mode: InterviewMode
    location: Optional[str]
    scheduled_date: date
    scheduled_time: str
    end_time: str
    duration_minutes: int


# === 📨 Interview summaries ===

class SummaryDispatchResponse(ApiModel):
    id: int
    application_id: int
    requested_by: Optional[int]
    interview_count: int
    sent_at: datetime


class SummaryStatusResponse(ApiModel):
    summary_sent: bool
    sent_at: Optional[datetime] = None
    can_resend: bool
    interviews_modified_after_send: bool = False
    interview_count: int = 0
    message: str


# === 🔐 Principal forwarded by the gateway ===

class Principal(BaseModel):
    user_id: int
    role: Optional[str] = None
