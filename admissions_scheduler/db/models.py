from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from admissions_scheduler.base.models import (
    DayOfWeek,
    EvaluationStatus,
    EvaluationType,
    InterviewMode,
    InterviewStatus,
    InterviewType,
    ScheduleKind,
)

Base = declarative_base()


def _enum(enum_cls, name: str) -> SAEnum:
    return SAEnum(enum_cls, name=name, native_enum=False, validate_strings=True, length=32)


class ScheduleBlockModel(Base):
    __tablename__ = "schedule_blocks"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_schedule_blocks_time_order"),
        Index("ix_schedule_blocks_lookup", "interviewer_id", "year", "active"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    interviewer_id = Column(Integer, nullable=False, index=True)
    kind = Column(_enum(ScheduleKind, "schedule_kind"), nullable=False, default=ScheduleKind.RECURRING)
    day_of_week = Column(_enum(DayOfWeek, "day_of_week"), nullable=True)
    specific_date = Column(Date, nullable=True)
    year = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class InterviewModel(Base):
    __tablename__ = "interviews"
    __table_args__ = (
        Index("ix_interviews_primary_date", "primary_interviewer_id", "scheduled_date"),
        Index("ix_interviews_secondary_date", "secondary_interviewer_id", "scheduled_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(Integer, nullable=False, index=True)
    primary_interviewer_id = Column(Integer, nullable=False)
    secondary_interviewer_id = Column(Integer, nullable=True)
    type = Column(_enum(InterviewType, "interview_type"), nullable=False)
    scheduled_date = Column(Date, nullable=False)
    scheduled_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    location = Column(String(200), nullable=True)
    mode = Column(_enum(InterviewMode, "interview_mode"), nullable=False, default=InterviewMode.IN_PERSON)
    status = Column(_enum(InterviewStatus, "interview_status"), nullable=False, default=InterviewStatus.SCHEDULED)
    notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(Integer, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    reschedule_reason = Column(Text, nullable=True)
    rescheduled_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    occupancy = relationship(
        "InterviewerOccupancyModel",
        back_populates="interview",
        cascade="all, delete-orphan",
    )

    @property
    def participant_ids(self):
        ids = [self.primary_interviewer_id]
        if self.secondary_interviewer_id is not None:
            ids.append(self.secondary_interviewer_id)
        return ids


class InterviewerOccupancyModel(Base):
    """
    One row per participant and per minute of a blocking interview, covering
    [start, start + duration). Two overlapping windows for the same interviewer
    share at least one minute, so the unique key rejects the second writer at
    flush time whichever process it runs in.
    """
    __tablename__ = "interviewer_occupancy"
    __table_args__ = (
        UniqueConstraint("interviewer_id", "scheduled_date", "minute_of_day", name="uq_interviewer_minute"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    interview_id = Column(Integer, ForeignKey("interviews.id", ondelete="CASCADE"), nullable=False, index=True)
    interviewer_id = Column(Integer, nullable=False)
    scheduled_date = Column(Date, nullable=False)
    minute_of_day = Column(Integer, nullable=False)

    interview = relationship("InterviewModel", back_populates="occupancy")


class EvaluationModel(Base):
    __tablename__ = "evaluations"
    __table_args__ = (
        UniqueConstraint("application_id", "evaluator_id", "evaluation_type", name="uq_evaluation_per_evaluator"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(Integer, nullable=False, index=True)
    evaluator_id = Column(Integer, nullable=False, index=True)
    evaluation_type = Column(_enum(EvaluationType, "evaluation_type"), nullable=False)
    status = Column(_enum(EvaluationStatus, "evaluation_status"), nullable=False, default=EvaluationStatus.PENDING)
    score = Column(Integer, nullable=True)
    max_score = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SummaryDispatchModel(Base):
    """One row per interview summary queued for an application."""
    __tablename__ = "interview_summary_dispatches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(Integer, nullable=False, index=True)
    requested_by = Column(Integer, nullable=True)
    interview_count = Column(Integer, nullable=False)
    sent_at = Column(DateTime, nullable=False, default=datetime.utcnow)
