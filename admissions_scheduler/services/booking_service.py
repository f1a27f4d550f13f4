# admissions_scheduler/services/booking_service.py

import logging
from datetime import date, time
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from admissions_scheduler.base.errors import ConflictError, ValidationError
from admissions_scheduler.base.metrics import booking_counter
from admissions_scheduler.base.models import InterviewCreate, InterviewResponse, InterviewStatus
from admissions_scheduler.db.models import InterviewerOccupancyModel, InterviewModel
from admissions_scheduler.db.session import commit_or_rollback
from admissions_scheduler.services.cache_service import ReadPathCache, invalidate_interview_views
from admissions_scheduler.services.conflict_index import ConflictIndex, InterviewerLockRegistry
from admissions_scheduler.services.evaluation_store import EvaluationStore, stub_types_for
from admissions_scheduler.services.execution_guard import ExecutionGuard, WorkloadClass
from admissions_scheduler.services.notification_service import InterviewNotifier
from admissions_scheduler.utils.time_utils import format_window, require_bookable_duration, require_fits_in_day, to_minutes

logger = logging.getLogger("scheduler.booking")


def build_occupancy(interview: InterviewModel) -> List[InterviewerOccupancyModel]:
    # Ascending interviewer order, the same order the write locks use
    start = to_minutes(interview.scheduled_time)
    return [
        InterviewerOccupancyModel(
            interviewer_id=interviewer_id,
            scheduled_date=interview.scheduled_date,
            minute_of_day=minute,
        )
        for interviewer_id in sorted(interview.participant_ids)
        for minute in range(start, start + interview.duration_minutes)
    ]


def occupancy_conflict(
    conflicts: ConflictIndex,
    db: Session,
    participants: Sequence[int],
    on_date: date,
    start: time,
    duration_minutes: int,
    exclude_interview_id: Optional[int] = None,
) -> ConflictError:
    """
    Builds the error for an occupancy insert the database rejected. The winning
    writer has committed by now, so re-reading names the busy participant.
    """
    found = conflicts.first_conflict(db, participants, on_date, start, duration_minutes, exclude_interview_id)
    if found is None:
        return ConflictError(participants[0], on_date, start, duration_minutes)
    interviewer_id, clash = found
    return ConflictError(interviewer_id, on_date, start, duration_minutes, clash.interview_id)


class BookingService:
    """
    Books an interview for one or two interviewers.

    Flow:
        1. check every participant against the conflict index under their write locks
        2. persist interview + occupancy rows + evaluation stubs in one transaction
        3. invalidate cached slots/calendar/listings
        4. queue notifications (never affects the booking outcome)
    """

    def __init__(
        self,
        guard: ExecutionGuard,
        cache: ReadPathCache,
        conflicts: ConflictIndex,
        evaluations: EvaluationStore,
        notifier: Optional[InterviewNotifier],
        locks: InterviewerLockRegistry,
    ):
        self.guard = guard
        self.cache = cache
        self.conflicts = conflicts
        self.evaluations = evaluations
        self.notifier = notifier
        self.locks = locks

    def book(self, db: Session, request: InterviewCreate, booked_by: Optional[int] = None) -> InterviewModel:
        require_bookable_duration(request.duration_minutes)
        require_fits_in_day(request.scheduled_time, request.duration_minutes)
        if request.secondary_interviewer_id is not None and request.secondary_interviewer_id == request.primary_interviewer_id:
            raise ValidationError(
                "Primary and secondary interviewer must be different people",
                {"interviewerId": request.primary_interviewer_id},
            )

        participants = [request.primary_interviewer_id]
        if request.secondary_interviewer_id is not None:
            participants.append(request.secondary_interviewer_id)

        with self.locks.hold(participants):
            found = self.conflicts.first_conflict(
                db, participants, request.scheduled_date, request.scheduled_time, request.duration_minutes
            )
            if found is not None:
                interviewer_id, clash = found
                booking_counter.labels(outcome="conflict").inc()
                logger.warning(
                    f"[Booking] Interviewer {interviewer_id} busy on {request.scheduled_date} "
                    f"{format_window(request.scheduled_time, request.duration_minutes)} "
                    f"(interview {clash.interview_id})"
                )
                raise ConflictError(
                    interviewer_id,
                    request.scheduled_date,
                    request.scheduled_time,
                    request.duration_minutes,
                    clash.interview_id,
                )

            interview = self.guard.run(WorkloadClass.WRITE, self._persist, db, request, participants)

        invalidate_interview_views(self.cache, participants, [request.scheduled_date])
        booking_counter.labels(outcome="booked").inc()
        logger.info(
            f"✅ [Booking] Interview {interview.id} ({interview.type.value}) for application "
            f"{interview.application_id} on {interview.scheduled_date} "
            f"{format_window(interview.scheduled_time, interview.duration_minutes)} by {booked_by or 'system'}"
        )

        if self.notifier is not None:
            snapshot = InterviewResponse.model_validate(interview)
            try:
                self.notifier.interview_scheduled(snapshot)
            except RuntimeError as exc:
                logger.error(f"[Booking] Could not queue notifications for interview {interview.id}: {exc}")
        return interview

    def _persist(self, db: Session, request: InterviewCreate, participants: List[int]) -> InterviewModel:
        interview = InterviewModel(
            application_id=request.application_id,
            primary_interviewer_id=request.primary_interviewer_id,
            secondary_interviewer_id=request.secondary_interviewer_id,
            type=request.type,
            scheduled_date=request.scheduled_date,
            scheduled_time=request.scheduled_time,
            duration_minutes=request.duration_minutes,
            location=request.location,
            mode=request.mode,
            status=InterviewStatus.SCHEDULED,
            notes=request.notes,
        )
        interview.occupancy = build_occupancy(interview)
        try:
            db.add(interview)
            db.flush()
        except IntegrityError as exc:
            db.rollback()
            booking_counter.labels(outcome="conflict").inc()
            logger.warning(f"[Booking] Occupancy already taken for {request.scheduled_date} {request.scheduled_time}: {exc.orig}")
            raise occupancy_conflict(
                self.conflicts,
                db,
                participants,
                request.scheduled_date,
                request.scheduled_time,
                request.duration_minutes,
            ) from exc
        except Exception:
            db.rollback()
            raise

        self._create_stubs(db, interview)
        commit_or_rollback(db)
        return interview

    def _create_stubs(self, db: Session, interview: InterviewModel) -> None:
        for evaluator_id in interview.participant_ids:
            for evaluation_type in stub_types_for(interview.type):
                try:
                    self.evaluations.insert_if_absent(db, interview.application_id, evaluator_id, evaluation_type)
                except SQLAlchemyError as exc:
                    # Isolated per participant: the savepoint is gone, the booking continues
                    logger.error(
                        f"[Booking] {evaluation_type.value} stub for evaluator {evaluator_id} "
                        f"on application {interview.application_id} failed: {exc}"
                    )
