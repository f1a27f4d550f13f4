# admissions_scheduler/services/lifecycle_service.py

import logging
from datetime import date, datetime, time
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from admissions_scheduler.base.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from admissions_scheduler.base.metrics import transition_counter
from admissions_scheduler.base.models import InterviewResponse, InterviewStatus, InterviewUpdate
from admissions_scheduler.db.models import InterviewModel
from admissions_scheduler.db.session import commit_or_rollback
from admissions_scheduler.services.booking_service import build_occupancy, occupancy_conflict
from admissions_scheduler.services.cache_service import ReadPathCache, invalidate_interview_views
from admissions_scheduler.services.conflict_index import ConflictIndex, InterviewerLockRegistry
from admissions_scheduler.services.execution_guard import ExecutionGuard, WorkloadClass
from admissions_scheduler.services.notification_service import InterviewNotifier
from admissions_scheduler.utils.time_utils import format_window, require_fits_in_day

logger = logging.getLogger("scheduler.lifecycle")

_CONFIRMABLE = frozenset({InterviewStatus.SCHEDULED, InterviewStatus.RESCHEDULED})


def _require_reason(reason: Optional[str], field: str) -> str:
    if reason is None or not reason.strip():
        raise ValidationError(f"A {field} reason is required", {"field": "reason"})
    return reason.strip()


class LifecycleService:
    """
    The only writer of Interview.status after booking.

        SCHEDULED|CONFIRMED|RESCHEDULED -> CANCELLED    cancel()
        SCHEDULED|CONFIRMED|RESCHEDULED -> RESCHEDULED  reschedule()
        SCHEDULED|RESCHEDULED           -> CONFIRMED    confirm()
        SCHEDULED|CONFIRMED|RESCHEDULED -> COMPLETED    complete()

    Every guard is checked before anything is mutated, and every write
    commits or rolls back as a whole.
    """

    def __init__(
        self,
        guard: ExecutionGuard,
        cache: ReadPathCache,
        conflicts: ConflictIndex,
        notifier: Optional[InterviewNotifier],
        locks: InterviewerLockRegistry,
    ):
        self.guard = guard
        self.cache = cache
        self.conflicts = conflicts
        self.notifier = notifier
        self.locks = locks

    def cancel(self, db: Session, interview_id: int, reason: str, cancelled_by: Optional[int] = None) -> InterviewModel:
        reason = _require_reason(reason, "cancellation")
        interview = self._load(db, interview_id)

        with self.locks.hold(interview.participant_ids):
            self._reload(db, interview)
            self._require_active(interview, "cancel")

            def _write():
                interview.status = InterviewStatus.CANCELLED
                interview.cancellation_reason = reason
                interview.cancelled_by = cancelled_by
                interview.cancelled_at = datetime.utcnow()
                interview.occupancy.clear()
                commit_or_rollback(db)

            self.guard.run(WorkloadClass.WRITE, _write)

        self._after_write(interview, "cancel", [interview.scheduled_date])
        logger.info(f"[Lifecycle] Interview {interview_id} cancelled by {cancelled_by or 'system'}: {reason}")
        if self.notifier is not None:
            self._notify(lambda snapshot: self.notifier.interview_cancelled(snapshot), interview)
        return interview

    def reschedule(
        self,
        db: Session,
        interview_id: int,
        new_date: date,
        new_time: time,
        reason: str,
        rescheduled_by: Optional[int] = None,
    ) -> InterviewModel:
        if new_date is None or new_time is None:
            raise ValidationError("newDate and newTime are required", {"fields": ["newDate", "newTime"]})
        reason = _require_reason(reason, "reschedule")
        interview = self._load(db, interview_id)

        with self.locks.hold(interview.participant_ids):
            self._reload(db, interview)
            self._require_active(interview, "reschedule")
            require_fits_in_day(new_time, interview.duration_minutes)

            participants = interview.participant_ids
            duration = interview.duration_minutes
            found = self.conflicts.first_conflict(
                db, participants, new_date, new_time, duration, exclude_interview_id=interview_id
            )
            if found is not None:
                interviewer_id, clash = found
                logger.warning(
                    f"[Lifecycle] Reschedule of {interview_id} blocked: interviewer {interviewer_id} busy "
                    f"on {new_date} {format_window(new_time, duration)}"
                )
                raise ConflictError(interviewer_id, new_date, new_time, duration, clash.interview_id)

            original_date, original_time = interview.scheduled_date, interview.scheduled_time

            def _write():
                try:
                    # Release the old minutes before claiming the new ones
                    interview.occupancy.clear()
                    db.flush()
                    interview.scheduled_date = new_date
                    interview.scheduled_time = new_time
                    interview.status = InterviewStatus.RESCHEDULED
                    interview.reschedule_reason = reason
                    interview.rescheduled_by = rescheduled_by
                    interview.occupancy = build_occupancy(interview)
                    db.commit()
                except IntegrityError as exc:
                    db.rollback()
                    raise occupancy_conflict(
                        self.conflicts, db, participants, new_date, new_time, duration,
                        exclude_interview_id=interview_id,
                    ) from exc
                except Exception:
                    db.rollback()
                    raise

            self.guard.run(WorkloadClass.WRITE, _write)

        self._after_write(interview, "reschedule", [original_date, new_date])
        logger.info(
            f"[Lifecycle] Interview {interview_id} moved from {original_date} {original_time:%H:%M} "
            f"to {new_date} {new_time:%H:%M}"
        )
        if self.notifier is not None:
            self._notify(
                lambda snapshot: self.notifier.interview_rescheduled(snapshot, original_date, original_time),
                interview,
            )
        return interview

    def confirm(self, db: Session, interview_id: int) -> InterviewModel:
        interview = self._load(db, interview_id)
        if interview.status not in _CONFIRMABLE:
            raise InvalidTransitionError(interview_id, interview.status.value, "confirm")

        def _write():
            interview.status = InterviewStatus.CONFIRMED
            commit_or_rollback(db)

        self.guard.run(WorkloadClass.WRITE, _write)
        self._after_write(interview, "confirm", [])
        logger.info(f"[Lifecycle] Interview {interview_id} confirmed")
        return interview

    def complete(self, db: Session, interview_id: int) -> InterviewModel:
        interview = self._load(db, interview_id)
        with self.locks.hold(interview.participant_ids):
            self._reload(db, interview)
            self._require_active(interview, "complete")

            def _write():
                interview.status = InterviewStatus.COMPLETED
                interview.occupancy.clear()
                commit_or_rollback(db)

            self.guard.run(WorkloadClass.WRITE, _write)

        self._after_write(interview, "complete", [interview.scheduled_date])
        logger.info(f"[Lifecycle] Interview {interview_id} completed")
        return interview

    def update_details(self, db: Session, interview_id: int, changes: InterviewUpdate) -> InterviewModel:
        fields = changes.model_dump(exclude_unset=True)
        if not fields:
            raise ValidationError("No fields to update")
        if "mode" in fields and fields["mode"] is None:
            raise ValidationError("mode cannot be null", {"field": "mode"})

        interview = self._load(db, interview_id)
        self._require_active(interview, "update")

        def _write():
            for key, value in fields.items():
                setattr(interview, key, value)
            commit_or_rollback(db)

        self.guard.run(WorkloadClass.WRITE, _write)
        self._after_write(interview, "update", [])
        logger.info(f"[Lifecycle] Interview {interview_id} details updated ({', '.join(sorted(fields))})")
        return interview

    # --- helpers ---

    def _load(self, db: Session, interview_id: int) -> InterviewModel:
        interview = self.guard.run(WorkloadClass.SIMPLE, db.get, InterviewModel, interview_id)
        if interview is None:
            raise NotFoundError("Interview", interview_id)
        return interview

    def _reload(self, db: Session, interview: InterviewModel) -> None:
        # Another writer may have moved this interview while we waited for the locks
        self.guard.run(WorkloadClass.SIMPLE, db.refresh, interview)

    @staticmethod
    def _require_active(interview: InterviewModel, transition: str) -> None:
        if interview.status.is_terminal:
            raise InvalidTransitionError(interview.id, interview.status.value, transition)

    def _after_write(self, interview: InterviewModel, transition: str, dates) -> None:
        invalidate_interview_views(self.cache, interview.participant_ids, dates)
        transition_counter.labels(transition=transition).inc()

    def _notify(self, enqueue, interview: InterviewModel) -> None:
        snapshot = InterviewResponse.model_validate(interview)
        try:
            enqueue(snapshot)
        except RuntimeError as exc:
            logger.error(f"[Lifecycle] Could not queue notifications for interview {interview.id}: {exc}")
