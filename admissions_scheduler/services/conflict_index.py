# admissions_scheduler/services/conflict_index.py

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, time
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from admissions_scheduler.base.models import BLOCKING_STATUSES
from admissions_scheduler.db.models import InterviewModel
from admissions_scheduler.services.execution_guard import ExecutionGuard, WorkloadClass
from admissions_scheduler.utils.time_utils import to_minutes


@dataclass(frozen=True)
class BusyWindow:
    start: time
    duration_minutes: int
    interview_id: int

    @property
    def start_minute(self) -> int:
        return to_minutes(self.start)

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes


def windows_overlap(start_a: int, duration_a: int, start_b: int, duration_b: int) -> bool:
    """Half-open intervals in minutes; touching endpoints do not overlap."""
    return start_a < start_b + duration_b and start_b < start_a + duration_a


class ConflictIndex:
    """Answers 'is this interviewer busy then?' from blocking interviews only."""

    def __init__(self, guard: ExecutionGuard):
        self.guard = guard

    def get_blocking_interviews(
        self,
        db: Session,
        interviewer_id: int,
        on_date: date,
        exclude_interview_id: Optional[int] = None,
    ) -> List[BusyWindow]:
        def _query():
            query = db.query(
                InterviewModel.id,
                InterviewModel.scheduled_time,
                InterviewModel.duration_minutes,
            ).filter(
                InterviewModel.scheduled_date == on_date,
                InterviewModel.status.in_(BLOCKING_STATUSES),
                or_(
                    InterviewModel.primary_interviewer_id == interviewer_id,
                    InterviewModel.secondary_interviewer_id == interviewer_id,
                ),
            )
            if exclude_interview_id is not None:
                query = query.filter(InterviewModel.id != exclude_interview_id)
            return query.order_by(InterviewModel.scheduled_time.asc()).all()

        rows = self.guard.run(WorkloadClass.SIMPLE, _query)
        return [
            BusyWindow(start=scheduled_time, duration_minutes=duration, interview_id=interview_id)
            for interview_id, scheduled_time, duration in rows
        ]

    def find_conflict(
        self,
        db: Session,
        interviewer_id: int,
        on_date: date,
        start: time,
        duration_minutes: int,
        exclude_interview_id: Optional[int] = None,
    ) -> Optional[BusyWindow]:
        requested = to_minutes(start)
        for window in self.get_blocking_interviews(db, interviewer_id, on_date, exclude_interview_id):
            if windows_overlap(requested, duration_minutes, window.start_minute, window.duration_minutes):
                return window
        return None

    def first_conflict(
        self,
        db: Session,
        interviewer_ids: Iterable[int],
        on_date: date,
        start: time,
        duration_minutes: int,
        exclude_interview_id: Optional[int] = None,
    ) -> Optional[Tuple[int, BusyWindow]]:
        """The first participant, in the given order, who is busy during the window."""
        for interviewer_id in interviewer_ids:
            clash = self.find_conflict(db, interviewer_id, on_date, start, duration_minutes, exclude_interview_id)
            if clash is not None:
                return interviewer_id, clash
        return None


class InterviewerLockRegistry:
    """
    In-process write locks, one per interviewer. The availability check and
    the commit that follows it run while every participant's lock is held.
    Locks are always taken in ascending interviewer id order. Writers in other
    processes are stopped by the per-minute occupancy rows instead.
    """

    def __init__(self):
        self._locks: Dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, interviewer_id: int) -> threading.Lock:
        with self._registry_lock:
            return self._locks.setdefault(interviewer_id, threading.Lock())

    @contextmanager
    def hold(self, interviewer_ids: Iterable[int]) -> Iterator[None]:
        locks = [self._lock_for(i) for i in sorted({i for i in interviewer_ids if i is not None})]
        for lock in locks:
            lock.acquire()
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()
