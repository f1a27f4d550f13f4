# admissions_scheduler/services/calendar_service.py

import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from admissions_scheduler.base.errors import NotFoundError, ValidationError
from admissions_scheduler.base.models import CalendarEntry, InterviewPage, InterviewResponse
from admissions_scheduler.db.filters import InterviewFilter, build_interview_predicates, filter_cache_suffix
from admissions_scheduler.db.models import InterviewModel
from admissions_scheduler.services.cache_service import ReadPathCache
from admissions_scheduler.services.directory_service import lookup_or_none
from admissions_scheduler.services.execution_guard import ExecutionGuard, WorkloadClass
from admissions_scheduler.utils.time_utils import format_hhmm, to_minutes

logger = logging.getLogger("scheduler.calendar")

MAX_PAGE_SIZE = 100


class CalendarService:
    """Read side: calendar projections and interview listings, both cached."""

    def __init__(self, guard: ExecutionGuard, cache: ReadPathCache, applications=None, staff=None):
        self.guard = guard
        self.cache = cache
        self.applications = applications
        self.staff = staff

    def calendar(self, db: Session, start_date: date, end_date: date) -> List[CalendarEntry]:
        if end_date < start_date:
            raise ValidationError(
                "endDate must not be before startDate",
                {"startDate": start_date.isoformat(), "endDate": end_date.isoformat()},
            )
        return self.cache.get_or_load(
            f"calendar:{start_date.isoformat()}:{end_date.isoformat()}",
            lambda: self._load_calendar(db, start_date, end_date),
        )

    def _load_calendar(self, db: Session, start_date: date, end_date: date) -> List[CalendarEntry]:
        def _query():
            return (
                db.query(InterviewModel)
                .filter(InterviewModel.scheduled_date >= start_date, InterviewModel.scheduled_date <= end_date)
                .order_by(InterviewModel.scheduled_date.asc(), InterviewModel.scheduled_time.asc())
                .all()
            )

        interviews = self.guard.run(WorkloadClass.MEDIUM, _query)
        students: Dict[int, Optional[str]] = {}
        staff_names: Dict[int, Optional[str]] = {}
        entries = []
        for interview in interviews:
            end_minute = to_minutes(interview.scheduled_time) + interview.duration_minutes
            entries.append(CalendarEntry(
                id=interview.id,
                application_id=interview.application_id,
                student_name=self._student_name(interview.application_id, students),
                primary_interviewer_name=self._staff_name(interview.primary_interviewer_id, staff_names),
                secondary_interviewer_name=self._staff_name(interview.secondary_interviewer_id, staff_names),
                type=interview.type,
                status=interview.status,
                mode=interview.mode,
                location=interview.location,
                scheduled_date=interview.scheduled_date,
                scheduled_time=format_hhmm(interview.scheduled_time),
                end_time=f"{end_minute // 60:02d}:{end_minute % 60:02d}",
                duration_minutes=interview.duration_minutes,
            ))
        logger.info(f"[Calendar] {len(entries)} interviews between {start_date} and {end_date}")
        return entries

    def _student_name(self, application_id: int, memo: Dict[int, Optional[str]]) -> Optional[str]:
        if self.applications is None:
            return None
        if application_id not in memo:
            contact = lookup_or_none(self.guard, self.applications.get_application, application_id, "Application")
            memo[application_id] = contact.student_name if contact else None
        return memo[application_id]

    def _staff_name(self, user_id: Optional[int], memo: Dict[int, Optional[str]]) -> Optional[str]:
        if user_id is None or self.staff is None:
            return None
        if user_id not in memo:
            member = lookup_or_none(self.guard, self.staff.get_staff, user_id, "Staff member")
            memo[user_id] = member.full_name if member else None
        return memo[user_id]

    # --- interview listings ---

    def list_interviews(
        self,
        db: Session,
        filters: Mapping[InterviewFilter, Optional[Any]],
        page: int = 0,
        limit: int = 10,
    ) -> InterviewPage:
        if page < 0:
            raise ValidationError("page must be zero or positive", {"field": "page", "value": page})
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", {"field": "limit", "value": limit})

        key = f"interviews:list:{filter_cache_suffix(filters)}:page{page}:limit{limit}"
        return self.cache.get_or_load(key, lambda: self._load_page(db, filters, page, limit))

    def _load_page(
        self, db: Session, filters: Mapping[InterviewFilter, Optional[Any]], page: int, limit: int
    ) -> InterviewPage:
        predicates = build_interview_predicates(filters)

        def _query():
            total = db.query(func.count(InterviewModel.id)).filter(*predicates).scalar()
            rows = (
                db.query(InterviewModel)
                .filter(*predicates)
                .order_by(InterviewModel.scheduled_date.desc(), InterviewModel.scheduled_time.desc())
                .offset(page * limit)
                .limit(limit)
                .all()
            )
            return total, rows

        total, rows = self.guard.run(WorkloadClass.MEDIUM, _query)
        logger.info(f"[Interviews] Page {page} ({len(rows)} of {total}) for {filter_cache_suffix(filters)}")
        return InterviewPage(
            data=[InterviewResponse.model_validate(row) for row in rows],
            total=total,
            page=page,
            limit=limit,
        )

    def get_interview(self, db: Session, interview_id: int) -> InterviewModel:
        interview = self.guard.run(WorkloadClass.SIMPLE, db.get, InterviewModel, interview_id)
        if interview is None:
            raise NotFoundError("Interview", interview_id)
        return interview

    def interviews_for_application(self, db: Session, application_id: int) -> List[InterviewModel]:
        def _query():
            return (
                db.query(InterviewModel)
                .filter(InterviewModel.application_id == application_id)
                .order_by(InterviewModel.scheduled_date.asc(), InterviewModel.scheduled_time.asc())
                .all()
            )

        return self.guard.run(WorkloadClass.SIMPLE, _query)
