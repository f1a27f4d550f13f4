# admissions_scheduler/services/schedule_registry.py

import logging
from datetime import date, time
from typing import List, Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from admissions_scheduler.base.errors import NotFoundError, ValidationError
from admissions_scheduler.base.models import (
    DayOfWeek,
    InterviewerSummary,
    RecurringBlockEntry,
    ScheduleBlockCreate,
    ScheduleBlockUpdate,
    ScheduleKind,
)
from admissions_scheduler.db.models import ScheduleBlockModel
from admissions_scheduler.services.cache_service import ReadPathCache
from admissions_scheduler.services.directory_service import lookup_or_none
from admissions_scheduler.services.execution_guard import ExecutionGuard, WorkloadClass

logger = logging.getLogger("scheduler.schedule_registry")


def validate_block_shape(
    kind: ScheduleKind,
    day_of_week: Optional[DayOfWeek],
    specific_date: Optional[date],
    start_time: time,
    end_time: time,
) -> None:
    if start_time >= end_time:
        raise ValidationError(
            "startTime must be before endTime",
            {"startTime": start_time.strftime("%H:%M"), "endTime": end_time.strftime("%H:%M")},
        )
    if kind == ScheduleKind.RECURRING and (day_of_week is None or specific_date is not None):
        raise ValidationError("RECURRING blocks require dayOfWeek and no specificDate", {"kind": kind.value})
    if kind == ScheduleKind.SPECIFIC_DATE and (specific_date is None or day_of_week is not None):
        raise ValidationError("SPECIFIC_DATE blocks require specificDate and no dayOfWeek", {"kind": kind.value})


class ScheduleRegistry:
    """
    Interviewer availability blocks: weekly recurring templates plus one-off dates.
    Every write invalidates the interviewer's slot cache and the interviewer listings.
    """

    def __init__(self, guard: ExecutionGuard, cache: ReadPathCache, staff_directory=None):
        self.guard = guard
        self.cache = cache
        self.staff_directory = staff_directory

    # --- reads ---

    def get_blocks_for(self, db: Session, interviewer_id: int, year: int, on_date: date) -> List[ScheduleBlockModel]:
        weekday = DayOfWeek.from_date(on_date)

        def _query():
            return (
                db.query(ScheduleBlockModel)
                .filter(
                    ScheduleBlockModel.interviewer_id == interviewer_id,
                    ScheduleBlockModel.year == year,
                    ScheduleBlockModel.active.is_(True),
                    or_(
                        and_(
                            ScheduleBlockModel.kind == ScheduleKind.RECURRING,
                            ScheduleBlockModel.day_of_week == weekday,
                        ),
                        and_(
                            ScheduleBlockModel.kind == ScheduleKind.SPECIFIC_DATE,
                            ScheduleBlockModel.specific_date == on_date,
                        ),
                    ),
                )
                .order_by(ScheduleBlockModel.start_time.asc())
                .all()
            )

        return self.guard.run(WorkloadClass.SIMPLE, _query)

    def list_for_interviewer(self, db: Session, interviewer_id: int, year: Optional[int] = None) -> List[ScheduleBlockModel]:
        def _query():
            query = db.query(ScheduleBlockModel).filter(
                ScheduleBlockModel.interviewer_id == interviewer_id,
                ScheduleBlockModel.active.is_(True),
            )
            if year is not None:
                query = query.filter(ScheduleBlockModel.year == year)
            return query.order_by(
                ScheduleBlockModel.kind.asc(),
                ScheduleBlockModel.day_of_week.asc(),
                ScheduleBlockModel.specific_date.asc(),
                ScheduleBlockModel.start_time.asc(),
            ).all()

        blocks = self.guard.run(WorkloadClass.SIMPLE, _query)
        logger.info(f"[Schedules] {len(blocks)} active blocks for interviewer {interviewer_id} (year={year or 'all'})")
        return blocks

    def get_block(self, db: Session, block_id: int) -> ScheduleBlockModel:
        block = self.guard.run(WorkloadClass.SIMPLE, db.get, ScheduleBlockModel, block_id)
        if block is None:
            raise NotFoundError("ScheduleBlock", block_id)
        return block

    def interviewers_with_schedules(self, db: Session, year: int) -> List[InterviewerSummary]:
        return self.cache.get_or_load(
            f"interviewers:list:{year}",
            lambda: self._load_interviewers(db, year),
        )

    def _load_interviewers(self, db: Session, year: int) -> List[InterviewerSummary]:
        def _query():
            return (
                db.query(ScheduleBlockModel.interviewer_id, func.count(ScheduleBlockModel.id))
                .filter(ScheduleBlockModel.year == year, ScheduleBlockModel.active.is_(True))
                .group_by(ScheduleBlockModel.interviewer_id)
                .order_by(ScheduleBlockModel.interviewer_id.asc())
                .all()
            )

        rows = self.guard.run(WorkloadClass.MEDIUM, _query)
        summaries = []
        for interviewer_id, schedule_count in rows:
            staff = None
            if self.staff_directory is not None:
                staff = lookup_or_none(self.guard, self.staff_directory.get_staff, interviewer_id, "Staff member")
            summaries.append(InterviewerSummary(
                id=interviewer_id,
                full_name=staff.full_name if staff else None,
                email=staff.email if staff else None,
                role=staff.role if staff else None,
                schedule_count=schedule_count,
            ))
        logger.info(f"[Schedules] {len(summaries)} interviewers with schedules in {year}")
        return summaries

    # --- writes ---

    def create_block(self, db: Session, data: ScheduleBlockCreate) -> ScheduleBlockModel:
        validate_block_shape(data.kind, data.day_of_week, data.specific_date, data.start_time, data.end_time)
        year = data.year
        if year is None:
            if data.specific_date is None:
                raise ValidationError("year is required for RECURRING blocks", {"field": "year"})
            year = data.specific_date.year

        block = ScheduleBlockModel(
            interviewer_id=data.interviewer_id,
            kind=data.kind,
            day_of_week=data.day_of_week,
            specific_date=data.specific_date,
            year=year,
            start_time=data.start_time,
            end_time=data.end_time,
            notes=data.notes,
            active=True,
        )
        self._commit(db, [block])
        self._invalidate(data.interviewer_id)
        logger.info(f"[Schedules] Created {data.kind.value} block {block.id} for interviewer {data.interviewer_id}")
        return block

    def create_recurring(
        self, db: Session, interviewer_id: int, year: int, entries: List[RecurringBlockEntry]
    ) -> List[ScheduleBlockModel]:
        if not entries:
            raise ValidationError("At least one recurring block is required", {"field": "entries"})
        for entry in entries:
            validate_block_shape(ScheduleKind.RECURRING, entry.day_of_week, None, entry.start_time, entry.end_time)

        blocks = [
            ScheduleBlockModel(
                interviewer_id=interviewer_id,
                kind=ScheduleKind.RECURRING,
                day_of_week=entry.day_of_week,
                year=year,
                start_time=entry.start_time,
                end_time=entry.end_time,
                notes=entry.notes,
                active=True,
            )
            for entry in entries
        ]
        self._commit(db, blocks)
        self._invalidate(interviewer_id)
        logger.info(f"[Schedules] Created {len(blocks)} recurring blocks for interviewer {interviewer_id} in {year}")
        return blocks

    def update_block(self, db: Session, block_id: int, changes: ScheduleBlockUpdate) -> ScheduleBlockModel:
        fields = changes.model_dump(exclude_unset=True)
        if not fields:
            raise ValidationError("No fields to update")

        block = self.get_block(db, block_id)
        merged = {
            "kind": block.kind,
            "day_of_week": block.day_of_week,
            "specific_date": block.specific_date,
            "start_time": block.start_time,
            "end_time": block.end_time,
        }
        for key in ("kind", "start_time", "end_time", "year", "active"):
            if key in fields and fields[key] is None:
                raise ValidationError(f"{key} cannot be null", {"field": key})
        merged.update({k: v for k, v in fields.items() if k in merged})
        # Switching kind clears the field the new kind does not use
        if "kind" in fields and merged["kind"] == ScheduleKind.RECURRING and "specific_date" not in fields:
            merged["specific_date"] = None
        if "kind" in fields and merged["kind"] == ScheduleKind.SPECIFIC_DATE and "day_of_week" not in fields:
            merged["day_of_week"] = None
        validate_block_shape(**merged)

        for key, value in merged.items():
            setattr(block, key, value)
        for key in ("year", "notes", "active"):
            if key in fields:
                setattr(block, key, fields[key])

        self._commit(db, [block])
        self._invalidate(block.interviewer_id)
        logger.info(f"[Schedules] Updated block {block_id} ({', '.join(sorted(fields))})")
        return block

    def deactivate_block(self, db: Session, block_id: int) -> ScheduleBlockModel:
        block = self.get_block(db, block_id)
        block.active = False
        self._commit(db, [block])
        self._invalidate(block.interviewer_id)
        logger.info(f"[Schedules] Deactivated block {block_id}")
        return block

    def _commit(self, db: Session, blocks: List[ScheduleBlockModel]) -> None:
        def _write():
            try:
                db.add_all(blocks)
                db.commit()
            except Exception:
                db.rollback()
                raise
            for block in blocks:
                db.refresh(block)

        self.guard.run(WorkloadClass.WRITE, _write)

    def _invalidate(self, interviewer_id: int) -> None:
        self.cache.invalidate(f"slots:{interviewer_id}:*")
        self.cache.invalidate("interviewers:*")
