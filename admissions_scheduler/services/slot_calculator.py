# admissions_scheduler/services/slot_calculator.py

import logging
from dataclasses import dataclass, field
from datetime import date, time
from typing import List

from sqlalchemy.orm import Session

from admissions_scheduler.services.cache_service import ReadPathCache
from admissions_scheduler.services.conflict_index import ConflictIndex, windows_overlap
from admissions_scheduler.services.schedule_registry import ScheduleRegistry
from admissions_scheduler.utils.time_utils import from_minutes, require_bookable_duration, to_minutes

logger = logging.getLogger("scheduler.slots")


@dataclass(frozen=True)
class SlotResult:
    slots: List[time] = field(default_factory=list)
    has_availability: bool = False
    has_schedule: bool = False


class SlotCalculator:
    """
    Candidate start times for one interviewer, date and duration.

    Each matching block is walked from its start to `end - duration` in steps
    of `duration`; a candidate survives if it overlaps no blocking interview.
    Slots from overlapping blocks are merged into one sorted, de-duplicated list.
    """

    def __init__(self, registry: ScheduleRegistry, conflicts: ConflictIndex, cache: ReadPathCache):
        self.registry = registry
        self.conflicts = conflicts
        self.cache = cache

    def compute_slots(self, db: Session, interviewer_id: int, on_date: date, duration_minutes: int) -> SlotResult:
        require_bookable_duration(duration_minutes)
        key = f"slots:{interviewer_id}:{on_date.isoformat()}:{duration_minutes}"
        return self.cache.get_or_load(key, lambda: self._compute(db, interviewer_id, on_date, duration_minutes))

    def _compute(self, db: Session, interviewer_id: int, on_date: date, duration_minutes: int) -> SlotResult:
        blocks = self.registry.get_blocks_for(db, interviewer_id, on_date.year, on_date)
        if not blocks:
            logger.info(f"[Slots] Interviewer {interviewer_id} has no schedule on {on_date}")
            return SlotResult()

        busy = self.conflicts.get_blocking_interviews(db, interviewer_id, on_date)
        candidates = set()
        for block in blocks:
            cursor = to_minutes(block.start_time)
            last_start = to_minutes(block.end_time) - duration_minutes
            while cursor <= last_start:
                if not any(
                    windows_overlap(cursor, duration_minutes, window.start_minute, window.duration_minutes)
                    for window in busy
                ):
                    candidates.add(cursor)
                cursor += duration_minutes

        slots = [from_minutes(minute) for minute in sorted(candidates)]
        logger.info(
            f"[Slots] {len(slots)} free slots for interviewer {interviewer_id} on {on_date} "
            f"({duration_minutes} min, {len(blocks)} blocks, {len(busy)} busy)"
        )
        return SlotResult(slots=slots, has_availability=bool(slots), has_schedule=True)
