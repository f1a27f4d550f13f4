"""Tests for slot computation over schedule blocks and blocking interviews."""
from datetime import date, time

import pytest

from admissions_scheduler.base.errors import DependencyFailure, GuardRejection, ValidationError
from admissions_scheduler.base.models import DayOfWeek, InterviewStatus, ScheduleBlockCreate, ScheduleKind
from admissions_scheduler.services.execution_guard import WorkloadClass
from admissions_scheduler.utils.time_utils import to_minutes
from tests.fakes import MONDAY, PRIMARY_ID, make_request


def _times(result):
    return [slot.strftime("%H:%M") for slot in result.slots]


class TestComputeSlots:
    def test_recurring_block_without_interviews(self, engine, db, monday_block):
        result = engine.slots.compute_slots(db, PRIMARY_ID, MONDAY, 20)

        assert _times(result) == ["09:00", "09:20", "09:40"]
        assert result.has_availability is True

    def test_scheduled_interview_removes_overlapping_slot(self, engine, db, monday_block, add_interview):
        add_interview(scheduled_time=time(9, 20), duration_minutes=20)

        result = engine.slots.compute_slots(db, PRIMARY_ID, MONDAY, 20)

        assert _times(result) == ["09:00", "09:40"]

    def test_cancelled_interview_does_not_block(self, engine, db, monday_block, add_interview):
        add_interview(status=InterviewStatus.CANCELLED)

        result = engine.slots.compute_slots(db, PRIMARY_ID, MONDAY, 20)

        assert _times(result) == ["09:00", "09:20", "09:40"]

    def test_block_shorter_than_duration_contributes_nothing(self, engine, db, monday_block):
        result = engine.slots.compute_slots(db, PRIMARY_ID, MONDAY, 90)

        assert result.slots == []
        assert result.has_availability is False
        assert result.has_schedule is True

    def test_no_matching_block_is_not_an_error(self, engine, db, monday_block):
        tuesday = date(2026, 3, 3)
        result = engine.slots.compute_slots(db, PRIMARY_ID, tuesday, 20)

        assert result.slots == []
        assert result.has_availability is False
        assert result.has_schedule is False

    def test_recurring_block_only_applies_to_its_year(self, engine, db, monday_block):
        monday_2027 = date(2027, 3, 1)
        assert engine.slots.compute_slots(db, PRIMARY_ID, monday_2027, 20).slots == []

    def test_overlapping_blocks_produce_sorted_unique_slots(self, engine, db, monday_block):
        engine.registry.create_block(db, ScheduleBlockCreate(
            interviewer_id=PRIMARY_ID,
            kind=ScheduleKind.SPECIFIC_DATE,
            specific_date=MONDAY,
            start_time=time(9, 30),
            end_time=time(10, 30),
        ))

        result = engine.slots.compute_slots(db, PRIMARY_ID, MONDAY, 30)

        assert _times(result) == ["09:00", "09:30", "10:00"]

    def test_every_slot_lies_inside_a_block(self, engine, db, monday_block):
        engine.registry.create_block(db, ScheduleBlockCreate(
            interviewer_id=PRIMARY_ID,
            kind=ScheduleKind.RECURRING,
            day_of_week=DayOfWeek.MONDAY,
            year=2026,
            start_time=time(14, 15),
            end_time=time(16, 0),
        ))
        blocks = engine.registry.get_blocks_for(db, PRIMARY_ID, 2026, MONDAY)

        for duration in (15, 20, 25, 45, 60):
            for slot in engine.slots.compute_slots(db, PRIMARY_ID, MONDAY, duration).slots:
                start = to_minutes(slot)
                assert any(
                    to_minutes(b.start_time) <= start and start + duration <= to_minutes(b.end_time)
                    for b in blocks
                )

    @pytest.mark.parametrize("duration", [0, -20, 10, 14, 181, 200])
    def test_duration_a_booking_would_reject_is_rejected(self, engine, db, duration):
        with pytest.raises(ValidationError):
            engine.slots.compute_slots(db, PRIMARY_ID, MONDAY, duration)

    def test_results_are_served_from_cache(self, engine, db, monday_block, add_interview):
        first = engine.slots.compute_slots(db, PRIMARY_ID, MONDAY, 20)
        # Written behind the engine's back, so nothing invalidates the cached entry
        add_interview(scheduled_time=time(9, 0))

        assert engine.slots.compute_slots(db, PRIMARY_ID, MONDAY, 20) == first
        assert engine.cache.stats()["hits"] >= 1

    def test_open_breaker_is_not_reported_as_no_availability(self, engine, db, monday_block):
        breaker = engine.guard.breaker(WorkloadClass.SIMPLE)
        for _ in range(breaker.options.volume_threshold):
            with pytest.raises(DependencyFailure):
                breaker.call(lambda: 1 / 0)

        with pytest.raises(GuardRejection):
            engine.slots.compute_slots(db, PRIMARY_ID, MONDAY, 20)

    @pytest.mark.parametrize("duration", [15, 180])
    def test_boundary_durations_are_bookable(self, engine, db, duration):
        engine.registry.create_block(db, ScheduleBlockCreate(
            interviewer_id=PRIMARY_ID,
            kind=ScheduleKind.RECURRING,
            day_of_week=DayOfWeek.MONDAY,
            year=2026,
            start_time=time(9, 0),
            end_time=time(12, 0),
        ))
        first = engine.slots.compute_slots(db, PRIMARY_ID, MONDAY, duration).slots[0]

        booked = engine.booking.book(db, make_request(
            scheduled_time=first, duration_minutes=duration, secondary_interviewer_id=None,
        ))
        assert booked.scheduled_time == time(9, 0)


def test_booking_committed_during_a_slot_read_is_not_cached(engine, db, session_factory, monday_block, monkeypatch):
    original = engine.conflicts.get_blocking_interviews
    interleaved = []

    def read_then_book(*args, **kwargs):
        rows = original(*args, **kwargs)
        if not interleaved:
            interleaved.append(True)
            other = session_factory()
            try:
                engine.booking.book(other, make_request(scheduled_time=time(9, 0), secondary_interviewer_id=None))
            finally:
                other.close()
        return rows

    monkeypatch.setattr(engine.conflicts, "get_blocking_interviews", read_then_book)

    during = engine.slots.compute_slots(db, PRIMARY_ID, MONDAY, 20)
    assert time(9, 0) in during.slots

    after = engine.slots.compute_slots(db, PRIMARY_ID, MONDAY, 20)
    assert _times(after) == ["09:20", "09:40"]
