"""
Pytest fixtures for the scheduling engine.

Every test gets its own SQLite file, a fake clock for the breakers, and
in-memory fakes for the application/staff directories and the notification
service.
"""
import os

os.environ.setdefault("LOG_TO_FILE", "false")

from datetime import time

import pytest
from fastapi.testclient import TestClient

from admissions_scheduler.base.config import settings
from admissions_scheduler.base.models import (
    DayOfWeek,
    InterviewMode,
    InterviewStatus,
    InterviewType,
    ScheduleBlockCreate,
    ScheduleKind,
)
from admissions_scheduler.db.models import InterviewModel
from admissions_scheduler.db.session import build_engine, build_session_factory, init_db
from admissions_scheduler.services.cache_service import ReadPathCache
from admissions_scheduler.services.directory_service import ApplicationContact, StaffMember
from admissions_scheduler.services.engine import SchedulingEngine
from admissions_scheduler.services.execution_guard import ExecutionGuard
from admissions_scheduler.services.notification_service import NotificationQueue
from tests.fakes import (
    APPLICATION_ID,
    MONDAY,
    OTHER_ID,
    PRIMARY_ID,
    SECONDARY_ID,
    FakeApplicationDirectory,
    FakeClock,
    FakeStaffDirectory,
    RecordingNotificationClient,
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'scheduler.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def guard(clock):
    return ExecutionGuard.from_settings(settings, clock=clock)


@pytest.fixture
def cache():
    return ReadPathCache(default_ttl=300, max_size=100)


@pytest.fixture
def applications():
    return FakeApplicationDirectory({
        APPLICATION_ID: ApplicationContact(
            application_id=APPLICATION_ID,
            student_name="Sofía Pérez Rojas",
            guardian_name="Carla Rojas",
            guardian_email="carla.rojas@example.com",
        ),
    })


@pytest.fixture
def staff():
    return FakeStaffDirectory({
        PRIMARY_ID: StaffMember(id=PRIMARY_ID, first_name="Ana", last_name="Soto", email="ana.soto@school.cl", role="TEACHER"),
        SECONDARY_ID: StaffMember(id=SECONDARY_ID, first_name="Luis", last_name="Mena", email="luis.mena@school.cl", role="PSYCHOLOGIST"),
        OTHER_ID: StaffMember(id=OTHER_ID, first_name="Marta", last_name="Díaz", email=None, role="CYCLE_DIRECTOR"),
    })


@pytest.fixture
def notification_client():
    return RecordingNotificationClient()


@pytest.fixture
def queue():
    notification_queue = NotificationQueue(max_workers=2, max_attempts=3, backoff_seconds=0)
    yield notification_queue
    notification_queue.shutdown(wait=True)


@pytest.fixture
def engine(guard, cache, applications, staff, notification_client, queue):
    return SchedulingEngine.build(
        guard=guard,
        cache=cache,
        applications=applications,
        staff=staff,
        notification_client=notification_client,
        queue=queue,
    )


@pytest.fixture
def monday_block(engine, db):
    """RECURRING Monday 09:00-10:00 for PRIMARY_ID in 2026."""
    return engine.registry.create_block(db, ScheduleBlockCreate(
        interviewer_id=PRIMARY_ID,
        kind=ScheduleKind.RECURRING,
        day_of_week=DayOfWeek.MONDAY,
        year=2026,
        start_time=time(9, 0),
        end_time=time(10, 0),
    ))


@pytest.fixture
def add_interview(db):
    """Insert an interview row directly, bypassing the booking flow."""
    def _add(**overrides):
        fields = dict(
            application_id=APPLICATION_ID,
            primary_interviewer_id=PRIMARY_ID,
            secondary_interviewer_id=None,
            type=InterviewType.FAMILY,
            scheduled_date=MONDAY,
            scheduled_time=time(9, 20),
            duration_minutes=20,
            mode=InterviewMode.IN_PERSON,
            status=InterviewStatus.SCHEDULED,
        )
        fields.update(overrides)
        interview = InterviewModel(**fields)
        db.add(interview)
        db.commit()
        return interview
    return _add


@pytest.fixture
def client(engine, session_factory):
    from admissions_scheduler.db.session import get_db
    from admissions_scheduler.main import app
    from admissions_scheduler.routers.dependencies import get_engine

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"X-User-Id": "42", "X-User-Role": "COORDINATOR"}
