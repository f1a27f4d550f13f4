"""Tests for interview summary dispatch and its status."""
from datetime import time

import pytest

from admissions_scheduler.base.errors import DependencyFailure, NotFoundError
from admissions_scheduler.base.models import InterviewType
from admissions_scheduler.db.models import SummaryDispatchModel
from admissions_scheduler.services.engine import SchedulingEngine
from admissions_scheduler.services.notification_service import NotificationTemplate
from tests.fakes import APPLICATION_ID, make_request


@pytest.fixture
def two_interviews(engine, db, queue, notification_client):
    family = engine.booking.book(db, make_request())
    student = engine.booking.book(db, make_request(
        type=InterviewType.STUDENT, secondary_interviewer_id=None, scheduled_time=time(11, 0),
    ))
    assert queue.wait_idle(5)
    notification_client.sent.clear()
    return family, student


def _summaries(notification_client):
    return [entry for entry in notification_client.sent if entry[0] == NotificationTemplate.INTERVIEW_SUMMARY]


class TestSendSummary:
    def test_summary_goes_to_guardian_and_every_interviewer(
        self, engine, db, queue, notification_client, two_interviews
    ):
        family, student = two_interviews

        dispatch = engine.summaries.send_summary(db, APPLICATION_ID, requested_by=42)
        assert queue.wait_idle(5)

        assert dispatch.interview_count == 2
        assert dispatch.requested_by == 42
        sent = _summaries(notification_client)
        assert sorted(r.email for _, r, _ in sent) == [
            "ana.soto@school.cl", "carla.rojas@example.com", "luis.mena@school.cl",
        ]
        data = sent[0][2]
        assert [entry["interviewId"] for entry in data["interviews"]] == [family.id, student.id]
        assert data["interviews"][1]["secondaryInterviewerName"] is None

    def test_application_without_interviews_is_not_found(self, engine, db):
        with pytest.raises(NotFoundError):
            engine.summaries.send_summary(db, 999)
        assert db.query(SummaryDispatchModel).count() == 0

    def test_engine_without_notifications_cannot_send(self, guard, cache, db, two_interviews):
        bare = SchedulingEngine.build(guard=guard, cache=cache)

        with pytest.raises(DependencyFailure):
            bare.summaries.send_summary(db, APPLICATION_ID)
        assert db.query(SummaryDispatchModel).count() == 0


class TestSummaryStatus:
    def test_nothing_sent_yet(self, engine, db, two_interviews):
        status = engine.summaries.summary_status(db, APPLICATION_ID)

        assert status.summary_sent is False
        assert status.can_resend is True
        assert status.interview_count == 2

    def test_sent_and_unchanged_cannot_be_resent(self, engine, db, two_interviews):
        dispatch = engine.summaries.send_summary(db, APPLICATION_ID)

        status = engine.summaries.summary_status(db, APPLICATION_ID)
        assert status.summary_sent is True
        assert status.sent_at == dispatch.sent_at
        assert status.can_resend is False
        assert status.interviews_modified_after_send is False

    def test_change_after_sending_allows_resend(self, engine, db, two_interviews):
        family, _ = two_interviews
        engine.summaries.send_summary(db, APPLICATION_ID)

        engine.lifecycle.cancel(db, family.id, "Familia no puede asistir")

        status = engine.summaries.summary_status(db, APPLICATION_ID)
        assert status.interviews_modified_after_send is True
        assert status.can_resend is True
