"""Tests for the notification queue, the notifier fan-out and the HTTP clients."""
from datetime import date, time

import pytest
import requests

from admissions_scheduler.base.models import InterviewMode, InterviewResponse, InterviewStatus, InterviewType
from admissions_scheduler.services.directory_service import (
    HttpApplicationDirectory,
    HttpStaffDirectory,
    StaffMember,
)
from admissions_scheduler.services.notification_service import (
    HttpNotificationClient,
    InterviewNotifier,
    NotificationQueue,
    NotificationTemplate,
    Recipient,
)
from tests.fakes import APPLICATION_ID, MONDAY, OTHER_ID, PRIMARY_ID, SECONDARY_ID, FakeApplicationDirectory


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append(("GET", url, None))
        return self.response

    def post(self, url, json=None, timeout=None):
        self.calls.append(("POST", url, json))
        return self.response


def _snapshot(**overrides):
    fields = dict(
        id=1,
        application_id=APPLICATION_ID,
        primary_interviewer_id=PRIMARY_ID,
        secondary_interviewer_id=SECONDARY_ID,
        type=InterviewType.FAMILY,
        scheduled_date=MONDAY,
        scheduled_time=time(9, 0),
        duration_minutes=20,
        location="Sala 2",
        mode=InterviewMode.IN_PERSON,
        status=InterviewStatus.SCHEDULED,
        notes=None,
        cancellation_reason=None,
        cancelled_by=None,
        cancelled_at=None,
        reschedule_reason=None,
        rescheduled_by=None,
        created_at=None,
        updated_at=None,
    )
    fields.update(overrides)
    return InterviewResponse(**fields)


class RecordingScheduler:
    """Runs retries at once and records the backoff each one asked for."""

    def __init__(self):
        self.delays = []

    def __call__(self, delay, callback):
        self.delays.append(delay)
        callback()


class TestNotificationQueue:
    def test_failed_job_is_retried_with_linear_backoff(self):
        scheduler = RecordingScheduler()
        queue = NotificationQueue(max_workers=1, max_attempts=3, backoff_seconds=0.5, schedule=scheduler)
        attempts = []

        def job():
            attempts.append(1)
            if len(attempts) < 3:
                raise requests.exceptions.Timeout("slow")

        try:
            assert queue.submit("test", job).result(timeout=5) is True
        finally:
            queue.shutdown()

        assert len(attempts) == 3
        assert scheduler.delays == [0.5, 1.0]

    def test_job_is_dropped_after_max_attempts_without_raising(self):
        scheduler = RecordingScheduler()
        queue = NotificationQueue(max_workers=1, max_attempts=2, backoff_seconds=1.0, schedule=scheduler)

        def job():
            raise requests.exceptions.ConnectionError("down")

        try:
            assert queue.submit("test", job).result(timeout=5) is False
            assert queue.wait_idle(5)
        finally:
            queue.shutdown()
        assert scheduler.delays == [1.0]

    def test_backoff_does_not_hold_a_worker(self):
        queue = NotificationQueue(max_workers=1, max_attempts=3, backoff_seconds=30)

        def failing():
            raise requests.exceptions.ConnectionError("down")

        try:
            stuck = queue.submit("failing", failing)
            delivered = queue.submit("healthy", lambda: None)
            assert delivered.result(timeout=5) is True
            assert not stuck.done()
        finally:
            queue.shutdown()

        assert stuck.result(timeout=5) is False
        assert queue.wait_idle(1)

    def test_submit_after_shutdown_raises_and_keeps_queue_idle(self):
        queue = NotificationQueue(max_workers=1, backoff_seconds=0)
        queue.shutdown()

        with pytest.raises(RuntimeError):
            queue.submit("late", lambda: None)
        assert queue.wait_idle(0.1)


class TestInterviewNotifier:
    def test_each_recipient_gets_an_independent_send(self, guard, applications, staff, queue, notification_client):
        notifier = InterviewNotifier(queue, notification_client, guard, applications=applications, staff=staff)

        notifier.interview_scheduled(_snapshot())
        assert queue.wait_idle(5)

        roles = sorted((r.role, r.email) for _, r, _ in notification_client.sent)
        assert roles == [
            ("guardian", "carla.rojas@example.com"),
            ("interviewer", "ana.soto@school.cl"),
            ("interviewer", "luis.mena@school.cl"),
        ]

    def test_one_bad_recipient_does_not_repeat_the_others(self, guard, applications, staff, queue):
        class PickyClient:
            def __init__(self):
                self.calls = []

            def send(self, template, recipient, data):
                self.calls.append(recipient.email)
                if recipient.email == "luis.mena@school.cl":
                    raise requests.exceptions.HTTPError("422 invalid address")

        client = PickyClient()
        notifier = InterviewNotifier(queue, client, guard, applications=applications, staff=staff)

        notifier.interview_cancelled(_snapshot(cancellation_reason="Enfermedad"))
        assert queue.wait_idle(5)

        assert client.calls.count("luis.mena@school.cl") == 3
        assert client.calls.count("carla.rojas@example.com") == 1
        assert client.calls.count("ana.soto@school.cl") == 1

    def test_unreachable_application_service_still_notifies_interviewers(self, guard, staff, queue, notification_client):
        applications = FakeApplicationDirectory(error=requests.exceptions.ConnectionError("refused"))
        notifier = InterviewNotifier(queue, notification_client, guard, applications=applications, staff=staff)

        notifier.interview_scheduled(_snapshot())
        assert queue.wait_idle(5)

        assert {r.role for _, r, _ in notification_client.sent} == {"interviewer"}
        assert {data["studentName"] for _, _, data in notification_client.sent} == {None}

    def test_rescheduled_payload_carries_both_windows(self, guard, applications, staff, queue, notification_client):
        notifier = InterviewNotifier(queue, notification_client, guard, applications=applications, staff=staff)

        notifier.interview_rescheduled(
            _snapshot(scheduled_date=date(2026, 3, 9), scheduled_time=time(11, 0), reschedule_reason="Viaje"),
            MONDAY,
            time(9, 0),
        )
        assert queue.wait_idle(5)

        template, _, data = notification_client.sent[0]
        assert template == NotificationTemplate.INTERVIEW_RESCHEDULED
        assert data["originalDate"] == "2026-03-02"
        assert data["originalTime"] == "09:00"
        assert data["newDate"] == "2026-03-09"
        assert data["newTime"] == "11:00"
        assert data["window"] == "11:00 - 11:20"

    def test_summary_lists_every_interview_once_per_recipient(self, guard, applications, staff, queue, notification_client):
        notifier = InterviewNotifier(queue, notification_client, guard, applications=applications, staff=staff)
        family = _snapshot()
        director = _snapshot(
            id=2, type=InterviewType.CYCLE_DIRECTOR, primary_interviewer_id=OTHER_ID, secondary_interviewer_id=PRIMARY_ID,
            scheduled_time=time(11, 0), duration_minutes=45,
        )

        notifier.interview_summary(APPLICATION_ID, [family, director])
        assert queue.wait_idle(5)

        assert sorted(r.email for _, r, _ in notification_client.sent) == [
            "ana.soto@school.cl", "carla.rojas@example.com", "luis.mena@school.cl",
        ]
        template, _, data = notification_client.sent[0]
        assert template == NotificationTemplate.INTERVIEW_SUMMARY
        assert data["studentName"] == "Sofía Pérez Rojas"
        assert [entry["interviewId"] for entry in data["interviews"]] == [1, 2]
        assert data["interviews"][0]["secondaryInterviewerName"] == "Luis Mena"
        assert data["interviews"][1]["interviewerName"] == "Marta Díaz"
        assert data["interviews"][1]["window"] == "11:00 - 11:45"


class TestHttpClients:
    def test_notification_client_posts_template_and_recipient(self):
        session = FakeSession(FakeResponse(200, {"success": True}))
        client = HttpNotificationClient("http://notifications:8085/", session=session)

        client.send(
            NotificationTemplate.INTERVIEW_SCHEDULED,
            Recipient(email="carla.rojas@example.com", name="Carla Rojas"),
            {"interviewId": 1},
        )

        [(method, url, body)] = session.calls
        assert (method, url) == ("POST", "http://notifications:8085/api/notifications/send")
        assert body == {
            "template": "interview_scheduled",
            "recipientEmail": "carla.rojas@example.com",
            "recipientName": "Carla Rojas",
            "recipientRole": "guardian",
            "data": {"interviewId": 1},
        }

    def test_notification_client_raises_on_server_error(self):
        client = HttpNotificationClient("http://notifications:8085", session=FakeSession(FakeResponse(500)))

        with pytest.raises(requests.exceptions.HTTPError):
            client.send(NotificationTemplate.INTERVIEW_CANCELLED, Recipient(email="a@b.cl"), {})

    def test_staff_directory_unwraps_envelope(self):
        session = FakeSession(FakeResponse(200, {
            "success": True,
            "data": {"id": 7, "firstName": "Ana", "lastName": "Soto", "email": "ana.soto@school.cl", "role": "TEACHER"},
        }))
        directory = HttpStaffDirectory("http://users:8082", session=session)

        member = directory.get_staff(7)

        assert member == StaffMember(id=7, first_name="Ana", last_name="Soto", email="ana.soto@school.cl", role="TEACHER")
        assert member.full_name == "Ana Soto"
        assert session.calls[0][1] == "http://users:8082/api/users/7"

    def test_missing_staff_member_is_none(self):
        directory = HttpStaffDirectory("http://users:8082", session=FakeSession(FakeResponse(404)))
        assert directory.get_staff(7) is None

    def test_application_directory_reads_student_and_guardian(self):
        session = FakeSession(FakeResponse(200, {
            "data": {
                "id": APPLICATION_ID,
                "student": {"fullName": "Sofía Pérez Rojas"},
                "guardian": {"fullName": "Carla Rojas", "email": "carla.rojas@example.com"},
            },
        }))
        directory = HttpApplicationDirectory("http://applications:8083", session=session)

        contact = directory.get_application(APPLICATION_ID)

        assert contact.student_name == "Sofía Pérez Rojas"
        assert (contact.guardian_name, contact.guardian_email) == ("Carla Rojas", "carla.rojas@example.com")

    def test_application_without_guardian_has_no_email(self):
        session = FakeSession(FakeResponse(200, {"id": APPLICATION_ID, "student": {"fullName": "Tomás Ruiz"}}))
        contact = HttpApplicationDirectory("http://applications:8083", session=session).get_application(APPLICATION_ID)

        assert contact.guardian_email is None
        assert contact.student_name == "Tomás Ruiz"
