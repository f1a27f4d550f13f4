# admissions_scheduler/services/notification_service.py

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, time as dt_time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import requests

from admissions_scheduler.base.metrics import notification_counter
from admissions_scheduler.base.models import InterviewResponse
from admissions_scheduler.services.directory_service import ApplicationContact, StaffMember, lookup_or_none
from admissions_scheduler.services.execution_guard import ExecutionGuard, WorkloadClass
from admissions_scheduler.utils.time_utils import format_hhmm, format_window

logger = logging.getLogger("notifications.dispatch")


class NotificationTemplate(str, Enum):
    INTERVIEW_SCHEDULED = "interview_scheduled"
    INTERVIEW_CANCELLED = "interview_cancelled"
    INTERVIEW_RESCHEDULED = "interview_rescheduled"
    INTERVIEW_SUMMARY = "interview_summary"


@dataclass(frozen=True)
class Recipient:
    email: str
    name: Optional[str] = None
    role: str = "guardian"


class HttpNotificationClient:
    """Client for the notification service; templates are rendered on its side."""

    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, template: NotificationTemplate, recipient: Recipient, data: Dict[str, Any]) -> None:
        payload = {
            "template": template.value,
            "recipientEmail": recipient.email,
            "recipientName": recipient.name,
            "recipientRole": recipient.role,
            "data": data,
        }
        response = self.session.post(f"{self.base_url}/api/notifications/send", json=payload, timeout=self.timeout)
        response.raise_for_status()
        logger.info(f"[Notify] {template.value} sent to {recipient.email}")


class NotificationQueue:
    """
    Background worker pool for notification jobs. A failed job is retried up
    to `max_attempts` times with linear backoff; the wait runs on a timer, so
    workers keep draining other jobs meanwhile. The final failure is logged
    and counted, never raised to whoever submitted the job.

    `submit()` returns a Future that resolves to True once the job succeeds
    and False once it is dropped.
    """

    def __init__(
        self,
        max_workers: int = 2,
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
        schedule: Optional[Callable[[float, Callable[[], None]], None]] = None,
    ):
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._schedule = schedule or self._start_timer
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")
        self._pending = 0
        self._closed = False
        self._timers: Dict[threading.Timer, Callable[[], None]] = {}
        self._idle = threading.Condition()

    def submit(self, name: str, job: Callable[[], None]) -> Future:
        outcome: Future = Future()
        with self._idle:
            self._pending += 1
        try:
            self._executor.submit(self._attempt, name, job, 1, outcome)
        except RuntimeError:
            self._done()
            raise
        return outcome

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every submitted job (including jobs they submit) has finished."""
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        with self._idle:
            self._closed = True
            waiting = list(self._timers.items())
            self._timers.clear()
        for timer, _ in waiting:
            timer.cancel()
        self._executor.shutdown(wait=wait)
        # Retries still waiting on a timer are dropped
        for _, retry in waiting:
            retry()

    def _attempt(self, name: str, job: Callable[[], None], attempt: int, outcome: Future) -> None:
        try:
            job()
        except Exception as exc:
            logger.warning(f"[Notify] {name} attempt {attempt}/{self.max_attempts} failed: {exc}")
            if attempt < self.max_attempts and not self._closed:
                notification_counter.labels(outcome="retried").inc()
                self._schedule(
                    self.backoff_seconds * attempt,
                    lambda: self._retry(name, job, attempt + 1, outcome),
                )
                return
            logger.error(f"❌ [Notify] {name} dropped after {attempt} attempts")
            notification_counter.labels(outcome="failed").inc()
            self._finish(outcome, False)
            return
        notification_counter.labels(outcome="succeeded").inc()
        self._finish(outcome, True)

    def _retry(self, name: str, job: Callable[[], None], attempt: int, outcome: Future) -> None:
        try:
            self._executor.submit(self._attempt, name, job, attempt, outcome)
        except RuntimeError:
            logger.error(f"❌ [Notify] {name} dropped: queue shut down before attempt {attempt}")
            notification_counter.labels(outcome="failed").inc()
            self._finish(outcome, False)

    def _start_timer(self, delay: float, callback: Callable[[], None]) -> None:
        def fire():
            with self._idle:
                if self._timers.pop(timer, None) is None:
                    return
            callback()

        timer = threading.Timer(delay, fire)
        timer.daemon = True
        with self._idle:
            self._timers[timer] = callback
        timer.start()

    def _finish(self, outcome: Future, delivered: bool) -> None:
        outcome.set_result(delivered)
        self._done()

    def _done(self) -> None:
        with self._idle:
            self._pending -= 1
            if self._pending == 0:
                self._idle.notify_all()


class InterviewNotifier:
    """
    Turns committed interview changes into notification jobs.

    Recipients (guardian + each participating interviewer) are resolved inside
    the background job, then every recipient gets an independent send job so a
    bad address never blocks or repeats the others.
    """

    def __init__(
        self,
        queue: NotificationQueue,
        client,
        guard: ExecutionGuard,
        applications=None,
        staff=None,
    ):
        self.queue = queue
        self.client = client
        self.guard = guard
        self.applications = applications
        self.staff = staff

    def interview_scheduled(self, interview: InterviewResponse) -> None:
        self._enqueue(NotificationTemplate.INTERVIEW_SCHEDULED, interview, {})

    def interview_cancelled(self, interview: InterviewResponse) -> None:
        self._enqueue(
            NotificationTemplate.INTERVIEW_CANCELLED,
            interview,
            {"reason": interview.cancellation_reason},
        )

    def interview_rescheduled(self, interview: InterviewResponse, original_date: date, original_time: dt_time) -> None:
        self._enqueue(
            NotificationTemplate.INTERVIEW_RESCHEDULED,
            interview,
            {
                "originalDate": original_date.isoformat(),
                "originalTime": format_hhmm(original_time),
                "newDate": interview.scheduled_date.isoformat(),
                "newTime": format_hhmm(interview.scheduled_time),
                "reason": interview.reschedule_reason,
            },
        )

    def interview_summary(self, application_id: int, interviews: List[InterviewResponse]) -> None:
        """Every interview of one application, sent to the guardian and each interviewer involved."""
        name = f"{NotificationTemplate.INTERVIEW_SUMMARY.value}:{application_id}"
        self.queue.submit(name, lambda: self._summary_fan_out(application_id, interviews))
        logger.info(f"[Notify] Queued {name} ({len(interviews)} interviews)")

    def _enqueue(self, template: NotificationTemplate, interview: InterviewResponse, extra: Dict[str, Any]) -> None:
        name = f"{template.value}:{interview.id}"
        self.queue.submit(name, lambda: self._fan_out(template, interview, extra))
        logger.info(f"[Notify] Queued {name}")

    def _fan_out(self, template: NotificationTemplate, interview: InterviewResponse, extra: Dict[str, Any]) -> None:
        recipients, data = self._resolve(interview)
        data.update(extra)
        if not recipients:
            logger.warning(f"[Notify] No recipients with an email for interview {interview.id}")
            return
        self._send_each(template, interview.id, recipients, data)

    def _summary_fan_out(self, application_id: int, interviews: List[InterviewResponse]) -> None:
        contact = self._contact(application_id)
        members: Dict[int, Optional[StaffMember]] = {}
        for interview in interviews:
            for interviewer_id in interview.participant_ids:
                if interviewer_id not in members:
                    members[interviewer_id] = self._member(interviewer_id)

        def name_of(interviewer_id: Optional[int]) -> Optional[str]:
            member = members.get(interviewer_id) if interviewer_id is not None else None
            return member.full_name if member else None

        recipients = self._guardian(contact)
        recipients += [
            Recipient(email=member.email, name=member.full_name, role="interviewer")
            for member in members.values()
            if member is not None and member.email
        ]
        if not recipients:
            logger.warning(f"[Notify] No recipients with an email for the summary of application {application_id}")
            return

        data = {
            "applicationId": application_id,
            "studentName": contact.student_name if contact else None,
            "interviews": [
                {
                    "interviewId": interview.id,
                    "interviewType": interview.type.value,
                    "status": interview.status.value,
                    "mode": interview.mode.value,
                    "location": interview.location,
                    "date": interview.scheduled_date.isoformat(),
                    "time": format_hhmm(interview.scheduled_time),
                    "window": format_window(interview.scheduled_time, interview.duration_minutes),
                    "durationMinutes": interview.duration_minutes,
                    "interviewerName": name_of(interview.primary_interviewer_id),
                    "secondaryInterviewerName": name_of(interview.secondary_interviewer_id),
                }
                for interview in interviews
            ],
        }
        self._send_each(NotificationTemplate.INTERVIEW_SUMMARY, application_id, recipients, data)

    def _send_each(
        self, template: NotificationTemplate, key: int, recipients: List[Recipient], data: Dict[str, Any]
    ) -> None:
        for recipient in recipients:
            self.queue.submit(
                f"{template.value}:{key}:{recipient.email}",
                lambda r=recipient: self.guard.run(WorkloadClass.EXTERNAL, self.client.send, template, r, dict(data)),
            )

    def _contact(self, application_id: int) -> Optional[ApplicationContact]:
        if self.applications is None:
            return None
        return lookup_or_none(self.guard, self.applications.get_application, application_id, "Application")

    def _member(self, interviewer_id: int) -> Optional[StaffMember]:
        if self.staff is None:
            return None
        return lookup_or_none(self.guard, self.staff.get_staff, interviewer_id, "Staff member")

    @staticmethod
    def _guardian(contact: Optional[ApplicationContact]) -> List[Recipient]:
        if contact is None or not contact.guardian_email:
            return []
        return [Recipient(email=contact.guardian_email, name=contact.guardian_name, role="guardian")]

    def _resolve(self, interview: InterviewResponse):
        contact = self._contact(interview.application_id)
        recipients = self._guardian(contact)
        interviewer_names: List[str] = []
        for interviewer_id in interview.participant_ids:
            member = self._member(interviewer_id)
            if member is None:
                continue
            if member.full_name:
                interviewer_names.append(member.full_name)
            if member.email:
                recipients.append(Recipient(email=member.email, name=member.full_name, role="interviewer"))

        data = {
            "interviewId": interview.id,
            "applicationId": interview.application_id,
            "studentName": contact.student_name if contact else None,
            "interviewType": interview.type.value,
            "mode": interview.mode.value,
            "location": interview.location,
            "date": interview.scheduled_date.isoformat(),
            "time": format_hhmm(interview.scheduled_time),
            "window": format_window(interview.scheduled_time, interview.duration_minutes),
            "durationMinutes": interview.duration_minutes,
            "interviewers": interviewer_names,
        }
        return recipients, data
