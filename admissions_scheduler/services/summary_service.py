# admissions_scheduler/services/summary_service.py

import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from admissions_scheduler.base.errors import DependencyFailure, NotFoundError
from admissions_scheduler.base.models import InterviewResponse, SummaryStatusResponse
from admissions_scheduler.db.models import InterviewModel, SummaryDispatchModel
from admissions_scheduler.db.session import commit_or_rollback
from admissions_scheduler.services.execution_guard import ExecutionGuard, WorkloadClass
from admissions_scheduler.services.notification_service import InterviewNotifier

logger = logging.getLogger("scheduler.summary")


class SummaryService:
    """
    Sends an application's interview summary and tracks whether the
    interviews changed since the last one went out.

    A summary counts as sent once it is queued; delivery to each recipient is
    retried by the notification queue like any other notification.
    """

    def __init__(self, guard: ExecutionGuard, notifier: Optional[InterviewNotifier]):
        self.guard = guard
        self.notifier = notifier

    def send_summary(self, db: Session, application_id: int, requested_by: Optional[int] = None) -> SummaryDispatchModel:
        if self.notifier is None:
            raise DependencyFailure("notifications", RuntimeError("notification dispatch is not configured"))

        interviews = self.guard.run(WorkloadClass.SIMPLE, self._interviews, db, application_id)
        if not interviews:
            raise NotFoundError("Interviews for application", application_id)

        snapshots = [InterviewResponse.model_validate(row) for row in interviews]
        try:
            self.notifier.interview_summary(application_id, snapshots)
        except RuntimeError as exc:
            logger.error(f"[Summary] Could not queue the summary for application {application_id}: {exc}")
            raise DependencyFailure("notifications", exc) from exc

        def _record():
            dispatch = SummaryDispatchModel(
                application_id=application_id,
                requested_by=requested_by,
                interview_count=len(snapshots),
            )
            db.add(dispatch)
            commit_or_rollback(db)
            return dispatch

        dispatch = self.guard.run(WorkloadClass.WRITE, _record)
        logger.info(
            f"📨 [Summary] Queued summary of {len(snapshots)} interviews for application {application_id} "
            f"by {requested_by or 'system'}"
        )
        return dispatch

    def summary_status(self, db: Session, application_id: int) -> SummaryStatusResponse:
        def _query():
            last = (
                db.query(SummaryDispatchModel)
                .filter(SummaryDispatchModel.application_id == application_id)
                .order_by(SummaryDispatchModel.sent_at.desc(), SummaryDispatchModel.id.desc())
                .first()
            )
            count, last_update = (
                db.query(func.count(InterviewModel.id), func.max(InterviewModel.updated_at))
                .filter(InterviewModel.application_id == application_id)
                .one()
            )
            return last, count, last_update

        last, count, last_update = self.guard.run(WorkloadClass.SIMPLE, _query)
        if last is None:
            return SummaryStatusResponse(
                summary_sent=False,
                can_resend=True,
                interview_count=count,
                message="No interview summary has been sent yet",
            )

        modified = last_update is not None and last_update > last.sent_at
        return SummaryStatusResponse(
            summary_sent=True,
            sent_at=last.sent_at,
            can_resend=modified,
            interviews_modified_after_send=modified,
            interview_count=count,
            message=(
                "Interviews changed after the last summary was sent; it can be sent again"
                if modified
                else "Summary already sent and the interviews have not changed since"
            ),
        )

    @staticmethod
    def _interviews(db: Session, application_id: int):
        return (
            db.query(InterviewModel)
            .filter(InterviewModel.application_id == application_id)
            .order_by(InterviewModel.scheduled_date.asc(), InterviewModel.scheduled_time.asc())
            .all()
        )
