# admissions_scheduler/services/evaluation_store.py

import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from admissions_scheduler.base.models import EvaluationStatus, EvaluationType, InterviewType
from admissions_scheduler.db.models import EvaluationModel

logger = logging.getLogger("scheduler.evaluations")

EVALUATION_TYPE_MAP = {
    InterviewType.FAMILY: EvaluationType.FAMILY_INTERVIEW,
    InterviewType.CYCLE_DIRECTOR: EvaluationType.CYCLE_DIRECTOR_INTERVIEW,
}
DEFAULT_EVALUATION_TYPE = EvaluationType.PSYCHOLOGICAL_INTERVIEW


def stub_types_for(interview_type: InterviewType) -> List[EvaluationType]:
    """Evaluation records each participant of an interview of this type must own."""
    types = [EVALUATION_TYPE_MAP.get(interview_type, DEFAULT_EVALUATION_TYPE)]
    if interview_type == InterviewType.CYCLE_DIRECTOR:
        types.append(EvaluationType.CYCLE_DIRECTOR_REPORT)
    return types


class EvaluationStore:
    """Idempotent creation of pending evaluation stubs, keyed on (application, evaluator, type)."""

    def find(
        self, db: Session, application_id: int, evaluator_id: int, evaluation_type: EvaluationType
    ) -> Optional[EvaluationModel]:
        return (
            db.query(EvaluationModel)
            .filter_by(application_id=application_id, evaluator_id=evaluator_id, evaluation_type=evaluation_type)
            .one_or_none()
        )

    def insert_if_absent(
        self, db: Session, application_id: int, evaluator_id: int, evaluation_type: EvaluationType
    ) -> Tuple[EvaluationModel, bool]:
        """
        Returns (stub, created). Runs inside a savepoint of the caller's
        transaction, so a failure here never poisons the outer transaction.
        """
        try:
            with db.begin_nested():
                existing = self.find(db, application_id, evaluator_id, evaluation_type)
                if existing is None:
                    stub = EvaluationModel(
                        application_id=application_id,
                        evaluator_id=evaluator_id,
                        evaluation_type=evaluation_type,
                        status=EvaluationStatus.PENDING,
                    )
                    db.add(stub)
        except IntegrityError:
            # A concurrent writer inserted the same triple between find and flush
            winner = self.find(db, application_id, evaluator_id, evaluation_type)
            if winner is None:
                raise
            return winner, False

        if existing is not None:
            logger.info(
                f"[Evaluations] {evaluation_type.value} already exists for application {application_id}, "
                f"evaluator {evaluator_id}"
            )
            return existing, False

        logger.info(
            f"[Evaluations] Created {evaluation_type.value} stub for application {application_id}, "
            f"evaluator {evaluator_id}"
        )
        return stub, True
