from datetime import date, time
from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """
    Base class for every domain error raised by the scheduling engine.

    Attributes:
        code (str): stable error identifier, e.g. 'INT_010'
        message (str): human readable message
        details (dict): extra context for the caller (interviewer, window, ...)
    """
    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


class ValidationError(SchedulingError):
    """Malformed input: missing date, non-positive duration, bad block shape."""
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(code="VALIDATION_ERROR", message=message, details=details)


class NotFoundError(SchedulingError):
    status_code = 404

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            code="NOT_FOUND",
            message=f"{resource} {resource_id} not found",
            details={"resource": resource, "id": resource_id},
        )


class ConflictError(SchedulingError):
    """The requested window overlaps a blocking interview for an interviewer."""
    status_code = 409

    def __init__(
        self,
        interviewer_id: int,
        on_date: date,
        start: time,
        duration_minutes: int,
        conflicting_interview_id: Optional[int] = None,
    ):
        self.interviewer_id = interviewer_id
        super().__init__(
            code="INT_010",
            message=f"Interviewer {interviewer_id} is not available at the requested time",
            details={
                "interviewerId": interviewer_id,
                "date": on_date.isoformat(),
                "time": start.strftime("%H:%M"),
                "durationMinutes": duration_minutes,
                "conflictingInterviewId": conflicting_interview_id,
            },
        )


class InvalidTransitionError(SchedulingError):
    status_code = 409

    def __init__(self, interview_id: int, current_status: str, transition: str):
        self.current_status = current_status
        self.transition = transition
        super().__init__(
            code="INVALID_TRANSITION",
            message=f"Cannot {transition} interview {interview_id} in status {current_status}",
            details={"interviewId": interview_id, "currentStatus": current_status, "transition": transition},
        )


class GuardRejection(SchedulingError):
    """A circuit breaker is OPEN; the call was rejected without being attempted."""
    status_code = 503

    def __init__(self, breaker_name: str, retry_after_seconds: float):
        self.breaker_name = breaker_name
        self.retry_after_seconds = max(0.0, retry_after_seconds)
        super().__init__(
            code="SERVICE_UNAVAILABLE",
            message=f"Service temporarily unavailable - {breaker_name} circuit breaker open",
            details={"breaker": breaker_name, "retryAfterSeconds": round(self.retry_after_seconds, 1)},
        )


class DependencyFailure(SchedulingError):
    """A persistence or external call failed underneath a closed breaker."""
    status_code = 502

    def __init__(self, breaker_name: str, cause: BaseException):
        self.breaker_name = breaker_name
        super().__init__(
            code="DEPENDENCY_FAILURE",
            message=f"Dependency call failed ({breaker_name})",
            details={"breaker": breaker_name, "error": type(cause).__name__},
        )
