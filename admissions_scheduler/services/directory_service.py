# admissions_scheduler/services/directory_service.py

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, TypeVar

import requests

from admissions_scheduler.base.errors import DependencyFailure, GuardRejection
from admissions_scheduler.services.execution_guard import ExecutionGuard, WorkloadClass

T = TypeVar("T")

logger = logging.getLogger("scheduler.directory")


@dataclass(frozen=True)
class ApplicationContact:
    """Display data for one application, used in notification payloads and calendar rows."""
    application_id: int
    student_name: Optional[str] = None
    guardian_name: Optional[str] = None
    guardian_email: Optional[str] = None


@dataclass(frozen=True)
class StaffMember:
    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None

    @property
    def full_name(self) -> Optional[str]:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or None


def _unwrap(payload: Dict[str, Any]) -> Dict[str, Any]:
    # Upstream services answer either bare objects or {"success": true, "data": {...}}
    if isinstance(payload.get("data"), dict):
        return payload["data"]
    return payload


class HttpApplicationDirectory:
    """Read-only client for the application service."""

    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def get_application(self, application_id: int) -> Optional[ApplicationContact]:
        url = f"{self.base_url}/api/applications/{application_id}"
        response = self.session.get(url, timeout=self.timeout)
        if response.status_code == 404:
            logger.warning(f"[Directory] Application {application_id} not found")
            return None
        response.raise_for_status()

        data = _unwrap(response.json())
        student = data.get("student") or {}
        guardian = data.get("guardian") or {}
        contact = ApplicationContact(
            application_id=application_id,
            student_name=student.get("fullName"),
            guardian_name=guardian.get("fullName"),
            guardian_email=guardian.get("email"),
        )
        logger.debug(f"[Directory] Loaded application {application_id}")
        return contact


class HttpStaffDirectory:
    """Read-only client for the user service (interviewers and other staff)."""

    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def get_staff(self, user_id: int) -> Optional[StaffMember]:
        url = f"{self.base_url}/api/users/{user_id}"
        response = self.session.get(url, timeout=self.timeout)
        if response.status_code == 404:
            logger.warning(f"[Directory] Staff member {user_id} not found")
            return None
        response.raise_for_status()

        data = _unwrap(response.json())
        return StaffMember(
            id=int(data.get("id", user_id)),
            first_name=data.get("firstName"),
            last_name=data.get("lastName"),
            email=data.get("email"),
            role=data.get("role"),
        )


def lookup_or_none(guard: ExecutionGuard, fetch: Callable[[int], Optional[T]], key: int, label: str) -> Optional[T]:
    """Display-data lookup that degrades to None instead of failing the caller."""
    try:
        return guard.run(WorkloadClass.EXTERNAL, fetch, key)
    except (GuardRejection, DependencyFailure) as exc:
        logger.warning(f"[Directory] {label} {key} unavailable: {exc.message}")
        return None
