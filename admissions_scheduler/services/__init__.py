"""
Scheduler Services Module

Each service owns one part of interview scheduling: availability blocks,
conflict detection, slot computation, booking, lifecycle transitions, the
read side and interview summaries. `SchedulingEngine` wires them around a
shared execution guard and read-path cache.
"""

# === Resilience & Caching ===
from .execution_guard import ExecutionGuard, WorkloadClass
from .cache_service import ReadPathCache

# === Availability ===
from .schedule_registry import ScheduleRegistry
from .conflict_index import ConflictIndex
from .slot_calculator import SlotCalculator

# === Writes ===
from .booking_service import BookingService
from .lifecycle_service import LifecycleService

# === Read Side & Collaborators ===
from .calendar_service import CalendarService
from .notification_service import InterviewNotifier, NotificationQueue
from .summary_service import SummaryService

# === Wiring ===
from .engine import SchedulingEngine

# === Exported Interface ===
__all__ = [
    "ExecutionGuard",
    "WorkloadClass",
    "ReadPathCache",
    "ScheduleRegistry",
    "ConflictIndex",
    "SlotCalculator",
    "BookingService",
    "LifecycleService",
    "CalendarService",
    "InterviewNotifier",
    "NotificationQueue",
    "SummaryService",
    "SchedulingEngine",
]
