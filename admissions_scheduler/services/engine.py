# admissions_scheduler/services/engine.py

import logging
from dataclasses import dataclass
from typing import Optional

from admissions_scheduler.base.config import AppConfig
from admissions_scheduler.services.booking_service import BookingService
from admissions_scheduler.services.cache_service import ReadPathCache
from admissions_scheduler.services.calendar_service import CalendarService
from admissions_scheduler.services.conflict_index import ConflictIndex, InterviewerLockRegistry
from admissions_scheduler.services.directory_service import HttpApplicationDirectory, HttpStaffDirectory
from admissions_scheduler.services.evaluation_store import EvaluationStore
from admissions_scheduler.services.execution_guard import ExecutionGuard
from admissions_scheduler.services.lifecycle_service import LifecycleService
from admissions_scheduler.services.notification_service import (
    HttpNotificationClient,
    InterviewNotifier,
    NotificationQueue,
)
from admissions_scheduler.services.schedule_registry import ScheduleRegistry
from admissions_scheduler.services.slot_calculator import SlotCalculator
from admissions_scheduler.services.summary_service import SummaryService

logger = logging.getLogger("scheduler.engine")


@dataclass
class SchedulingEngine:
    guard: ExecutionGuard
    cache: ReadPathCache
    registry: ScheduleRegistry
    conflicts: ConflictIndex
    slots: SlotCalculator
    booking: BookingService
    lifecycle: LifecycleService
    calendar: CalendarService
    summaries: SummaryService
    queue: Optional[NotificationQueue] = None

    @classmethod
    def build(
        cls,
        guard: ExecutionGuard,
        cache: ReadPathCache,
        applications=None,
        staff=None,
        notification_client=None,
        queue: Optional[NotificationQueue] = None,
    ) -> "SchedulingEngine":
        """Wire every component around one guard, one cache and one lock registry."""
        locks = InterviewerLockRegistry()
        conflicts = ConflictIndex(guard)
        registry = ScheduleRegistry(guard, cache, staff_directory=staff)

        notifier = None
        if notification_client is not None and queue is not None:
            notifier = InterviewNotifier(queue, notification_client, guard, applications=applications, staff=staff)

        return cls(
            guard=guard,
            cache=cache,
            registry=registry,
            conflicts=conflicts,
            slots=SlotCalculator(registry, conflicts, cache),
            booking=BookingService(guard, cache, conflicts, EvaluationStore(), notifier, locks),
            lifecycle=LifecycleService(guard, cache, conflicts, notifier, locks),
            calendar=CalendarService(guard, cache, applications=applications, staff=staff),
            summaries=SummaryService(guard, notifier),
            queue=queue,
        )

    @classmethod
    def from_settings(cls, config: AppConfig) -> "SchedulingEngine":
        timeout = config.EXTERNAL_HTTP_TIMEOUT_SECONDS
        engine = cls.build(
            guard=ExecutionGuard.from_settings(config),
            cache=ReadPathCache(
                default_ttl=config.CACHE_DEFAULT_TTL_SECONDS,
                max_size=config.CACHE_MAX_SIZE,
                enabled=config.CACHE_ENABLED,
            ),
            applications=HttpApplicationDirectory(config.APPLICATION_SERVICE_URL, timeout=timeout),
            staff=HttpStaffDirectory(config.USER_SERVICE_URL, timeout=timeout),
            notification_client=HttpNotificationClient(config.NOTIFICATION_SERVICE_URL, timeout=timeout),
            queue=NotificationQueue(
                max_workers=config.NOTIFICATION_WORKERS,
                max_attempts=config.NOTIFICATION_MAX_ATTEMPTS,
                backoff_seconds=config.NOTIFICATION_RETRY_BACKOFF_SECONDS,
            ),
        )
        logger.info(f"[Engine] Scheduling engine ready (cache={'on' if config.CACHE_ENABLED else 'off'})")
        return engine

    def shutdown(self) -> None:
        if self.queue is not None:
            self.queue.shutdown(wait=True)
