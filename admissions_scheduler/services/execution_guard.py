# admissions_scheduler/services/execution_guard.py

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple, TypeVar

from admissions_scheduler.base.config import AppConfig
from admissions_scheduler.base.errors import DependencyFailure, GuardRejection, SchedulingError
from admissions_scheduler.base.metrics import breaker_state_gauge

logger = logging.getLogger("scheduler.execution_guard")

T = TypeVar("T")


class BreakerState(str, Enum):
    CLOSED = "CLOSED"
    HALF_OPEN = "HALF_OPEN"
    OPEN = "OPEN"


_GAUGE_VALUES = {BreakerState.CLOSED: 0, BreakerState.HALF_OPEN: 1, BreakerState.OPEN: 2}


class WorkloadClass(str, Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    WRITE = "write"
    EXTERNAL = "external"


@dataclass(frozen=True)
class BreakerOptions:
    timeout: float
    error_threshold_percentage: int
    reset_timeout: float
    rolling_window: float = 10.0
    volume_threshold: int = 5


class CircuitBreaker:
    """
    CLOSED -> OPEN when the error rate inside the rolling window reaches the
    threshold (once at least `volume_threshold` calls were seen).
    OPEN -> HALF_OPEN after `reset_timeout`; exactly one trial call is let through.
    HALF_OPEN -> CLOSED on trial success, back to OPEN on trial failure.

    Domain errors raised by the wrapped call are passed through and count as
    a healthy dependency. Anything else is a failure and is re-raised as
    DependencyFailure.
    """

    def __init__(self, name: str, options: BreakerOptions, clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.options = options
        self._clock = clock
        self._lock = threading.Lock()
        self._state = BreakerState.CLOSED
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False
        self._outcomes: Deque[Tuple[float, bool]] = deque()
        self._publish()

    @property
    def state(self) -> BreakerState:
        with self._lock:
            return self._refresh_state()

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        is_trial = self._before_call()
        started = self._clock()
        try:
            result = fn(*args, **kwargs)
        except SchedulingError:
            self._record(True, is_trial)
            raise
        except Exception as exc:
            logger.error(f"❌ [CircuitBreaker {self.name}] Operation failed: {exc}")
            self._record(False, is_trial)
            raise DependencyFailure(self.name, exc) from exc

        elapsed = self._clock() - started
        if elapsed > self.options.timeout:
            logger.warning(
                f"⏱️ [CircuitBreaker {self.name}] Operation took {elapsed:.2f}s "
                f"(timeout {self.options.timeout:.2f}s), counted as failure"
            )
            self._record(False, is_trial)
        else:
            self._record(True, is_trial)
        return result

    def reset(self) -> None:
        with self._lock:
            self._outcomes.clear()
            self._trial_in_flight = False
            self._opened_at = None
            self._transition(BreakerState.CLOSED)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            state = self._refresh_state()
            self._prune(self._clock())
            failures = sum(1 for _, ok in self._outcomes if not ok)
            return {
                "name": self.name,
                "state": state.value,
                "calls": len(self._outcomes),
                "failures": failures,
                "timeoutSeconds": self.options.timeout,
                "errorThresholdPercentage": self.options.error_threshold_percentage,
                "resetTimeoutSeconds": self.options.reset_timeout,
            }

    # --- internals (callers hold self._lock where noted) ---

    def _before_call(self) -> bool:
        with self._lock:
            state = self._refresh_state()
            if state == BreakerState.OPEN:
                retry_after = self.options.reset_timeout - (self._clock() - self._opened_at)
                raise GuardRejection(self.name, retry_after)
            if state == BreakerState.HALF_OPEN:
                if self._trial_in_flight:
                    raise GuardRejection(self.name, 1.0)
                self._trial_in_flight = True
                return True
            return False

    def _record(self, ok: bool, is_trial: bool) -> None:
        with self._lock:
            now = self._clock()
            if is_trial:
                self._trial_in_flight = False
                if ok:
                    self._outcomes.clear()
                    self._transition(BreakerState.CLOSED)
                else:
                    self._open(now)
                return

            if self._state != BreakerState.CLOSED:
                return

            self._outcomes.append((now, ok))
            self._prune(now)
            if not ok and self._threshold_breached():
                self._open(now)

    def _threshold_breached(self) -> bool:
        total = len(self._outcomes)
        if total == 0 or total < self.options.volume_threshold:
            return False
        failures = sum(1 for _, ok in self._outcomes if not ok)
        return failures * 100 / total >= self.options.error_threshold_percentage

    def _prune(self, now: float) -> None:
        horizon = now - self.options.rolling_window
        while self._outcomes and self._outcomes[0][0] < horizon:
            self._outcomes.popleft()

    def _refresh_state(self) -> BreakerState:
        if self._state == BreakerState.OPEN and self._clock() - self._opened_at >= self.options.reset_timeout:
            self._transition(BreakerState.HALF_OPEN)
        return self._state

    def _open(self, now: float) -> None:
        self._opened_at = now
        self._outcomes.clear()
        self._transition(BreakerState.OPEN)

    def _transition(self, new_state: BreakerState) -> None:
        if new_state == self._state:
            return
        self._state = new_state
        if new_state == BreakerState.OPEN:
            logger.error(
                f"⚠️ [CircuitBreaker {self.name}] OPEN - "
                f"{self.options.error_threshold_percentage}% error threshold reached"
            )
        elif new_state == BreakerState.HALF_OPEN:
            logger.warning(f"🔄 [CircuitBreaker {self.name}] HALF-OPEN - testing recovery")
        else:
            logger.info(f"✅ [CircuitBreaker {self.name}] CLOSED - service recovered")
        self._publish()

    def _publish(self) -> None:
        breaker_state_gauge.labels(breaker=self.name).set(_GAUGE_VALUES[self._state])


class ExecutionGuard:
    """Owns one breaker per workload class; every persistence or external call goes through `run`."""

    def __init__(self, breakers: Dict[WorkloadClass, CircuitBreaker]):
        missing = set(WorkloadClass) - set(breakers)
        if missing:
            raise ValueError(f"Missing breakers for workload classes: {sorted(m.value for m in missing)}")
        self._breakers = dict(breakers)

    @classmethod
    def from_settings(cls, config: AppConfig, clock: Callable[[], float] = time.monotonic) -> "ExecutionGuard":
        def options(timeout: float, threshold: int, reset: float) -> BreakerOptions:
            return BreakerOptions(
                timeout=timeout,
                error_threshold_percentage=threshold,
                reset_timeout=reset,
                rolling_window=config.CB_ROLLING_WINDOW_SECONDS,
                volume_threshold=config.CB_VOLUME_THRESHOLD,
            )

        tunings = {
            WorkloadClass.SIMPLE: options(
                config.CB_SIMPLE_TIMEOUT, config.CB_SIMPLE_ERROR_THRESHOLD, config.CB_SIMPLE_RESET_TIMEOUT),
            WorkloadClass.MEDIUM: options(
                config.CB_MEDIUM_TIMEOUT, config.CB_MEDIUM_ERROR_THRESHOLD, config.CB_MEDIUM_RESET_TIMEOUT),
            WorkloadClass.WRITE: options(
                config.CB_WRITE_TIMEOUT, config.CB_WRITE_ERROR_THRESHOLD, config.CB_WRITE_RESET_TIMEOUT),
            WorkloadClass.EXTERNAL: options(
                config.CB_EXTERNAL_TIMEOUT, config.CB_EXTERNAL_ERROR_THRESHOLD, config.CB_EXTERNAL_RESET_TIMEOUT),
        }
        breakers = {
            workload: CircuitBreaker(f"scheduler.{workload.value}", opts, clock=clock)
            for workload, opts in tunings.items()
        }
        for workload, opts in tunings.items():
            logger.info(
                f"[ExecutionGuard] {workload.value}: {opts.timeout}s timeout, "
                f"{opts.error_threshold_percentage}% threshold, {opts.reset_timeout}s reset"
            )
        return cls(breakers)

    def breaker(self, workload: WorkloadClass) -> CircuitBreaker:
        return self._breakers[workload]

    def run(self, workload: WorkloadClass, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return self._breakers[workload].call(fn, *args, **kwargs)

    def stats(self) -> List[Dict[str, Any]]:
        return [breaker.stats() for breaker in self._breakers.values()]

    def reset(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()
