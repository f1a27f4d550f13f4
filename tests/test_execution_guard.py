"""Tests for the circuit breakers behind every persistence and external call."""
from datetime import time

import pytest

from admissions_scheduler.base.config import settings
from admissions_scheduler.base.errors import ConflictError, DependencyFailure, GuardRejection
from admissions_scheduler.services.execution_guard import (
    BreakerOptions,
    BreakerState,
    CircuitBreaker,
    ExecutionGuard,
    WorkloadClass,
)
from tests.fakes import MONDAY, FakeClock


def _boom():
    raise RuntimeError("connection reset")


def _ok():
    return "ok"


@pytest.fixture
def breaker(clock):
    options = BreakerOptions(
        timeout=1.0,
        error_threshold_percentage=50,
        reset_timeout=30.0,
        rolling_window=10.0,
        volume_threshold=4,
    )
    return CircuitBreaker("test.breaker", options, clock=clock)


def _fail(breaker, times):
    for _ in range(times):
        with pytest.raises(DependencyFailure):
            breaker.call(_boom)


class TestCircuitBreaker:
    def test_stays_closed_below_volume_threshold(self, breaker):
        _fail(breaker, 3)
        assert breaker.state == BreakerState.CLOSED

    def test_opens_when_error_rate_reaches_threshold(self, breaker):
        breaker.call(_ok)
        breaker.call(_ok)
        _fail(breaker, 2)

        assert breaker.state == BreakerState.OPEN
        calls = []
        with pytest.raises(GuardRejection) as excinfo:
            breaker.call(lambda: calls.append(1))
        assert calls == []
        assert excinfo.value.retry_after_seconds == pytest.approx(30.0)
        assert excinfo.value.status_code == 503

    def test_half_open_trial_success_closes(self, breaker, clock):
        _fail(breaker, 4)
        clock.advance(30)

        assert breaker.state == BreakerState.HALF_OPEN
        assert breaker.call(_ok) == "ok"
        assert breaker.state == BreakerState.CLOSED

    def test_half_open_trial_failure_reopens(self, breaker, clock):
        _fail(breaker, 4)
        clock.advance(31)

        _fail(breaker, 1)
        assert breaker.state == BreakerState.OPEN
        with pytest.raises(GuardRejection):
            breaker.call(_ok)

    def test_domain_errors_pass_through_uncounted(self, breaker):
        def _conflict():
            raise ConflictError(7, MONDAY, time(9, 0), 20)

        for _ in range(6):
            with pytest.raises(ConflictError):
                breaker.call(_conflict)
        assert breaker.state == BreakerState.CLOSED
        assert breaker.stats()["failures"] == 0

    def test_failure_is_wrapped_with_cause(self, breaker):
        with pytest.raises(DependencyFailure) as excinfo:
            breaker.call(_boom)
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert excinfo.value.details["breaker"] == "test.breaker"

    def test_slow_call_counts_as_failure_but_returns_result(self, breaker, clock):
        def _slow():
            clock.advance(2.5)
            return "late"

        assert breaker.call(_slow) == "late"
        assert breaker.stats()["failures"] == 1

    def test_outcomes_outside_rolling_window_are_forgotten(self, breaker, clock):
        _fail(breaker, 3)
        clock.advance(11)
        _fail(breaker, 1)

        assert breaker.state == BreakerState.CLOSED
        assert breaker.stats()["calls"] == 1

    def test_reset_closes_an_open_breaker(self, breaker):
        _fail(breaker, 4)
        breaker.reset()

        assert breaker.state == BreakerState.CLOSED
        assert breaker.call(_ok) == "ok"


class TestExecutionGuard:
    def test_breakers_are_tuned_per_workload_class(self):
        guard = ExecutionGuard.from_settings(settings, clock=FakeClock())

        simple = guard.breaker(WorkloadClass.SIMPLE).options
        write = guard.breaker(WorkloadClass.WRITE).options
        external = guard.breaker(WorkloadClass.EXTERNAL).options
        assert (simple.timeout, simple.error_threshold_percentage, simple.reset_timeout) == (2.0, 60, 20.0)
        assert (write.timeout, write.error_threshold_percentage, write.reset_timeout) == (3.0, 30, 45.0)
        assert (external.timeout, external.error_threshold_percentage, external.reset_timeout) == (8.0, 70, 120.0)

    def test_open_breaker_only_rejects_its_own_class(self, guard):
        for _ in range(settings.CB_VOLUME_THRESHOLD):
            with pytest.raises(DependencyFailure):
                guard.run(WorkloadClass.WRITE, _boom)

        with pytest.raises(GuardRejection):
            guard.run(WorkloadClass.WRITE, _ok)
        assert guard.run(WorkloadClass.SIMPLE, _ok) == "ok"

    def test_missing_breaker_is_rejected(self, clock):
        options = BreakerOptions(timeout=1, error_threshold_percentage=50, reset_timeout=10)
        with pytest.raises(ValueError):
            ExecutionGuard({WorkloadClass.SIMPLE: CircuitBreaker("only.simple", options, clock=clock)})

    def test_stats_lists_every_breaker(self, guard):
        names = {entry["name"] for entry in guard.stats()}
        assert names == {f"scheduler.{w.value}" for w in WorkloadClass}
