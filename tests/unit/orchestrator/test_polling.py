"""Unit tests for the polling primitive."""

from __future__ import annotations

from stagesync.infra.k8s.controller import ClusterAPIError
from stagesync.orchestrator.polling import poll_until
from tests.fixtures import FakeClock


def test_returns_immediately_when_satisfied() -> None:
    clock = FakeClock()
    assert poll_until(lambda: True, timeout=10, interval=2, clock=clock) is True
    assert clock.sleeps == []


def test_zero_timeout_checks_once() -> None:
    clock = FakeClock()
    calls: list[float] = []

    def _check() -> bool:
        calls.append(clock.now())
        return False

    assert poll_until(_check, timeout=0, interval=3, clock=clock) is False
    assert calls == [0.0]


def test_times_out_after_budget() -> None:
    clock = FakeClock()
    ticks: list[float] = []

    result = poll_until(
        lambda: False, timeout=10, interval=3, clock=clock, on_tick=ticks.append
    )

    assert result is False
    assert ticks == [0.0, 3.0, 6.0, 9.0]
    assert clock.now() == 12.0


def test_cluster_errors_count_as_not_ready() -> None:
    clock = FakeClock()
    attempts = iter([ClusterAPIError("flaky"), ClusterAPIError("flaky"), True])

    def _check() -> bool:
        outcome = next(attempts)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert poll_until(_check, timeout=30, interval=5, clock=clock) is True
    assert clock.now() == 10.0


def test_shared_start_shrinks_budget() -> None:
    clock = FakeClock(start=100.0)
    result = poll_until(
        lambda: False, timeout=10, interval=5, clock=clock, start=95.0
    )
    assert result is False
    assert clock.now() == 105.0
