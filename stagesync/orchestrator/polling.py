"""Bounded sleep-poll loops with an injectable clock."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol

from loguru import logger

from stagesync.infra.k8s.controller import ClusterAPIError


class Clock(Protocol):
    def now(self) -> float: ...

    def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Wall clock backed by ``time.monotonic`` and ``time.sleep``."""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


def poll_until(
    predicate: Callable[[], bool],
    *,
    timeout: float,
    interval: float,
    clock: Clock,
    on_tick: Callable[[float], None] | None = None,
    start: float | None = None,
) -> bool:
    """Evaluate ``predicate`` until it holds or ``timeout`` seconds elapse.

    The predicate is always evaluated at least once, so a zero timeout is a
    single check. Cluster API errors raised by the predicate count as "not
    yet satisfied".

    Args:
        predicate: Condition to wait for
        timeout: Budget in seconds, measured from ``start``
        interval: Seconds to sleep between evaluations
        clock: Time source
        on_tick: Called with the elapsed time before each sleep
        start: Start of the budget (defaults to now), for shared budgets

    Returns:
        True if the predicate held, False on timeout
    """
    started = clock.now() if start is None else start
    while True:
        try:
            if predicate():
                return True
        except ClusterAPIError as e:
            logger.debug(f"Poll check failed, retrying: {e.message} {e.details or ''}")

        elapsed = clock.now() - started
        if elapsed >= timeout:
            return False
        if on_tick is not None:
            on_tick(elapsed)
        clock.sleep(interval)
