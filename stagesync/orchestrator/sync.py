"""Staged sync orchestrator.

Walks units in dependency order and, for each one:

1. waits for its Application to exist (skip if it never appears),
2. clears a Failed last sync operation,
3. waits for the unit's readiness signal,
4. enables automated sync with a retry policy and requests a refresh,
5. approves pending InstallPlans while waiting,
6. polls sync/health until Synced + Healthy or the per-unit timeout.

Units are strictly serialized. Timeouts are soft: the run records them and
moves on. Only the pre-flight existence check is fatal.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from loguru import logger

from stagesync.infra.k8s.controller import ClusterAPIError, KubernetesControllerSync

from .applications import ApplicationClient
from .constants import DEFAULT_CONSTANTS, SyncConstants
from .errors import PreflightTimeout, UnitTimeout
from .events import EventKind, EventSink, SyncEvent, null_sink
from .executor import Executor, LiveExecutor
from .models import (
    HealthState,
    Outcome,
    RunSummary,
    SyncAttempt,
    SyncState,
    Unit,
    UnitPhase,
    UnitStatus,
)
from .polling import Clock, SystemClock, poll_until
from .prober import ReadinessProber
from .recovery import FailureRecovery
from .registry import UnitRegistry


@dataclass(frozen=True)
class SyncOptions:
    """Timeouts and behaviour switches for one kind of sync run."""

    app_wait_timeout: float
    app_wait_poll: float
    signal_timeout: float
    health_timeout: float
    health_poll: float
    preflight_timeout: float
    preflight_poll: float
    preflight: bool = True
    clear_failed_operations: bool = True
    approve_install_gates: bool = True
    fail_fast: bool = False

    @classmethod
    def for_operators(
        cls,
        constants: SyncConstants | None = None,
        *,
        health_timeout: float | None = None,
        fail_fast: bool = False,
    ) -> SyncOptions:
        """Options for the operator stack."""
        c = constants or DEFAULT_CONSTANTS
        return cls(
            app_wait_timeout=c.APP_WAIT_TIMEOUT,
            app_wait_poll=c.APP_WAIT_POLL,
            signal_timeout=c.SIGNAL_TIMEOUT,
            health_timeout=health_timeout or c.HEALTH_TIMEOUT,
            health_poll=c.HEALTH_POLL,
            preflight_timeout=c.PREFLIGHT_TIMEOUT,
            preflight_poll=c.PREFLIGHT_POLL,
            fail_fast=fail_fast,
        )

    @classmethod
    def for_configs(
        cls,
        constants: SyncConstants | None = None,
        *,
        health_timeout: float | None = None,
        fail_fast: bool = False,
    ) -> SyncOptions:
        """Options for the cluster config group.

        Config applications are checked once for existence, have no
        pre-flight and never gate on InstallPlans.
        """
        c = constants or DEFAULT_CONSTANTS
        return cls(
            app_wait_timeout=0,
            app_wait_poll=c.APP_WAIT_POLL,
            signal_timeout=c.SIGNAL_TIMEOUT,
            health_timeout=health_timeout or c.CONFIG_HEALTH_TIMEOUT,
            health_poll=c.CONFIG_HEALTH_POLL,
            preflight_timeout=0,
            preflight_poll=c.PREFLIGHT_POLL,
            preflight=False,
            clear_failed_operations=False,
            approve_install_gates=False,
            fail_fast=fail_fast,
        )


class SyncOrchestrator:
    """Drives every unit of a registry to Synced + Healthy, one at a time."""

    def __init__(
        self,
        registry: UnitRegistry,
        client: KubernetesControllerSync,
        executor: Executor | None = None,
        *,
        constants: SyncConstants | None = None,
        clock: Clock | None = None,
        sink: EventSink | None = None,
        options: SyncOptions | None = None,
    ) -> None:
        self.registry = registry
        self.client = client
        self.executor = executor or LiveExecutor(client)
        self.constants = constants or DEFAULT_CONSTANTS
        self.clock = clock or SystemClock()
        self.sink = sink or null_sink
        self.options = options or SyncOptions.for_operators(self.constants)

        self.applications = ApplicationClient(client, self.executor, self.constants)
        self.prober = ReadinessProber(
            client, constants=self.constants, clock=self.clock, sink=self.sink
        )
        self.recovery = FailureRecovery(
            client, self.executor, constants=self.constants, sink=self.sink
        )

    def _emit(
        self,
        kind: EventKind,
        message: str,
        unit: str | None = None,
        elapsed: float | None = None,
    ) -> None:
        self.sink(SyncEvent(kind, message, unit=unit, elapsed=elapsed))

    # =========================================================================
    # Pre-flight
    # =========================================================================

    def preflight(self, units: Iterable[Unit] | None = None) -> None:
        """Wait for every unit's Application to exist, within one shared budget.

        Raises:
            PreflightTimeout: If any Application is still missing when the
                budget runs out. Nothing has been mutated at that point.
        """
        targets = tuple(units) if units is not None else self.registry.sync_order()
        timeout = self.options.preflight_timeout
        self._emit(
            EventKind.PREFLIGHT_STARTED,
            "Verifying all applications exist before syncing...",
        )

        start = self.clock.now()
        for index, unit in enumerate(targets):
            found = poll_until(
                lambda: self.applications.exists(unit.name),
                timeout=timeout,
                interval=self.options.preflight_poll,
                clock=self.clock,
                start=start,
                on_tick=lambda elapsed: self._emit(
                    EventKind.PREFLIGHT_WAITING,
                    f"Waiting for app: {unit.name} ({elapsed:.0f}s)...",
                    unit=unit.name,
                    elapsed=elapsed,
                ),
            )
            if not found:
                missing = [unit.name] + [
                    other.name
                    for other in targets[index + 1 :]
                    if not self._exists_quietly(other.name)
                ]
                logger.warning(
                    f"Timeout: application '{unit.name}' not found after {timeout:g}s"
                )
                raise PreflightTimeout(missing, timeout)

        self._emit(
            EventKind.PREFLIGHT_PASSED, f"All {len(targets)} applications exist"
        )

    def _exists_quietly(self, name: str) -> bool:
        try:
            return self.applications.exists(name)
        except ClusterAPIError:
            return False

    # =========================================================================
    # Per-unit Sync
    # =========================================================================

    def sync_unit(self, unit: Unit) -> SyncAttempt:
        """Run the full per-unit sequence and return its attempt record.

        Never raises on timeouts; the attempt's outcome says what happened.
        """
        attempt = SyncAttempt(unit, started_at=self.clock.now())
        name = unit.name

        found = poll_until(
            lambda: self.applications.exists(name),
            timeout=self.options.app_wait_timeout,
            interval=self.options.app_wait_poll,
            clock=self.clock,
            on_tick=lambda elapsed: self._emit(
                EventKind.UNIT_WAITING,
                f"Waiting for app '{name}' to exist ({elapsed:.0f}s)...",
                unit=name,
                elapsed=elapsed,
            ),
        )
        if not found:
            return self._finish_skipped(attempt)

        self._emit(EventKind.UNIT_STARTED, f"Syncing: {name}", unit=name)
        attempt.advance(UnitPhase.AWAITING_SIGNAL)

        if self.options.clear_failed_operations:
            attempt.cleared_failed_operation = (
                self.recovery.clear_failed_reconciliation(name)
            )

        if unit.readiness_signal is not None:
            attempt.signal_outcome = self.prober.await_ready(
                unit.readiness_signal, self.options.signal_timeout, unit=name
            )

        attempt.advance(UnitPhase.CONVERGING)
        self._trigger_convergence(name)

        if self.options.approve_install_gates:
            self.recovery.approve_pending_install_gates()

        return self._await_healthy(attempt)

    def _finish_skipped(self, attempt: SyncAttempt) -> SyncAttempt:
        name = attempt.unit.name
        attempt.advance(UnitPhase.SKIPPED)
        attempt.outcome = Outcome.SKIPPED
        attempt.finished_at = self.clock.now()

        if self.options.app_wait_timeout > 0:
            message = (
                f"App '{name}' not found after "
                f"{self.options.app_wait_timeout:g}s, skipping"
            )
        else:
            message = f"App '{name}' not found, skipping"
        logger.warning(message)
        self._emit(EventKind.UNIT_SKIPPED, message, unit=name)
        return attempt

    def _trigger_convergence(self, name: str) -> None:
        failures = []
        result = self.applications.enable_auto_sync(name)
        if not result.success:
            failures.append(f"enable auto-sync ({result.stderr.strip()})")
        result = self.applications.request_refresh(name)
        if not result.success:
            failures.append(f"request refresh ({result.stderr.strip()})")

        if failures:
            # Health is still awaited below
            message = f"{name}: failed to " + " and ".join(failures)
            logger.warning(message)
            self._emit(EventKind.ACTION_FAILED, message, unit=name)
            return

        self._emit(
            EventKind.CONVERGENCE_TRIGGERED,
            f"Auto-sync enabled and refresh requested for {name}",
            unit=name,
        )

    def _await_healthy(self, attempt: SyncAttempt) -> SyncAttempt:
        name = attempt.unit.name
        timeout = self.options.health_timeout
        logger.info(f"Waiting for {name} to be Healthy (timeout: {timeout:g}s)")

        def _converged() -> bool:
            app = self.applications.get(name)
            attempt.last_sync_state = self.applications.sync_state(app)
            attempt.last_health_state = self.applications.health_state(app)
            return (
                attempt.last_sync_state is SyncState.SYNCED
                and attempt.last_health_state is HealthState.HEALTHY
            )

        def _tick(elapsed: float) -> None:
            if self.options.approve_install_gates:
                self.recovery.approve_pending_install_gates()
            self._emit(
                EventKind.HEALTH_WAITING,
                f"{name}: sync={attempt.last_sync_state.value} "
                f"health={attempt.last_health_state.value} ({elapsed:.0f}s)",
                unit=name,
                elapsed=elapsed,
            )

        healthy = poll_until(
            _converged,
            timeout=timeout,
            interval=self.options.health_poll,
            clock=self.clock,
            on_tick=_tick,
        )
        attempt.finished_at = self.clock.now()

        if healthy:
            attempt.advance(UnitPhase.HEALTHY)
            attempt.outcome = Outcome.SUCCEEDED
            logger.info(f"{name}: Synced + Healthy")
            self._emit(EventKind.UNIT_SUCCEEDED, f"{name}: Synced + Healthy", unit=name)
            return attempt

        attempt.advance(UnitPhase.TIMED_OUT)
        attempt.outcome = Outcome.TIMED_OUT
        message = (
            f"{name}: Timeout after {timeout:g}s "
            f"(health={attempt.last_health_state.value}, "
            f"sync={attempt.last_sync_state.value})"
        )
        logger.warning(message)
        self._emit(EventKind.UNIT_TIMED_OUT, message, unit=name)
        return attempt

    # =========================================================================
    # Runs
    # =========================================================================

    def run(self, units: Iterable[Unit] | None = None) -> RunSummary:
        """Sync every unit in registry order.

        Raises:
            PreflightTimeout: If the pre-flight check fails
            UnitTimeout: If a unit times out and fail-fast is enabled
        """
        targets = tuple(units) if units is not None else self.registry.sync_order()

        if self.options.preflight:
            self.preflight(targets)

        self._emit(
            EventKind.RUN_STARTED,
            f"Starting staged sync of {len(targets)} apps "
            f"(each waits up to {self.options.health_timeout:g}s to become healthy)",
        )

        summary = RunSummary()
        for unit in targets:
            attempt = self.sync_unit(unit)
            summary.attempts.append(attempt)
            if self.options.fail_fast and attempt.outcome is Outcome.TIMED_OUT:
                raise UnitTimeout(
                    unit.name,
                    self.options.health_timeout,
                    attempt.last_sync_state.value,
                    attempt.last_health_state.value,
                )

        try:
            summary.statuses = self.status()
        except ClusterAPIError as e:
            logger.warning(f"Could not read final application status: {e.message}")

        self._emit(
            EventKind.RUN_FINISHED,
            f"Sync complete: {summary.processed} processed, "
            f"{len(summary.skipped)} skipped",
        )
        return summary

    def sync_one(self, name: str) -> SyncAttempt:
        """Sync a single unit by name, without the pre-flight check.

        Raises:
            UnknownUnit: If the registry has no unit with that name
        """
        unit = self.registry.get(name)
        return self.sync_unit(unit)

    def status(self) -> list[UnitStatus]:
        """Current sync/health of every Application in the GitOps namespace."""
        return self.applications.statuses()

    def set_auto_sync(self, enabled: bool) -> list[str]:
        """Enable or disable automated sync on every Application.

        Returns:
            Names of the Applications that were patched successfully
        """
        patched: list[str] = []
        for name in self.applications.list_names():
            if enabled:
                result = self.applications.enable_auto_sync(name)
            else:
                result = self.applications.disable_auto_sync(name)
            if result.success:
                patched.append(name)
            else:
                logger.warning(f"Could not update auto-sync on {name}: {result.stderr}")
        return patched
