"""Readiness prober.

Blocks, with bounded polling, until a unit's readiness signal holds. A
timeout is a soft outcome: the caller logs it and carries on, since the
reconciler keeps retrying in the background.
"""

from __future__ import annotations

from loguru import logger

from stagesync.infra.k8s.controller import ClusterAPIError, KubernetesControllerSync

from .constants import DEFAULT_CONSTANTS, SyncConstants
from .events import EventKind, EventSink, SyncEvent, null_sink
from .models import (
    AllOfSignal,
    ControllerSignal,
    CrdSignal,
    ProbeOutcome,
    ReadinessSignal,
    ResourcePhaseSignal,
)
from .polling import Clock, SystemClock, poll_until


class ReadinessProber:
    """Evaluates and waits for readiness signals."""

    def __init__(
        self,
        client: KubernetesControllerSync,
        *,
        constants: SyncConstants | None = None,
        clock: Clock | None = None,
        sink: EventSink | None = None,
        poll_interval: float | None = None,
    ) -> None:
        self.client = client
        self.constants = constants or DEFAULT_CONSTANTS
        self.clock = clock or SystemClock()
        self.sink = sink or null_sink
        self.poll_interval = (
            poll_interval if poll_interval is not None else self.constants.SIGNAL_POLL
        )

    # =========================================================================
    # Predicates
    # =========================================================================

    def is_satisfied(self, signal: ReadinessSignal) -> bool:
        """Check a signal once.

        Raises:
            ClusterAPIError: If the cluster read fails
        """
        if isinstance(signal, CrdSignal):
            return (
                self.client.get_resource(self.constants.CRD_RESOURCE, signal.name)
                is not None
            )
        if isinstance(signal, ControllerSignal):
            return self._controller_succeeded(signal)
        if isinstance(signal, ResourcePhaseSignal):
            return self.observed_phase(signal) == signal.expected_phase
        return all(self.is_satisfied(member) for member in signal.signals)

    def _controller_succeeded(self, signal: ControllerSignal) -> bool:
        csvs = self.client.list_resources(
            self.constants.CSV_RESOURCE, signal.namespace
        )
        for csv in csvs:
            name = self.client.extract_field(csv, ".metadata.name")
            if not name.startswith(signal.name_prefix):
                continue
            if self.client.extract_field(csv, ".status.phase") == "Succeeded":
                return True
        return False

    def observed_phase(self, signal: ResourcePhaseSignal) -> str:
        resource = self.client.get_resource(signal.kind, signal.name, signal.namespace)
        return self.client.extract_field(resource, "{.status.phase}")

    # =========================================================================
    # Waiting
    # =========================================================================

    def await_ready(
        self,
        signal: ReadinessSignal,
        timeout: float | None = None,
        *,
        unit: str | None = None,
    ) -> ProbeOutcome:
        """Wait until a signal holds or the timeout elapses.

        Members of an `AllOfSignal` are awaited one after another, each with
        the full timeout. Never raises on timeout.

        Args:
            signal: Signal to wait for
            timeout: Seconds to wait (defaults to SIGNAL_TIMEOUT)
            unit: Unit name used in emitted events

        Returns:
            READY if the signal held, TIMED_OUT otherwise
        """
        budget = timeout if timeout is not None else self.constants.SIGNAL_TIMEOUT

        if isinstance(signal, AllOfSignal):
            outcome = ProbeOutcome.READY
            for member in signal.signals:
                result = self.await_ready(member, budget, unit=unit)
                if result is ProbeOutcome.TIMED_OUT:
                    outcome = ProbeOutcome.TIMED_OUT
            return outcome

        description = signal.describe()

        def _tick(elapsed: float) -> None:
            detail = description
            if isinstance(signal, ResourcePhaseSignal):
                try:
                    phase = self.observed_phase(signal) or "NotFound"
                except ClusterAPIError:
                    phase = "NotFound"
                detail = f"{signal.kind} {signal.name}: phase={phase}"
            self.sink(
                SyncEvent(
                    EventKind.SIGNAL_WAITING,
                    f"Waiting for {detail} ({elapsed:.0f}s)...",
                    unit=unit,
                    elapsed=elapsed,
                )
            )

        ready = poll_until(
            lambda: self.is_satisfied(signal),
            timeout=budget,
            interval=self.poll_interval,
            clock=self.clock,
            on_tick=_tick,
        )

        if ready:
            logger.info(f"Readiness signal satisfied: {description}")
            self.sink(
                SyncEvent(EventKind.SIGNAL_READY, f"Ready: {description}", unit=unit)
            )
            return ProbeOutcome.READY

        logger.warning(f"Timeout waiting for {description} after {budget:g}s")
        self.sink(
            SyncEvent(
                EventKind.SIGNAL_TIMED_OUT,
                f"Timeout waiting for {description} (will rely on reconciler retry)",
                unit=unit,
            )
        )
        return ProbeOutcome.TIMED_OUT
