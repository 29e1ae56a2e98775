"""Structured progress events emitted by the orchestrators.

The orchestrators never print. They report what they are doing through an
`EventSink` callback, and the CLI decides how to render it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum


class EventLevel(str, Enum):
    PROGRESS = "progress"
    STEP = "step"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class EventKind(str, Enum):
    """Everything an orchestrator can report."""

    # Sync
    CLUSTER_CONNECTED = "cluster_connected"
    PREFLIGHT_STARTED = "preflight_started"
    PREFLIGHT_WAITING = "preflight_waiting"
    PREFLIGHT_PASSED = "preflight_passed"
    RUN_STARTED = "run_started"
    UNIT_WAITING = "unit_waiting"
    UNIT_STARTED = "unit_started"
    UNIT_SKIPPED = "unit_skipped"
    FAILED_OPERATION_CLEARED = "failed_operation_cleared"
    SIGNAL_WAITING = "signal_waiting"
    SIGNAL_READY = "signal_ready"
    SIGNAL_TIMED_OUT = "signal_timed_out"
    CONVERGENCE_TRIGGERED = "convergence_triggered"
    INSTALL_GATE_APPROVED = "install_gate_approved"
    HEALTH_WAITING = "health_waiting"
    UNIT_SUCCEEDED = "unit_succeeded"
    UNIT_TIMED_OUT = "unit_timed_out"
    RUN_FINISHED = "run_finished"
    # Teardown / clean
    TEARDOWN_STEP = "teardown_step"
    APPLICATIONSET_DISABLED = "applicationset_disabled"
    APPLICATIONSET_DELETED = "applicationset_deleted"
    APPLICATION_ABSENT = "application_absent"
    APPLICATION_DELETING = "application_deleting"
    DELETION_WAITING = "deletion_waiting"
    APPLICATION_DELETED = "application_deleted"
    APPLICATION_FORCE_DELETED = "application_force_deleted"
    RESOURCE_DELETED = "resource_deleted"
    NAMESPACE_DELETING = "namespace_deleting"
    NAMESPACE_DELETED = "namespace_deleted"
    ACTION_FAILED = "action_failed"
    # Dry-run
    ACTION_PLANNED = "action_planned"


_LEVELS: dict[EventKind, EventLevel] = {
    EventKind.PREFLIGHT_WAITING: EventLevel.PROGRESS,
    EventKind.UNIT_WAITING: EventLevel.PROGRESS,
    EventKind.SIGNAL_WAITING: EventLevel.PROGRESS,
    EventKind.HEALTH_WAITING: EventLevel.PROGRESS,
    EventKind.DELETION_WAITING: EventLevel.PROGRESS,
    EventKind.PREFLIGHT_STARTED: EventLevel.STEP,
    EventKind.UNIT_STARTED: EventLevel.STEP,
    EventKind.TEARDOWN_STEP: EventLevel.STEP,
    EventKind.APPLICATION_DELETING: EventLevel.STEP,
    EventKind.UNIT_SKIPPED: EventLevel.WARN,
    EventKind.SIGNAL_TIMED_OUT: EventLevel.WARN,
    EventKind.UNIT_TIMED_OUT: EventLevel.WARN,
    EventKind.APPLICATION_FORCE_DELETED: EventLevel.WARN,
    EventKind.ACTION_FAILED: EventLevel.ERROR,
}


@dataclass(frozen=True)
class SyncEvent:
    """One thing that happened during a run."""

    kind: EventKind
    message: str
    unit: str | None = None
    elapsed: float | None = None
    data: dict[str, str] = field(default_factory=dict)

    @property
    def level(self) -> EventLevel:
        return _LEVELS.get(self.kind, EventLevel.INFO)

    @property
    def is_progress(self) -> bool:
        return self.level == EventLevel.PROGRESS


EventSink = Callable[[SyncEvent], None]


def null_sink(event: SyncEvent) -> None:
    """Discard events."""
