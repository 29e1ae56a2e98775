"""Data types shared by the registry and the orchestrators.

Units and readiness signals are static, immutable descriptions. Everything
else here (attempts, summaries) is per-run bookkeeping that is discarded
when the run ends; the cluster remains the only source of truth.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum

# =============================================================================
# Units
# =============================================================================


class UnitKind(str, Enum):
    """What a unit deploys."""

    OPERATOR = "operator"
    INSTANCE = "instance"
    CONFIG = "config"


@dataclass(frozen=True)
class CrdSignal:
    """Satisfied once the named CustomResourceDefinition is registered."""

    name: str

    def describe(self) -> str:
        return f"CRD {self.name}"


@dataclass(frozen=True)
class ControllerSignal:
    """Satisfied once a matching ClusterServiceVersion reports Succeeded."""

    name_prefix: str
    namespace: str

    def describe(self) -> str:
        return f"CSV {self.name_prefix}* in {self.namespace}"


@dataclass(frozen=True)
class ResourcePhaseSignal:
    """Satisfied once ``.status.phase`` of a resource equals the expected value."""

    kind: str
    name: str
    expected_phase: str
    namespace: str | None = None

    def describe(self) -> str:
        location = f" in {self.namespace}" if self.namespace else ""
        return f"{self.kind} {self.name}{location} phase={self.expected_phase}"


@dataclass(frozen=True)
class AllOfSignal:
    """Satisfied once every member signal is satisfied, checked in order."""

    signals: tuple[ReadinessSignal, ...]

    def describe(self) -> str:
        return " + ".join(signal.describe() for signal in self.signals)


ReadinessSignal = CrdSignal | ControllerSignal | ResourcePhaseSignal | AllOfSignal


@dataclass(frozen=True)
class Unit:
    """A deployable entity backed by one GitOps Application."""

    name: str
    kind: UnitKind = UnitKind.OPERATOR
    dependencies: tuple[str, ...] = ()
    readiness_signal: ReadinessSignal | None = None


# =============================================================================
# Observed State
# =============================================================================


class SyncState(str, Enum):
    """Sync status reported by the reconciler."""

    UNKNOWN = "Unknown"
    OUT_OF_SYNC = "OutOfSync"
    SYNCED = "Synced"

    @classmethod
    def parse(cls, value: str | None) -> SyncState:
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class HealthState(str, Enum):
    """Health status reported by the reconciler."""

    UNKNOWN = "Unknown"
    PROGRESSING = "Progressing"
    HEALTHY = "Healthy"
    DEGRADED = "Degraded"
    SUSPENDED = "Suspended"
    MISSING = "Missing"

    @classmethod
    def parse(cls, value: str | None) -> HealthState:
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class ProbeOutcome(str, Enum):
    """Result of waiting for a readiness signal."""

    READY = "ready"
    TIMED_OUT = "timed_out"


# =============================================================================
# Sync Bookkeeping
# =============================================================================


class Outcome(str, Enum):
    """Final result of processing one unit."""

    PENDING = "Pending"
    SUCCEEDED = "Succeeded"
    TIMED_OUT = "TimedOut"
    SKIPPED = "Skipped"


class UnitPhase(str, Enum):
    """Per-unit state machine position during a run."""

    NOT_FOUND = "NotFound"
    AWAITING_SIGNAL = "AwaitingSignal"
    CONVERGING = "Converging"
    HEALTHY = "Healthy"
    TIMED_OUT = "TimedOut"
    SKIPPED = "Skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (UnitPhase.HEALTHY, UnitPhase.TIMED_OUT, UnitPhase.SKIPPED)


# Allowed transitions of the per-unit state machine
_TRANSITIONS: dict[UnitPhase, frozenset[UnitPhase]] = {
    UnitPhase.NOT_FOUND: frozenset({UnitPhase.AWAITING_SIGNAL, UnitPhase.SKIPPED}),
    UnitPhase.AWAITING_SIGNAL: frozenset({UnitPhase.CONVERGING}),
    UnitPhase.CONVERGING: frozenset({UnitPhase.HEALTHY, UnitPhase.TIMED_OUT}),
    UnitPhase.HEALTHY: frozenset(),
    UnitPhase.TIMED_OUT: frozenset(),
    UnitPhase.SKIPPED: frozenset(),
}


@dataclass
class SyncAttempt:
    """Ephemeral record of one unit being processed in one run."""

    unit: Unit
    started_at: float = field(default_factory=time.monotonic)
    last_sync_state: SyncState = SyncState.UNKNOWN
    last_health_state: HealthState = HealthState.UNKNOWN
    outcome: Outcome = Outcome.PENDING
    phase: UnitPhase = UnitPhase.NOT_FOUND
    signal_outcome: ProbeOutcome | None = None
    cleared_failed_operation: bool = False
    finished_at: float | None = None

    def advance(self, phase: UnitPhase) -> None:
        """Move the state machine forward.

        Raises:
            ValueError: If the transition is not allowed
        """
        if phase not in _TRANSITIONS[self.phase]:
            raise ValueError(
                f"{self.unit.name}: invalid transition {self.phase.value} -> {phase.value}"
            )
        self.phase = phase

    @property
    def duration(self) -> float | None:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at


@dataclass(frozen=True)
class UnitStatus:
    """One row of the Application sync/health table."""

    name: str
    sync_state: str
    health_state: str


@dataclass(frozen=True)
class ApplicationSetStatus:
    """One row of the ApplicationSet table."""

    name: str
    generators: int


@dataclass
class RunSummary:
    """Result of a sync run."""

    attempts: list[SyncAttempt] = field(default_factory=list)
    statuses: list[UnitStatus] = field(default_factory=list)

    def _names(self, outcome: Outcome) -> list[str]:
        return [a.unit.name for a in self.attempts if a.outcome == outcome]

    @property
    def succeeded(self) -> list[str]:
        return self._names(Outcome.SUCCEEDED)

    @property
    def timed_out(self) -> list[str]:
        return self._names(Outcome.TIMED_OUT)

    @property
    def skipped(self) -> list[str]:
        return self._names(Outcome.SKIPPED)

    @property
    def processed(self) -> int:
        """Units that were found and driven (succeeded or timed out)."""
        return len(self.succeeded) + len(self.timed_out)


# =============================================================================
# Teardown Bookkeeping
# =============================================================================


class DeletionOutcome(str, Enum):
    """What happened to one resource during teardown."""

    ABSENT = "absent"
    DELETED = "deleted"
    FORCED = "forced"
    PLANNED = "planned"
    FAILED = "failed"


@dataclass(frozen=True)
class Deletion:
    """Record of one deletion step."""

    kind: str
    name: str
    outcome: DeletionOutcome
    namespace: str | None = None
    drift: bool = False


@dataclass
class TeardownSummary:
    """Result of a teardown or clean run."""

    disabled_applicationsets: list[str] = field(default_factory=list)
    deletions: list[Deletion] = field(default_factory=list)
    dry_run: bool = False

    def _count(self, *outcomes: DeletionOutcome) -> int:
        return sum(1 for d in self.deletions if d.outcome in outcomes)

    @property
    def deleted(self) -> int:
        return self._count(DeletionOutcome.DELETED, DeletionOutcome.FORCED)

    @property
    def forced(self) -> int:
        return self._count(DeletionOutcome.FORCED)

    @property
    def planned(self) -> int:
        return self._count(DeletionOutcome.PLANNED)

    @property
    def failed(self) -> int:
        return self._count(DeletionOutcome.FAILED)

    @property
    def drift(self) -> list[str]:
        return [d.name for d in self.deletions if d.drift]
