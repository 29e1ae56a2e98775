"""Staged-sync, teardown and cleanup orchestration over GitOps Applications.

Example:
    from stagesync.infra.k8s import get_k8s_controller_sync
    from stagesync.orchestrator import SyncOrchestrator, default_registry

    orchestrator = SyncOrchestrator(default_registry(), get_k8s_controller_sync())
    summary = orchestrator.run()
"""

from .applications import ApplicationClient
from .cleanup import ConflictCleaner
from .constants import DEFAULT_CONSTANTS, SyncConstants
from .errors import (
    ConfigurationError,
    CyclicDependency,
    PreflightTimeout,
    StageSyncError,
    UnitTimeout,
    UnknownUnit,
)
from .events import EventKind, EventLevel, EventSink, SyncEvent
from .executor import DryRunExecutor, Executor, LiveExecutor, PlannedAction
from .models import (
    AllOfSignal,
    ControllerSignal,
    CrdSignal,
    Deletion,
    DeletionOutcome,
    HealthState,
    Outcome,
    ProbeOutcome,
    ReadinessSignal,
    ResourcePhaseSignal,
    RunSummary,
    SyncAttempt,
    SyncState,
    TeardownSummary,
    Unit,
    UnitKind,
    UnitPhase,
    UnitStatus,
)
from .polling import Clock, SystemClock, poll_until
from .prober import ReadinessProber
from .recovery import FailureRecovery
from .registry import UnitRegistry, default_config_registry, default_registry
from .sync import SyncOptions, SyncOrchestrator
from .teardown import TeardownOrchestrator

__all__ = [
    # Orchestrators
    "SyncOrchestrator",
    "SyncOptions",
    "TeardownOrchestrator",
    "ConflictCleaner",
    "ReadinessProber",
    "FailureRecovery",
    "ApplicationClient",
    # Registry
    "UnitRegistry",
    "default_registry",
    "default_config_registry",
    # Execution
    "Executor",
    "LiveExecutor",
    "DryRunExecutor",
    "PlannedAction",
    # Events
    "EventKind",
    "EventLevel",
    "EventSink",
    "SyncEvent",
    # Time
    "Clock",
    "SystemClock",
    "poll_until",
    # Models
    "Unit",
    "UnitKind",
    "CrdSignal",
    "ControllerSignal",
    "ResourcePhaseSignal",
    "AllOfSignal",
    "ReadinessSignal",
    "SyncAttempt",
    "SyncState",
    "HealthState",
    "Outcome",
    "ProbeOutcome",
    "UnitPhase",
    "UnitStatus",
    "RunSummary",
    "Deletion",
    "DeletionOutcome",
    "TeardownSummary",
    # Constants
    "SyncConstants",
    "DEFAULT_CONSTANTS",
    # Errors
    "StageSyncError",
    "ConfigurationError",
    "UnknownUnit",
    "CyclicDependency",
    "PreflightTimeout",
    "UnitTimeout",
]
