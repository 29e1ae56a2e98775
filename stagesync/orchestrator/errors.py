"""Error types raised by the sync and teardown orchestrators."""

from __future__ import annotations

from collections.abc import Iterable


class StageSyncError(Exception):
    """Base error for structural failures surfaced to the CLI."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ConfigurationError(StageSyncError):
    """Invalid settings, registry file or unit table."""


class UnknownUnit(StageSyncError):
    """A unit name was not found in the registry."""

    def __init__(self, name: str, details: str | None = None):
        self.name = name
        super().__init__(f"Unknown unit: {name}", details)


class CyclicDependency(StageSyncError):
    """The unit dependency graph contains a cycle."""

    def __init__(self, units: Iterable[str]):
        self.units = tuple(units)
        super().__init__(
            "Cyclic dependency between units",
            details=", ".join(self.units),
        )


class PreflightTimeout(StageSyncError):
    """Not every unit materialized before the pre-flight budget ran out."""

    def __init__(self, missing: Iterable[str], timeout: float):
        self.missing = tuple(missing)
        self.timeout = timeout
        super().__init__(
            f"Application '{self.missing[0]}' not found after {timeout:g}s"
            if self.missing
            else f"Pre-flight check timed out after {timeout:g}s",
            details="Missing: "
            + ", ".join(self.missing)
            + "\nCreate the applications first (deploy the ApplicationSets), then re-run.",
        )


class UnitTimeout(StageSyncError):
    """A unit did not become Synced + Healthy in time (fail-fast mode only)."""

    def __init__(self, unit: str, timeout: float, sync_state: str, health_state: str):
        self.unit = unit
        self.timeout = timeout
        self.sync_state = sync_state
        self.health_state = health_state
        super().__init__(
            f"{unit}: not healthy after {timeout:g}s",
            details=f"sync={sync_state} health={health_state}",
        )
