"""Teardown orchestrator.

Removes everything the sync orchestrator manages, in reverse dependency
order, relying on the reconciler's cascade deletion:

1. disable every ApplicationSet generator so nothing is recreated,
2. delete each Application (cascade finalizer ensured) and wait for it,
   stripping finalizers and force-deleting on timeout,
3. delete Applications the registry does not know about (drift),
4. delete the ApplicationSets,
5. sweep the managed namespaces.

Every deletion tolerates the resource already being gone.
"""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger

from stagesync.infra.k8s.controller import ClusterAPIError, KubernetesControllerSync

from .applications import ApplicationClient
from .constants import (
    DEFAULT_CONSTANTS,
    MANAGED_NAMESPACES,
    REMOVE_FINALIZERS_PATCH,
    SyncConstants,
)
from .events import EventKind, EventSink, SyncEvent, null_sink
from .executor import Executor, LiveExecutor
from .models import Deletion, DeletionOutcome, HealthState, SyncState, TeardownSummary
from .polling import Clock, SystemClock, poll_until
from .registry import UnitRegistry


class TeardownOrchestrator:
    """Reverse-order, cascade-aware removal of all managed Applications."""

    def __init__(
        self,
        registry: UnitRegistry,
        client: KubernetesControllerSync,
        executor: Executor | None = None,
        *,
        constants: SyncConstants | None = None,
        clock: Clock | None = None,
        sink: EventSink | None = None,
        managed_namespaces: Iterable[str] = MANAGED_NAMESPACES,
    ) -> None:
        self.registry = registry
        self.client = client
        self.executor = executor or LiveExecutor(client)
        self.constants = constants or DEFAULT_CONSTANTS
        self.clock = clock or SystemClock()
        self.sink = sink or null_sink
        self.managed_namespaces = tuple(managed_namespaces)
        self.applications = ApplicationClient(client, self.executor, self.constants)

    @property
    def dry_run(self) -> bool:
        return self.executor.dry_run

    def _emit(
        self,
        kind: EventKind,
        message: str,
        unit: str | None = None,
        elapsed: float | None = None,
    ) -> None:
        self.sink(SyncEvent(kind, message, unit=unit, elapsed=elapsed))

    def run(self) -> TeardownSummary:
        """Run every teardown step in order."""
        summary = TeardownSummary(dry_run=self.dry_run)

        summary.disabled_applicationsets = self.disable_applicationsets()

        self._emit(
            EventKind.TEARDOWN_STEP, "Deleting applications in dependency order..."
        )
        for unit in self.registry.cleanup_order():
            summary.deletions.append(self.delete_application(unit.name))

        summary.deletions.extend(self.delete_drift())
        summary.deletions.extend(self.delete_applicationsets())
        summary.deletions.extend(self.sweep_namespaces())
        return summary

    # =========================================================================
    # ApplicationSets
    # =========================================================================

    def _list_applicationsets(self) -> list[str]:
        try:
            appsets = self.applications.list_applicationsets()
        except ClusterAPIError as e:
            logger.debug(f"Could not list ApplicationSets: {e.message}")
            return []
        return [self.client.extract_field(a, ".metadata.name") for a in appsets]

    def disable_applicationsets(self) -> list[str]:
        """Empty the generators of every ApplicationSet.

        Returns:
            Names of the ApplicationSets that were disabled
        """
        self._emit(
            EventKind.TEARDOWN_STEP,
            "Disabling ApplicationSets (prevents app recreation)...",
        )
        disabled: list[str] = []
        for name in self._list_applicationsets():
            result = self.applications.disable_generators(name)
            if not result.success:
                logger.debug(f"Could not disable ApplicationSet {name}: {result.stderr}")
                continue
            disabled.append(name)
            self._emit(EventKind.APPLICATIONSET_DISABLED, f"Disabling: {name}", unit=name)
        return disabled

    def delete_applicationsets(self) -> list[Deletion]:
        self._emit(EventKind.TEARDOWN_STEP, "Deleting ApplicationSets...")
        kind = self.constants.APPLICATIONSET_RESOURCE
        namespace = self.applications.namespace

        deletions: list[Deletion] = []
        for name in self._list_applicationsets():
            result = self.executor.delete(kind, name, namespace)
            deletions.append(
                Deletion(kind, name, self._outcome(result.success), namespace)
            )
            if result.success:
                self._emit(
                    EventKind.APPLICATIONSET_DELETED,
                    f"Deleted ApplicationSet: {name}",
                    unit=name,
                )
        return deletions

    def _outcome(self, success: bool) -> DeletionOutcome:
        if self.dry_run:
            return DeletionOutcome.PLANNED
        return DeletionOutcome.DELETED if success else DeletionOutcome.FAILED

    # =========================================================================
    # Applications
    # =========================================================================

    def delete_application(self, name: str, *, drift: bool = False) -> Deletion:
        """Cascade-delete one Application and wait for it to disappear.

        On timeout the finalizers are stripped and the delete is repeated
        with a zero grace period. If that fails too the outcome is FAILED.
        In dry-run mode nothing is deleted and nothing is awaited.
        """
        kind = self.applications.kind
        namespace = self.applications.namespace

        try:
            app = self.applications.get(name)
        except ClusterAPIError as e:
            logger.debug(f"Could not read application {name}: {e.message}")
            app = None

        if app is None:
            self._emit(
                EventKind.APPLICATION_ABSENT, f"App '{name}' not found, skipping", unit=name
            )
            return Deletion(kind, name, DeletionOutcome.ABSENT, namespace, drift)

        self._emit(
            EventKind.APPLICATION_DELETING, f"Deleting application: {name}", unit=name
        )

        if not self.applications.has_cascade_finalizer(app):
            logger.info(f"Adding cascade finalizer to {name}")
            self.applications.add_cascade_finalizer(name)

        result = self.executor.delete(kind, name, namespace, wait=False)
        if self.dry_run:
            return Deletion(kind, name, DeletionOutcome.PLANNED, namespace, drift)
        if not result.success:
            logger.warning(f"Delete of {name} reported: {result.stderr.strip()}")

        if self._wait_for_deletion(name):
            self._emit(EventKind.APPLICATION_DELETED, f"{name}: Deleted", unit=name)
            return Deletion(kind, name, DeletionOutcome.DELETED, namespace, drift)

        if not self._force_delete(name):
            return Deletion(kind, name, DeletionOutcome.FAILED, namespace, drift)
        return Deletion(kind, name, DeletionOutcome.FORCED, namespace, drift)

    def _wait_for_deletion(self, name: str) -> bool:
        logger.info(f"Waiting for {name} to be deleted (cascade)")
        last: dict[str, str] = {
            "sync": SyncState.UNKNOWN.value,
            "health": HealthState.UNKNOWN.value,
        }

        def _gone() -> bool:
            app = self.applications.get(name)
            if app is None:
                return True
            last["sync"] = self.applications.sync_state(app).value
            last["health"] = self.applications.health_state(app).value
            return False

        return poll_until(
            _gone,
            timeout=self.constants.DELETION_TIMEOUT,
            interval=self.constants.DELETION_POLL,
            clock=self.clock,
            on_tick=lambda elapsed: self._emit(
                EventKind.DELETION_WAITING,
                f"{name}: sync={last['sync']} health={last['health']} "
                f"({elapsed:.0f}s)...",
                unit=name,
                elapsed=elapsed,
            ),
        )

    def _force_delete(self, name: str) -> bool:
        kind = self.applications.kind
        namespace = self.applications.namespace

        logger.warning(f"{name}: Timeout waiting for deletion, forcing removal")
        self.executor.patch(
            kind, name, namespace, REMOVE_FINALIZERS_PATCH, patch_type="json"
        )
        result = self.executor.delete(
            kind,
            name,
            namespace,
            grace_period=0,
            wait=True,
            timeout=self.constants.FORCE_DELETE_TIMEOUT,
        )
        if not result.success:
            logger.warning(f"Force delete of {name} failed: {result.stderr.strip()}")
            self._emit(
                EventKind.ACTION_FAILED,
                f"{name}: Force delete failed, application is still present",
                unit=name,
            )
            return False

        self._emit(
            EventKind.APPLICATION_FORCE_DELETED,
            f"{name}: Timeout waiting for deletion, finalizers removed and deleted",
            unit=name,
        )
        return True

    def delete_drift(self) -> list[Deletion]:
        """Delete Applications that exist but are not in the registry."""
        try:
            present = self.applications.list_names()
        except ClusterAPIError as e:
            logger.debug(f"Could not list remaining applications: {e.message}")
            return []

        known = self.registry.all_names()
        drift = [name for name in present if name not in known]
        if not drift:
            return []

        self._emit(EventKind.TEARDOWN_STEP, "Deleting remaining applications...")
        return [self.delete_application(name, drift=True) for name in drift]

    # =========================================================================
    # Namespaces
    # =========================================================================

    def sweep_namespaces(self) -> list[Deletion]:
        """Delete the managed namespaces that still exist."""
        self._emit(EventKind.TEARDOWN_STEP, "Cleaning up any remaining namespaces...")

        deletions: list[Deletion] = []
        for namespace in self.managed_namespaces:
            if not self.client.namespace_exists(namespace):
                continue

            self._emit(
                EventKind.NAMESPACE_DELETING, f"Deleting namespace: {namespace}"
            )
            self._strip_finalizers(namespace)

            result = self.executor.delete_namespace(
                namespace, timeout=self.constants.NAMESPACE_DELETE_TIMEOUT
            )
            if not result.success:
                logger.warning(
                    f"Namespace {namespace} not removed: {result.stderr.strip()}"
                )
            else:
                self._emit(
                    EventKind.NAMESPACE_DELETED, f"Namespace {namespace} deleted"
                )
            deletions.append(
                Deletion("namespace", namespace, self._outcome(result.success))
            )
        return deletions

    def _strip_finalizers(self, namespace: str) -> None:
        """Remove finalizers from workload resources left in a namespace."""
        for kind in self.constants.SWEEP_RESOURCE_KINDS:
            try:
                resources = self.client.list_resources(kind, namespace)
            except ClusterAPIError as e:
                logger.debug(f"Could not list {kind} in {namespace}: {e.message}")
                continue

            for resource in resources:
                if not resource.get("metadata", {}).get("finalizers"):
                    continue
                name = self.client.extract_field(resource, ".metadata.name")
                result = self.executor.patch(
                    kind, name, namespace, REMOVE_FINALIZERS_PATCH, patch_type="json"
                )
                if not result.success:
                    logger.debug(f"Could not strip finalizers from {kind}/{name}")
