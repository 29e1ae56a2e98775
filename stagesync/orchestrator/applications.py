"""Accessors for GitOps Application and ApplicationSet resources."""

from __future__ import annotations

from typing import Any

from stagesync.infra.k8s.controller import CommandResult, KubernetesControllerSync

from .constants import DEFAULT_CONSTANTS, DISABLE_GENERATORS_PATCH, SyncConstants
from .executor import Executor
from .models import ApplicationSetStatus, HealthState, SyncState, UnitStatus


class ApplicationClient:
    """Reads and mutates Applications in the GitOps namespace.

    Reads always hit the cluster. Mutations go through the executor so a
    dry run never changes anything.
    """

    def __init__(
        self,
        client: KubernetesControllerSync,
        executor: Executor,
        constants: SyncConstants | None = None,
    ) -> None:
        self.client = client
        self.executor = executor
        self.constants = constants or DEFAULT_CONSTANTS

    @property
    def namespace(self) -> str:
        return self.constants.GITOPS_NAMESPACE

    @property
    def kind(self) -> str:
        return self.constants.APPLICATION_RESOURCE

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, name: str) -> dict[str, Any] | None:
        return self.client.get_resource(self.kind, name, self.namespace)

    def exists(self, name: str) -> bool:
        return self.get(name) is not None

    def list_applications(self) -> list[dict[str, Any]]:
        return self.client.list_resources(self.kind, self.namespace)

    def list_names(self) -> list[str]:
        return [
            self.client.extract_field(app, ".metadata.name")
            for app in self.list_applications()
        ]

    def sync_state(self, app: dict[str, Any] | None) -> SyncState:
        return SyncState.parse(self.client.extract_field(app, "{.status.sync.status}"))

    def health_state(self, app: dict[str, Any] | None) -> HealthState:
        return HealthState.parse(
            self.client.extract_field(app, "{.status.health.status}")
        )

    def operation_phase(self, app: dict[str, Any] | None) -> str:
        return self.client.extract_field(app, "{.status.operationState.phase}")

    def has_cascade_finalizer(self, app: dict[str, Any] | None) -> bool:
        finalizers = (app or {}).get("metadata", {}).get("finalizers") or []
        return self.constants.CASCADE_FINALIZER in finalizers

    def statuses(self) -> list[UnitStatus]:
        """Sync/health row for every Application, sorted by name."""
        rows = [
            UnitStatus(
                name=self.client.extract_field(app, ".metadata.name"),
                sync_state=self.client.extract_field(app, ".status.sync.status")
                or SyncState.UNKNOWN.value,
                health_state=self.client.extract_field(app, ".status.health.status")
                or HealthState.UNKNOWN.value,
            )
            for app in self.list_applications()
        ]
        return sorted(rows, key=lambda row: row.name)

    def list_applicationsets(self) -> list[dict[str, Any]]:
        return self.client.list_resources(
            self.constants.APPLICATIONSET_RESOURCE, self.namespace
        )

    def applicationset_statuses(self) -> list[ApplicationSetStatus]:
        rows = [
            ApplicationSetStatus(
                name=self.client.extract_field(appset, ".metadata.name"),
                generators=len(appset.get("spec", {}).get("generators") or []),
            )
            for appset in self.list_applicationsets()
        ]
        return sorted(rows, key=lambda row: row.name)

    # =========================================================================
    # Mutations
    # =========================================================================

    def enable_auto_sync(self, name: str) -> CommandResult:
        """Turn on automated sync (prune + self-heal) with the retry policy."""
        return self.executor.patch(
            self.kind, name, self.namespace, self.constants.auto_sync_patch
        )

    def disable_auto_sync(self, name: str) -> CommandResult:
        return self.executor.patch(
            self.kind, name, self.namespace, self.constants.disable_auto_sync_patch
        )

    def request_refresh(self, name: str) -> CommandResult:
        """Ask the reconciler for an immediate refresh."""
        return self.executor.annotate(
            self.kind,
            name,
            self.namespace,
            self.constants.REFRESH_ANNOTATION,
            self.constants.REFRESH_VALUE,
        )

    def start_sync_operation(self, name: str) -> CommandResult:
        return self.executor.patch(
            self.kind, name, self.namespace, self.constants.retry_operation_patch
        )

    def add_cascade_finalizer(self, name: str) -> CommandResult:
        return self.executor.patch(
            self.kind, name, self.namespace, self.constants.cascade_finalizer_patch
        )

    def disable_generators(self, appset_name: str) -> CommandResult:
        return self.executor.patch(
            self.constants.APPLICATIONSET_RESOURCE,
            appset_name,
            self.namespace,
            DISABLE_GENERATORS_PATCH,
            patch_type="json",
        )
