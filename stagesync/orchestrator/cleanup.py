"""Removal of pre-installed operators that conflict with the GitOps stack.

Clusters that were provisioned with some operators already installed (NFD,
NVIDIA, Service Mesh, ...) need those installations removed before the
staged sync can take ownership. Run after teardown.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from loguru import logger

from stagesync.infra.k8s.controller import ClusterAPIError, KubernetesControllerSync

from .constants import (
    CATALOG_SOURCE_PATTERN,
    CLUSTER_SCOPED_INSTANCES,
    CONFLICTING_INSTALLATIONS,
    DEFAULT_CONSTANTS,
    MARKETPLACE_NAMESPACE,
    OPERATOR_NAMESPACES,
    SERVICE_MESH_PATTERN,
    SYSTEM_OPERATOR_NAMESPACE,
    ConflictingInstallation,
    SyncConstants,
)
from .events import EventKind, EventSink, SyncEvent, null_sink
from .executor import Executor, LiveExecutor
from .models import Deletion, DeletionOutcome, TeardownSummary


class ConflictCleaner:
    """Deletes conflicting operator instances, subscriptions and catalogs.

    Handles:
    - Declared operator instances (a named instance, or every instance of a kind)
    - Cluster-scoped instances (ClusterPolicy, NodeFeatureDiscovery, DSC, DSCI)
    - Subscriptions, CSVs and OperatorGroups in operator namespaces
    - Service Mesh subscriptions and CSVs in openshift-operators
    - RHOAI CatalogSources in openshift-marketplace
    """

    def __init__(
        self,
        client: KubernetesControllerSync,
        executor: Executor | None = None,
        *,
        constants: SyncConstants | None = None,
        sink: EventSink | None = None,
        installations: Iterable[ConflictingInstallation] = CONFLICTING_INSTALLATIONS,
        operator_namespaces: Iterable[str] = OPERATOR_NAMESPACES,
    ) -> None:
        self.client = client
        self.executor = executor or LiveExecutor(client)
        self.constants = constants or DEFAULT_CONSTANTS
        self.sink = sink or null_sink
        self.installations = tuple(installations)
        self.operator_namespaces = tuple(operator_namespaces)

    def run(self) -> TeardownSummary:
        """Run every cleanup step in order."""
        summary = TeardownSummary(dry_run=self.executor.dry_run)
        summary.deletions.extend(self.delete_operator_instances())
        summary.deletions.extend(self.delete_subscriptions_and_csvs())
        summary.deletions.extend(self.delete_catalog_sources())
        return summary

    # =========================================================================
    # Helpers
    # =========================================================================

    def _step(self, message: str) -> None:
        self.sink(SyncEvent(EventKind.TEARDOWN_STEP, message))

    def _names(
        self, kind: str, namespace: str | None
    ) -> list[tuple[str, str | None]]:
        """(name, namespace) of every resource of a kind; empty on API errors."""
        try:
            resources = self.client.list_resources(kind, namespace)
        except ClusterAPIError as e:
            logger.debug(f"Could not list {kind} in {namespace or 'all namespaces'}: {e.message}")
            return []
        return [
            (
                self.client.extract_field(r, ".metadata.name"),
                self.client.extract_field(r, ".metadata.namespace") or None,
            )
            for r in resources
        ]

    def _exists(self, kind: str, name: str, namespace: str | None) -> bool:
        try:
            return self.client.get_resource(kind, name, namespace) is not None
        except ClusterAPIError as e:
            logger.debug(f"Could not read {kind}/{name}: {e.message}")
            return False

    def _delete(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        timeout: str | None = None,
    ) -> Deletion:
        result = self.executor.delete(
            kind, name, namespace, wait=timeout is not None, timeout=timeout
        )
        if self.executor.dry_run:
            outcome = DeletionOutcome.PLANNED
        elif result.success:
            outcome = DeletionOutcome.DELETED
            location = f" in {namespace}" if namespace else ""
            self.sink(
                SyncEvent(
                    EventKind.RESOURCE_DELETED,
                    f"Deleted {kind}/{name}{location}",
                    unit=name,
                )
            )
        else:
            outcome = DeletionOutcome.FAILED
            logger.warning(f"Could not delete {kind}/{name}: {result.stderr.strip()}")
        return Deletion(kind, name, outcome, namespace)

    # =========================================================================
    # Steps
    # =========================================================================

    def delete_operator_instances(self) -> list[Deletion]:
        """Delete declared operator instances, then cluster-scoped ones."""
        self._step("Deleting operator instances...")
        timeout = self.constants.INSTANCE_DELETE_TIMEOUT
        deletions: list[Deletion] = []

        for item in self.installations:
            if not self.client.namespace_exists(item.namespace):
                continue

            if item.matches_all:
                for name, _ in self._names(item.instance_kind, item.namespace):
                    deletions.append(
                        self._delete(item.instance_kind, name, item.namespace, timeout)
                    )
            elif self._exists(item.instance_kind, item.instance_name, item.namespace):
                deletions.append(
                    self._delete(
                        item.instance_kind, item.instance_name, item.namespace, timeout
                    )
                )

        self._step("Checking for cluster-scoped instances...")
        for kind, name, kind_timeout in CLUSTER_SCOPED_INSTANCES:
            if name != "*":
                if self._exists(kind, name, None):
                    deletions.append(self._delete(kind, name, None, kind_timeout))
                continue
            for found, namespace in self._names(kind, None):
                deletions.append(self._delete(kind, found, namespace, kind_timeout))

        return deletions

    def delete_subscriptions_and_csvs(self) -> list[Deletion]:
        """Delete OLM objects in every operator namespace that exists.

        OperatorGroups in openshift-operators are system-owned and kept.
        """
        self._step("Deleting operator subscriptions and CSVs...")
        c = self.constants
        deletions: list[Deletion] = []

        for namespace in self.operator_namespaces:
            if not self.client.namespace_exists(namespace):
                continue

            kinds = [c.SUBSCRIPTION_RESOURCE, c.CSV_RESOURCE]
            if namespace != SYSTEM_OPERATOR_NAMESPACE:
                kinds.append(c.OPERATORGROUP_RESOURCE)

            for kind in kinds:
                for name, _ in self._names(kind, namespace):
                    deletions.append(self._delete(kind, name, namespace))

        if self.client.namespace_exists(SYSTEM_OPERATOR_NAMESPACE):
            deletions.extend(self._delete_service_mesh())

        return deletions

    def _delete_service_mesh(self) -> list[Deletion]:
        c = self.constants
        pattern = re.compile(SERVICE_MESH_PATTERN)
        deletions: list[Deletion] = []
        for kind in (c.SUBSCRIPTION_RESOURCE, c.CSV_RESOURCE):
            for name, _ in self._names(kind, SYSTEM_OPERATOR_NAMESPACE):
                if pattern.search(name):
                    deletions.append(self._delete(kind, name, SYSTEM_OPERATOR_NAMESPACE))
        return deletions

    def delete_catalog_sources(self) -> list[Deletion]:
        """Delete RHOAI/RHODS CatalogSources from the marketplace namespace."""
        self._step("Cleaning up cluster-scoped resources...")
        pattern = re.compile(CATALOG_SOURCE_PATTERN)
        kind = self.constants.CATALOGSOURCE_RESOURCE
        return [
            self._delete(kind, name, MARKETPLACE_NAMESPACE)
            for name, _ in self._names(kind, MARKETPLACE_NAMESPACE)
            if pattern.search(name)
        ]
