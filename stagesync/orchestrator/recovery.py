"""Failure recovery helpers used while a unit converges.

Both operations are idempotent and safe to call on every poll tick.
"""

from __future__ import annotations

from loguru import logger

from stagesync.infra.k8s.controller import ClusterAPIError, KubernetesControllerSync

from .applications import ApplicationClient
from .constants import APPROVE_INSTALL_PLAN_PATCH, DEFAULT_CONSTANTS, SyncConstants
from .events import EventKind, EventSink, SyncEvent, null_sink
from .executor import Executor


class FailureRecovery:
    """Unblocks convergence without manual intervention.

    Handles:
    - Clearing a Failed last sync operation so a new attempt can start
    - Approving InstallPlans that wait for manual approval
    """

    def __init__(
        self,
        client: KubernetesControllerSync,
        executor: Executor,
        *,
        constants: SyncConstants | None = None,
        sink: EventSink | None = None,
    ) -> None:
        self.client = client
        self.executor = executor
        self.constants = constants or DEFAULT_CONSTANTS
        self.sink = sink or null_sink
        self.applications = ApplicationClient(client, executor, self.constants)

    def clear_failed_reconciliation(self, unit: str) -> bool:
        """Start a fresh sync operation if the last one Failed.

        Args:
            unit: Application name

        Returns:
            True if a retry was issued, False if nothing needed clearing
        """
        try:
            app = self.applications.get(unit)
        except ClusterAPIError as e:
            logger.debug(f"Could not read operation state of {unit}: {e.message}")
            return False

        if self.applications.operation_phase(app) != "Failed":
            return False

        logger.info(f"Clearing failed sync state for {unit}")
        result = self.applications.start_sync_operation(unit)
        if not result.success:
            logger.debug(f"Retry patch for {unit} failed: {result.stderr.strip()}")
            return False

        self.sink(
            SyncEvent(
                EventKind.FAILED_OPERATION_CLEARED,
                f"Cleared failed sync state for {unit}",
                unit=unit,
            )
        )
        return True

    def approve_pending_install_gates(self, namespace: str | None = None) -> list[str]:
        """Approve every InstallPlan in a namespace that is not yet approved.

        Best-effort: API failures are logged at debug level and ignored.

        Args:
            namespace: Namespace to scan (defaults to INSTALL_GATE_NAMESPACE)

        Returns:
            Names of the InstallPlans that were approved
        """
        target = namespace or self.constants.INSTALL_GATE_NAMESPACE
        try:
            plans = self.client.list_resources(
                self.constants.INSTALLPLAN_RESOURCE, target
            )
        except ClusterAPIError as e:
            logger.debug(f"Could not list InstallPlans in {target}: {e.message}")
            return []

        approved: list[str] = []
        for plan in plans:
            if plan.get("spec", {}).get("approved") is not False:
                continue

            name = self.client.extract_field(plan, ".metadata.name")
            result = self.executor.patch(
                self.constants.INSTALLPLAN_RESOURCE,
                name,
                target,
                APPROVE_INSTALL_PLAN_PATCH,
            )
            if not result.success:
                logger.debug(f"Could not approve InstallPlan {name}: {result.stderr}")
                continue

            approved.append(name)
            logger.info(f"Auto-approved InstallPlan {name} in {target}")
            self.sink(
                SyncEvent(
                    EventKind.INSTALL_GATE_APPROVED,
                    f"Auto-approving InstallPlan: {name}",
                    data={"namespace": target},
                )
            )
        return approved
