"""Helpers shared by the command modules."""

from stagesync.cli.context import CLIContext
from stagesync.infra.k8s.controller import ClusterAPIError
from stagesync.orchestrator.errors import StageSyncError
from stagesync.orchestrator.events import EventKind, EventSink, SyncEvent
from stagesync.orchestrator.executor import DryRunExecutor, Executor, LiveExecutor


def check_cluster_connection(context: CLIContext, sink: EventSink) -> None:
    """Verify the CLI is logged in to a reachable cluster.

    Raises:
        StageSyncError: If the identity check fails
    """
    try:
        identity = context.k8s_controller.whoami()
    except ClusterAPIError as e:
        raise StageSyncError(
            "Not connected to a cluster. Log in first (oc login ...)",
            details=e.details or e.message,
        ) from e

    server = identity.server or context.k8s_controller.get_current_context()
    sink(
        SyncEvent(
            EventKind.CLUSTER_CONNECTED,
            f"Connected to: {server}",
            data={"user": identity.user},
        )
    )


def build_executor(context: CLIContext, dry_run: bool, sink: EventSink) -> Executor:
    """Dry-run executor when requested, otherwise one that mutates the cluster."""
    if dry_run:
        return DryRunExecutor(sink)
    return LiveExecutor(context.k8s_controller)


def confirm_or_cancel(
    context: CLIContext,
    action: str,
    details: str,
    *,
    force: bool,
) -> bool:
    """Ask for confirmation unless forced by flag or SKIP_CONFIRM."""
    return context.console.confirm_action(
        action,
        details,
        extra_warning="This cannot be undone.",
        force=force or context.settings.skip_confirm,
    )
