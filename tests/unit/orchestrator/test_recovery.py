"""Unit tests for the failure recovery helper."""

from __future__ import annotations

from stagesync.orchestrator.events import EventKind
from stagesync.orchestrator.executor import DryRunExecutor, LiveExecutor
from stagesync.orchestrator.recovery import FailureRecovery
from tests.fixtures import APPS, FakeCluster

INSTALL_PLANS = "installplans.operators.coreos.com"


class TestClearFailedReconciliation:
    def test_failed_operation_is_retried(self, cluster: FakeCluster, client, recorder) -> None:
        cluster.add_application("nfd", operation_phase="Failed")
        recovery = FailureRecovery(client, LiveExecutor(client), sink=recorder)

        assert recovery.clear_failed_reconciliation("nfd") is True

        (patch,) = cluster.writes("patch")
        assert patch.kind == APPS
        assert patch.payload["operation"]["initiatedBy"] == {"username": "stagesync"}
        assert patch.payload["operation"]["sync"] == {"prune": True}
        assert recorder.kinds() == [EventKind.FAILED_OPERATION_CLEARED]

    def test_non_failed_unit_is_a_no_op(self, cluster: FakeCluster, client) -> None:
        cluster.add_application("nfd", operation_phase="Succeeded")
        cluster.add_application("kueue-operator")
        recovery = FailureRecovery(client, LiveExecutor(client))

        assert recovery.clear_failed_reconciliation("nfd") is False
        assert recovery.clear_failed_reconciliation("kueue-operator") is False
        assert recovery.clear_failed_reconciliation("absent") is False
        assert cluster.writes() == []

    def test_read_failure_is_a_no_op(self, cluster: FakeCluster, client) -> None:
        cluster.add_application("nfd", operation_phase="Failed")
        cluster.read_errors[APPS] = 1
        recovery = FailureRecovery(client, LiveExecutor(client))

        assert recovery.clear_failed_reconciliation("nfd") is False
        assert cluster.writes() == []


class TestApproveInstallGates:
    def test_only_unapproved_plans_are_patched(
        self, cluster: FakeCluster, client, recorder
    ) -> None:
        ns = "openshift-operators"
        cluster.add_named(INSTALL_PLANS, "install-aaa", ns, spec={"approved": False})
        cluster.add_named(INSTALL_PLANS, "install-bbb", ns, spec={"approved": True})
        cluster.add_named(INSTALL_PLANS, "install-ccc", "other", spec={"approved": False})
        recovery = FailureRecovery(client, LiveExecutor(client), sink=recorder)

        assert recovery.approve_pending_install_gates() == ["install-aaa"]
        assert cluster.resources[(INSTALL_PLANS, ns, "install-aaa")]["spec"] == {
            "approved": True
        }
        assert recorder.kinds() == [EventKind.INSTALL_GATE_APPROVED]

    def test_is_idempotent(self, cluster: FakeCluster, client) -> None:
        ns = "openshift-operators"
        cluster.add_named(INSTALL_PLANS, "install-aaa", ns, spec={"approved": False})
        recovery = FailureRecovery(client, LiveExecutor(client))

        recovery.approve_pending_install_gates()
        assert recovery.approve_pending_install_gates() == []
        assert len(cluster.writes("patch")) == 1

    def test_list_failure_is_swallowed(self, cluster: FakeCluster, client) -> None:
        cluster.read_errors[INSTALL_PLANS] = 1
        recovery = FailureRecovery(client, LiveExecutor(client))
        assert recovery.approve_pending_install_gates() == []

    def test_dry_run_does_not_patch(self, cluster: FakeCluster, client) -> None:
        cluster.add_named(
            INSTALL_PLANS, "install-aaa", "openshift-operators", spec={"approved": False}
        )
        executor = DryRunExecutor()
        recovery = FailureRecovery(client, executor)

        assert recovery.approve_pending_install_gates() == ["install-aaa"]
        assert cluster.writes() == []
        assert executor.planned[0].verb == "patch"
