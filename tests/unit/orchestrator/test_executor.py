"""Unit tests for live and dry-run executors."""

from stagesync.orchestrator.events import EventKind
from stagesync.orchestrator.executor import (
    DryRunExecutor,
    LiveExecutor,
    PlannedAction,
)
from tests.fixtures import APPS, GITOPS, EventRecorder


class TestLiveExecutor:
    """Mutations are forwarded to the cluster."""

    def test_patch_and_annotate(self, cluster, client) -> None:
        cluster.add_application("nfd")
        executor = LiveExecutor(client)

        patched = executor.patch(APPS, "nfd", GITOPS, {"spec": {"project": "ops"}})
        annotated = executor.annotate(
            APPS, "nfd", GITOPS, "argocd.argoproj.io/refresh", "normal"
        )

        assert patched.success and annotated.success
        app = cluster.app("nfd")
        assert app["spec"]["project"] == "ops"
        assert app["metadata"]["annotations"] == {
            "argocd.argoproj.io/refresh": "normal"
        }

    def test_delete_passes_wait_and_timeout(self, cluster, client) -> None:
        cluster.add_application("nfd")

        LiveExecutor(client).delete(APPS, "nfd", GITOPS, wait=True, timeout="30s")

        [delete] = cluster.writes("delete")
        assert delete.payload == {"wait": True, "timeout": "30s"}
        assert cluster.app("nfd") is None

    def test_delete_passes_grace_period(self, cluster, client) -> None:
        cluster.add_application("nfd")

        LiveExecutor(client).delete(
            APPS, "nfd", GITOPS, grace_period=0, wait=True, timeout="30s"
        )

        [delete] = cluster.writes("delete")
        assert delete.payload == {"wait": True, "timeout": "30s", "grace_period": 0}

    def test_failure_is_returned(self, cluster, client) -> None:
        result = LiveExecutor(client).patch(APPS, "ghost", GITOPS, {})

        assert result.success is False
        assert "NotFound" in result.stderr


class TestDryRunExecutor:
    """Dry runs record, report and never write."""

    def test_records_without_touching_cluster(self, cluster) -> None:
        recorder = EventRecorder()
        executor = DryRunExecutor(recorder)

        result = executor.delete(APPS, "nfd", GITOPS, wait=True, timeout="300s")

        assert result.success is True
        assert cluster.mutations == []
        assert executor.planned == [
            PlannedAction("delete", APPS, "nfd", GITOPS, ("--wait=true", "--timeout=300s"))
        ]
        [event] = recorder.events
        assert event.kind is EventKind.ACTION_PLANNED
        assert event.unit == "nfd"
        assert event.message.startswith("[DRY-RUN] oc delete")

    def test_describe_patch(self) -> None:
        executor = DryRunExecutor()

        executor.patch(
            APPS,
            "nfd",
            GITOPS,
            [{"op": "remove", "path": "/operation"}],
            patch_type="json",
        )

        assert executor.planned[0].describe() == (
            f"oc patch {APPS}/nfd -n {GITOPS} --type=json "
            "-p '[{\"op\": \"remove\", \"path\": \"/operation\"}]'"
        )

    def test_describe_force_delete(self) -> None:
        executor = DryRunExecutor()

        executor.delete(APPS, "nfd", GITOPS, grace_period=0, wait=True, timeout="30s")

        assert executor.planned[0].describe() == (
            f"oc delete {APPS}/nfd -n {GITOPS} "
            "--wait=true --grace-period=0 --force --timeout=30s"
        )

    def test_describe_namespace_delete(self) -> None:
        executor = DryRunExecutor()

        executor.delete_namespace("nvidia-gpu-operator", timeout="120s")

        assert executor.planned[0].describe() == (
            "oc delete namespace/nvidia-gpu-operator --timeout=120s"
        )
