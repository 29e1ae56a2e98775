"""Unit tests for the readiness prober."""

from __future__ import annotations

from stagesync.infra.k8s.controller import KubernetesControllerSync
from stagesync.orchestrator.events import EventKind
from stagesync.orchestrator.models import (
    AllOfSignal,
    ControllerSignal,
    CrdSignal,
    ProbeOutcome,
    ResourcePhaseSignal,
)
from stagesync.orchestrator.prober import ReadinessProber
from tests.fixtures import EventRecorder, FakeClock, FakeCluster

CRD = "customresourcedefinitions"
CSV = "clusterserviceversions.operators.coreos.com"


def _prober(
    client: KubernetesControllerSync, clock: FakeClock, recorder: EventRecorder
) -> ReadinessProber:
    return ReadinessProber(client, clock=clock, sink=recorder)


class TestPredicates:
    """Single-shot signal checks."""

    def test_crd_present(self, cluster: FakeCluster, client, clock, recorder) -> None:
        cluster.add_named(CRD, "widgets.example.io")
        prober = _prober(client, clock, recorder)
        assert prober.is_satisfied(CrdSignal("widgets.example.io")) is True
        assert prober.is_satisfied(CrdSignal("gadgets.example.io")) is False

    def test_controller_requires_succeeded_phase(
        self, cluster: FakeCluster, client, clock, recorder
    ) -> None:
        cluster.add_named(
            CSV, "nfd.4.18.0", "openshift-nfd", status={"phase": "Installing"}
        )
        prober = _prober(client, clock, recorder)
        signal = ControllerSignal("nfd", "openshift-nfd")
        assert prober.is_satisfied(signal) is False

        cluster.resources[(CSV, "openshift-nfd", "nfd.4.18.0")]["status"][
            "phase"
        ] = "Succeeded"
        assert prober.is_satisfied(signal) is True

    def test_controller_ignores_other_prefixes(
        self, cluster: FakeCluster, client, clock, recorder
    ) -> None:
        cluster.add_named(
            CSV, "other.v1", "openshift-nfd", status={"phase": "Succeeded"}
        )
        prober = _prober(client, clock, recorder)
        assert prober.is_satisfied(ControllerSignal("nfd", "openshift-nfd")) is False

    def test_resource_phase(self, cluster: FakeCluster, client, clock, recorder) -> None:
        cluster.add_named(
            "dscinitialization", "default-dsci", status={"phase": "Progressing"}
        )
        prober = _prober(client, clock, recorder)
        signal = ResourcePhaseSignal("dscinitialization", "default-dsci", "Ready")
        assert prober.is_satisfied(signal) is False
        assert prober.observed_phase(signal) == "Progressing"


class TestAwaitReady:
    """Bounded waits."""

    def test_ready_after_crd_appears(
        self, cluster: FakeCluster, client, clock, recorder
    ) -> None:
        cluster.at(12, lambda c: c.add_named(CRD, "widgets.example.io"))
        prober = _prober(client, clock, recorder)

        outcome = prober.await_ready(CrdSignal("widgets.example.io"), 120, unit="w")

        assert outcome is ProbeOutcome.READY
        assert clock.now() == 15.0
        assert recorder.kinds()[-1] == EventKind.SIGNAL_READY
        assert len(recorder.of_kind(EventKind.SIGNAL_WAITING)) == 3

    def test_timeout_is_soft(self, client, clock, recorder) -> None:
        prober = _prober(client, clock, recorder)

        outcome = prober.await_ready(CrdSignal("never.example.io"), 20)

        assert outcome is ProbeOutcome.TIMED_OUT
        assert recorder.kinds()[-1] == EventKind.SIGNAL_TIMED_OUT

    def test_transient_errors_keep_polling(
        self, cluster: FakeCluster, client, clock, recorder
    ) -> None:
        cluster.add_named(CRD, "widgets.example.io")
        cluster.read_errors[CRD] = 2
        prober = _prober(client, clock, recorder)

        outcome = prober.await_ready(CrdSignal("widgets.example.io"), 60)

        assert outcome is ProbeOutcome.READY
        assert clock.now() == 10.0

    def test_all_of_waits_for_each_member_in_turn(
        self, cluster: FakeCluster, client, clock, recorder
    ) -> None:
        cluster.at(10, lambda c: c.add_named(CRD, "dsc.example.io"))
        cluster.at(
            30,
            lambda c: c.add_named(
                "dscinitialization", "default-dsci", status={"phase": "Ready"}
            ),
        )
        prober = _prober(client, clock, recorder)
        signal = AllOfSignal(
            (
                CrdSignal("dsc.example.io"),
                ResourcePhaseSignal("dscinitialization", "default-dsci", "Ready"),
            )
        )

        assert prober.await_ready(signal, 25) is ProbeOutcome.READY
        assert len(recorder.of_kind(EventKind.SIGNAL_READY)) == 2

    def test_all_of_reports_phase_while_waiting(
        self, cluster: FakeCluster, client, clock, recorder
    ) -> None:
        cluster.add_named(
            "dscinitialization", "default-dsci", status={"phase": "Progressing"}
        )
        prober = _prober(client, clock, recorder)
        signal = AllOfSignal(
            (ResourcePhaseSignal("dscinitialization", "default-dsci", "Ready"),)
        )

        assert prober.await_ready(signal, 10) is ProbeOutcome.TIMED_OUT
        waiting = recorder.of_kind(EventKind.SIGNAL_WAITING)
        assert "phase=Progressing" in waiting[0].message
