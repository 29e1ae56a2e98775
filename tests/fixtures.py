"""Shared test fixtures: an in-memory cluster and a manual clock."""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from stagesync.infra.k8s.controller import (
    ClusterAPIError,
    ClusterIdentity,
    CommandResult,
    KubernetesController,
    KubernetesControllerSync,
)
from stagesync.orchestrator.constants import DEFAULT_CONSTANTS
from stagesync.orchestrator.events import EventKind, SyncEvent

APPS = DEFAULT_CONSTANTS.APPLICATION_RESOURCE
APPSETS = DEFAULT_CONSTANTS.APPLICATIONSET_RESOURCE
GITOPS = DEFAULT_CONSTANTS.GITOPS_NAMESPACE


class FakeClock:
    """Clock that only moves when something sleeps."""

    def __init__(self, start: float = 0.0) -> None:
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds

    def advance(self, seconds: float) -> None:
        self.current += seconds


class EventRecorder:
    """Sink that keeps every event, in order."""

    def __init__(self) -> None:
        self.events: list[SyncEvent] = []

    def __call__(self, event: SyncEvent) -> None:
        self.events.append(event)

    def kinds(self) -> list[EventKind]:
        return [event.kind for event in self.events]

    def of_kind(self, kind: EventKind) -> list[SyncEvent]:
        return [event for event in self.events if event.kind == kind]


@dataclass
class Mutation:
    """One write the fake cluster received."""

    verb: str
    kind: str
    name: str
    namespace: str | None
    payload: Any = None
    at: float = 0.0


@dataclass
class _Scheduled:
    at: float
    action: Callable[[FakeCluster], None]
    done: bool = field(default=False)


def application(
    name: str,
    sync: str | None = "OutOfSync",
    health: str | None = "Missing",
    operation_phase: str | None = None,
    finalizers: list[str] | None = None,
) -> dict[str, Any]:
    """Build an Application resource."""
    status: dict[str, Any] = {}
    if sync is not None:
        status["sync"] = {"status": sync}
    if health is not None:
        status["health"] = {"status": health}
    if operation_phase is not None:
        status["operationState"] = {"phase": operation_phase}
    metadata: dict[str, Any] = {"name": name, "namespace": GITOPS}
    if finalizers:
        metadata["finalizers"] = list(finalizers)
    return {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "Application",
        "metadata": metadata,
        "spec": {"project": "default"},
        "status": status,
    }


def _merge(target: dict[str, Any], patch: dict[str, Any]) -> None:
    for key, value in patch.items():
        if value is None:
            target.pop(key, None)
        elif isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


def _json_patch(target: dict[str, Any], operations: list[dict[str, Any]]) -> None:
    for op in operations:
        *parents, leaf = [p for p in op["path"].split("/") if p]
        node = target
        for part in parents:
            node = node.setdefault(part, {})
        if op["op"] == "remove":
            del node[leaf]
        else:
            node[leaf] = copy.deepcopy(op["value"])


class FakeCluster(KubernetesController):
    """In-memory cluster with scripted state changes.

    Resources are keyed by (kind, namespace, name) using the kind string the
    caller passes. Scheduled actions run on the first API call at or after
    their due time on the shared clock.
    """

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.clock = clock or FakeClock()
        self.resources: dict[tuple[str, str | None, str], dict[str, Any]] = {}
        self.namespaces: set[str] = {GITOPS}
        self.mutations: list[Mutation] = []
        self.logged_in = True
        self.read_errors: dict[str, int] = {}
        self.failing_patches: set[tuple[str, str]] = set()
        self.stuck: set[tuple[str, str]] = set()
        self.patch_hooks: list[Callable[[FakeCluster, Mutation], None]] = []
        self._scheduled: list[_Scheduled] = []

    # ------------------------------------------------------------------
    # Scripting
    # ------------------------------------------------------------------

    def add(
        self, kind: str, resource: dict[str, Any], namespace: str | None = None
    ) -> dict[str, Any]:
        namespace = namespace or resource.get("metadata", {}).get("namespace")
        name = resource["metadata"]["name"]
        if namespace:
            self.namespaces.add(namespace)
            resource["metadata"]["namespace"] = namespace
        self.resources[(kind, namespace, name)] = resource
        return resource

    def add_application(self, name: str, **kwargs: Any) -> dict[str, Any]:
        return self.add(APPS, application(name, **kwargs), GITOPS)

    def add_named(
        self,
        kind: str,
        name: str,
        namespace: str | None = None,
        **body: Any,
    ) -> dict[str, Any]:
        return self.add(kind, {"metadata": {"name": name}, **body}, namespace)

    def app(self, name: str) -> dict[str, Any] | None:
        return self.resources.get((APPS, GITOPS, name))

    def set_app_state(self, name: str, sync: str, health: str) -> None:
        app = self.app(name)
        assert app is not None, f"no application {name}"
        app.setdefault("status", {})["sync"] = {"status": sync}
        app["status"]["health"] = {"status": health}

    def at(self, when: float, action: Callable[[FakeCluster], None]) -> None:
        """Run ``action`` once the clock reaches ``when``."""
        self._scheduled.append(_Scheduled(when, action))

    def converge_on_auto_sync(self, name: str, after: float = 0.0) -> None:
        """Make an app Synced + Healthy ``after`` seconds once auto-sync is on."""

        def _hook(cluster: FakeCluster, mutation: Mutation) -> None:
            if mutation.name != name or not isinstance(mutation.payload, dict):
                return
            policy = mutation.payload.get("spec", {}).get("syncPolicy", {})
            automated = policy.get("automated")
            if automated:
                cluster.at(
                    cluster.clock.now() + after,
                    lambda c: c.set_app_state(name, "Synced", "Healthy"),
                )

        self.patch_hooks.append(_hook)

    def writes(self, verb: str | None = None) -> list[Mutation]:
        return [m for m in self.mutations if verb is None or m.verb == verb]

    def _tick(self) -> None:
        now = self.clock.now()
        for item in self._scheduled:
            if not item.done and item.at <= now:
                item.done = True
                item.action(self)

    def _check_read(self, kind: str) -> None:
        remaining = self.read_errors.get(kind, 0)
        if remaining:
            self.read_errors[kind] = remaining - 1
            raise ClusterAPIError(f"transient failure reading {kind}")

    def _record(self, mutation: Mutation) -> None:
        mutation.at = self.clock.now()
        self.mutations.append(mutation)

    # ------------------------------------------------------------------
    # KubernetesController
    # ------------------------------------------------------------------

    async def whoami(self) -> ClusterIdentity:
        if not self.logged_in:
            raise ClusterAPIError("Unauthorized", details="You must be logged in")
        return ClusterIdentity(user="tester", server="https://api.test.example:6443")

    async def get_current_context(self) -> str:
        return "test-context"

    async def get_resource(
        self, kind: str, name: str, namespace: str | None = None
    ) -> dict[str, Any] | None:
        self._tick()
        self._check_read(kind)
        resource = self.resources.get((kind, namespace, name))
        return copy.deepcopy(resource) if resource is not None else None

    async def list_resources(
        self,
        kind: str,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        self._tick()
        self._check_read(kind)
        return [
            copy.deepcopy(resource)
            for (k, ns, _), resource in sorted(
                self.resources.items(), key=lambda item: (item[0][1] or "", item[0][2])
            )
            if k == kind and (namespace is None or ns == namespace)
        ]

    async def patch_resource(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        patch: dict[str, Any] | list[dict[str, Any]],
        patch_type: str = "merge",
    ) -> CommandResult:
        self._tick()
        mutation = Mutation("patch", kind, name, namespace, patch)
        self._record(mutation)
        if (kind, name) in self.failing_patches:
            return CommandResult(False, stderr="admission webhook denied", returncode=1)
        resource = self.resources.get((kind, namespace, name))
        if resource is None:
            return CommandResult(False, stderr="NotFound", returncode=1)
        if patch_type == "json":
            assert isinstance(patch, list)
            try:
                _json_patch(resource, patch)
            except KeyError:
                return CommandResult(False, stderr="path does not exist", returncode=1)
            if not resource.get("metadata", {}).get("finalizers"):
                self.stuck.discard((kind, name))
        else:
            assert isinstance(patch, dict)
            _merge(resource, patch)
        for hook in self.patch_hooks:
            hook(self, mutation)
        return CommandResult(True, stdout=f"{kind}/{name} patched")

    async def delete_resource(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        cascade: str | None = None,
        grace_period: int | None = None,
        wait: bool = False,
        timeout: str | None = None,
    ) -> CommandResult:
        self._tick()
        payload: dict[str, Any] = {"wait": wait, "timeout": timeout}
        if grace_period is not None:
            payload["grace_period"] = grace_period
        self._record(Mutation("delete", kind, name, namespace, payload))
        key = (kind, namespace, name)
        if key not in self.resources:
            return CommandResult(True, stderr="NotFound")
        if (kind, name) in self.stuck:
            self.resources[key]["metadata"]["deletionTimestamp"] = "now"
            if wait:
                return CommandResult(False, stderr="timed out waiting", returncode=1)
            return CommandResult(True, stdout=f"{kind} \"{name}\" deleted")
        del self.resources[key]
        return CommandResult(True, stdout=f"{kind} \"{name}\" deleted")

    async def annotate(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        key: str,
        value: str,
    ) -> CommandResult:
        self._tick()
        self._record(Mutation("annotate", kind, name, namespace, {key: value}))
        resource = self.resources.get((kind, namespace, name))
        if resource is None:
            return CommandResult(False, stderr="NotFound", returncode=1)
        resource["metadata"].setdefault("annotations", {})[key] = value
        return CommandResult(True, stdout=f"{kind}/{name} annotated")

    async def apply_manifest(self, manifest_path: Path) -> CommandResult:
        self._record(Mutation("apply", "manifest", str(manifest_path), None))
        return CommandResult(True)

    async def namespace_exists(self, namespace: str) -> bool:
        self._tick()
        return namespace in self.namespaces

    async def delete_namespace(
        self,
        namespace: str,
        wait: bool = True,
        timeout: str = "120s",
    ) -> CommandResult:
        self._tick()
        self._record(
            Mutation("delete_namespace", "namespace", namespace, None, {"timeout": timeout})
        )
        self.namespaces.discard(namespace)
        for key in [k for k in self.resources if k[1] == namespace]:
            del self.resources[key]
        return CommandResult(True)


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cluster(clock: FakeClock) -> FakeCluster:
    return FakeCluster(clock)


@pytest.fixture
def client(cluster: FakeCluster) -> KubernetesControllerSync:
    return KubernetesControllerSync(cluster)


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()
