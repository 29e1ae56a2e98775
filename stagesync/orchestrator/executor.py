"""Mutation executors.

Every state-changing cluster call made by the orchestrators goes through an
`Executor`. `LiveExecutor` forwards to the cluster client; `DryRunExecutor`
records and reports what would have been done and touches nothing.
Reads are never routed through an executor.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from stagesync.infra.k8s.controller import CommandResult, KubernetesControllerSync

from .events import EventKind, EventSink, SyncEvent, null_sink


class Executor(ABC):
    """Interface for mutating cluster operations."""

    dry_run: bool = False

    @abstractmethod
    def patch(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        patch: dict[str, Any] | list[dict[str, Any]],
        *,
        patch_type: str = "merge",
    ) -> CommandResult: ...

    @abstractmethod
    def annotate(
        self, kind: str, name: str, namespace: str | None, key: str, value: str
    ) -> CommandResult: ...

    @abstractmethod
    def delete(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        *,
        grace_period: int | None = None,
        wait: bool = False,
        timeout: str | None = None,
    ) -> CommandResult: ...

    @abstractmethod
    def delete_namespace(self, namespace: str, *, timeout: str) -> CommandResult: ...


class LiveExecutor(Executor):
    """Executor that applies mutations to the cluster."""

    dry_run = False

    def __init__(self, client: KubernetesControllerSync) -> None:
        self.client = client

    def _log(self, action: str, result: CommandResult) -> CommandResult:
        if result.success:
            logger.debug(f"{action}: ok")
        else:
            logger.debug(f"{action}: failed ({result.stderr.strip()})")
        return result

    def patch(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        patch: dict[str, Any] | list[dict[str, Any]],
        *,
        patch_type: str = "merge",
    ) -> CommandResult:
        result = self.client.patch_resource(
            kind, name, namespace, patch, patch_type=patch_type
        )
        return self._log(f"patch {kind}/{name}", result)

    def annotate(
        self, kind: str, name: str, namespace: str | None, key: str, value: str
    ) -> CommandResult:
        result = self.client.annotate(kind, name, namespace, key, value)
        return self._log(f"annotate {kind}/{name} {key}={value}", result)

    def delete(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        *,
        grace_period: int | None = None,
        wait: bool = False,
        timeout: str | None = None,
    ) -> CommandResult:
        result = self.client.delete_resource(
            kind,
            name,
            namespace,
            grace_period=grace_period,
            wait=wait,
            timeout=timeout,
        )
        return self._log(f"delete {kind}/{name}", result)

    def delete_namespace(self, namespace: str, *, timeout: str) -> CommandResult:
        result = self.client.delete_namespace(namespace, wait=True, timeout=timeout)
        return self._log(f"delete namespace {namespace}", result)


@dataclass(frozen=True)
class PlannedAction:
    """A mutation a dry run would have made."""

    verb: str
    kind: str
    name: str
    namespace: str | None = None
    args: tuple[str, ...] = field(default_factory=tuple)

    def describe(self) -> str:
        """Render the action as the equivalent CLI invocation."""
        parts = ["oc", self.verb, f"{self.kind}/{self.name}"]
        if self.namespace:
            parts.extend(["-n", self.namespace])
        parts.extend(self.args)
        return " ".join(parts)


class DryRunExecutor(Executor):
    """Executor that only records and reports planned mutations."""

    dry_run = True

    def __init__(self, sink: EventSink | None = None) -> None:
        self.sink = sink or null_sink
        self.planned: list[PlannedAction] = []

    def _plan(self, action: PlannedAction) -> CommandResult:
        self.planned.append(action)
        description = action.describe()
        logger.info(f"[DRY-RUN] {description}")
        self.sink(
            SyncEvent(
                EventKind.ACTION_PLANNED,
                f"[DRY-RUN] {description}",
                unit=action.name,
            )
        )
        return CommandResult(success=True, stdout=f"[DRY-RUN] {description}")

    def patch(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        patch: dict[str, Any] | list[dict[str, Any]],
        *,
        patch_type: str = "merge",
    ) -> CommandResult:
        return self._plan(
            PlannedAction(
                "patch",
                kind,
                name,
                namespace,
                (f"--type={patch_type}", f"-p '{json.dumps(patch)}'"),
            )
        )

    def annotate(
        self, kind: str, name: str, namespace: str | None, key: str, value: str
    ) -> CommandResult:
        return self._plan(
            PlannedAction(
                "annotate", kind, name, namespace, (f"{key}={value}", "--overwrite")
            )
        )

    def delete(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        *,
        grace_period: int | None = None,
        wait: bool = False,
        timeout: str | None = None,
    ) -> CommandResult:
        args = [f"--wait={'true' if wait else 'false'}"]
        if grace_period is not None:
            args.append(f"--grace-period={grace_period}")
            if grace_period == 0:
                args.append("--force")
        if timeout:
            args.append(f"--timeout={timeout}")
        return self._plan(PlannedAction("delete", kind, name, namespace, tuple(args)))

    def delete_namespace(self, namespace: str, *, timeout: str) -> CommandResult:
        return self._plan(
            PlannedAction("delete", "namespace", namespace, None, (f"--timeout={timeout}",))
        )
