"""Abstract Kubernetes controller interface.

Defines the contract for the cluster operations the sync engine consumes,
implemented by different backends (kubectl/oc subprocess, kr8s library).
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .utils import run_sync

# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CommandResult:
    """Result of a command execution."""

    success: bool
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0


@dataclass
class ClusterIdentity:
    """Identity of the logged-in cluster user."""

    user: str
    server: str = ""


class ClusterAPIError(Exception):
    """Raised when a cluster call fails for a reason other than NotFound."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


# =============================================================================
# Field Extraction
# =============================================================================

# A key (dots may be escaped as ``\.``) or a list index.
_SEGMENT = re.compile(r"((?:\\\.|[^.\[\]])+)|\[(\d+)\]")


def extract_field(obj: dict[str, Any] | None, expression: str) -> str:
    """Extract a field from a resource using a JSONPath-like expression.

    Supports the subset of kubectl's jsonpath used for status fields:
    dotted keys, optional surrounding braces, escaped dots inside keys
    and list indices.

    Args:
        obj: Resource dictionary (None is treated as empty)
        expression: Path such as ``{.status.sync.status}`` or
                    ``.metadata.annotations.argocd\\.argoproj\\.io/refresh``

    Returns:
        The value as a string, or "" when any segment is missing.
        Lists and mappings are rendered as JSON.

    Example:
        >>> extract_field({"status": {"phase": "Ready"}}, "{.status.phase}")
        'Ready'
    """
    if obj is None:
        return ""

    expr = expression.strip()
    if expr.startswith("{") and expr.endswith("}"):
        expr = expr[1:-1]

    current: Any = obj
    for match in _SEGMENT.finditer(expr):
        key, index = match.groups()
        if key is not None:
            key = key.replace("\\.", ".")
            if not isinstance(current, dict) or key not in current:
                return ""
            current = current[key]
        else:
            position = int(index)
            if not isinstance(current, list) or position >= len(current):
                return ""
            current = current[position]

    if current is None:
        return ""
    if isinstance(current, bool):
        return "true" if current else "false"
    if isinstance(current, (dict, list)):
        return json.dumps(current)
    return str(current)


# =============================================================================
# Abstract Controller
# =============================================================================


class KubernetesController(ABC):
    """Abstract base class for cluster operations.

    All methods are async to support both sync (kubectl) and async (kr8s)
    implementations. Use `KubernetesControllerSync` or `run_sync()` to call
    from synchronous code.

    Reads distinguish "not found" (``None`` / empty list) from API failures
    (`ClusterAPIError`). Deletes treat an absent resource as success.

    Example:
        from stagesync.infra.k8s import KubectlController, run_sync

        controller = KubectlController()
        crd = run_sync(controller.get_resource("crd", "widgets.example.io"))
    """

    # =========================================================================
    # Cluster Context
    # =========================================================================

    @abstractmethod
    async def whoami(self) -> ClusterIdentity:
        """Return the identity of the logged-in user.

        Returns:
            ClusterIdentity with user name and API server URL

        Raises:
            ClusterAPIError: If not logged in or the cluster is unreachable
        """
        ...

    @abstractmethod
    async def get_current_context(self) -> str:
        """Get the current kubeconfig context name.

        Returns:
            Context name, or "unknown" if detection fails
        """
        ...

    # =========================================================================
    # Generic Resource Operations
    # =========================================================================

    @abstractmethod
    async def get_resource(
        self,
        kind: str,
        name: str,
        namespace: str | None = None,
    ) -> dict[str, Any] | None:
        """Fetch a single resource.

        Args:
            kind: Resource kind or plural, optionally group-qualified
                  (e.g., "applications.argoproj.io")
            name: Resource name
            namespace: Namespace, or None for cluster-scoped resources

        Returns:
            The resource as a dictionary, or None if it does not exist

        Raises:
            ClusterAPIError: On any failure other than NotFound
        """
        ...

    @abstractmethod
    async def list_resources(
        self,
        kind: str,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        """List resources of a kind.

        Args:
            kind: Resource kind or plural, optionally group-qualified
            namespace: Namespace to search, or None for all namespaces
            label_selector: Optional label selector (e.g., "app=nfd")

        Returns:
            List of resource dictionaries (empty if the kind is unknown)

        Raises:
            ClusterAPIError: On any failure other than an unknown kind
        """
        ...

    @abstractmethod
    async def patch_resource(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        patch: dict[str, Any] | list[dict[str, Any]],
        *,
        patch_type: str = "merge",
    ) -> CommandResult:
        """Patch a resource.

        Args:
            kind: Resource kind
            name: Resource name
            namespace: Namespace, or None for cluster-scoped resources
            patch: Merge patch document, or a list of JSON patch operations
            patch_type: "merge" or "json"

        Returns:
            CommandResult with patch status
        """
        ...

    @abstractmethod
    async def delete_resource(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        *,
        cascade: str | None = None,
        grace_period: int | None = None,
        wait: bool = False,
        timeout: str | None = None,
    ) -> CommandResult:
        """Delete a resource by name.

        Deleting a resource that does not exist is reported as success.

        Args:
            kind: Resource kind
            name: Resource name
            namespace: Namespace, or None for cluster-scoped resources
            cascade: Propagation policy ("background", "foreground", "orphan")
            grace_period: Grace period in seconds (0 forces deletion)
            wait: Whether to block until the resource is gone
            timeout: Maximum time to wait when ``wait`` is set

        Returns:
            CommandResult with deletion status
        """
        ...

    @abstractmethod
    async def annotate(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        key: str,
        value: str,
    ) -> CommandResult:
        """Set (overwrite) an annotation on a resource.

        Args:
            kind: Resource kind
            name: Resource name
            namespace: Namespace, or None for cluster-scoped resources
            key: Annotation key
            value: Annotation value

        Returns:
            CommandResult with annotate status
        """
        ...

    @abstractmethod
    async def apply_manifest(self, manifest_path: Path) -> CommandResult:
        """Apply a manifest file.

        Args:
            manifest_path: Path to the YAML manifest file

        Returns:
            CommandResult with apply status
        """
        ...

    # =========================================================================
    # Namespace Operations
    # =========================================================================

    @abstractmethod
    async def namespace_exists(self, namespace: str) -> bool:
        """Check if a namespace exists.

        Args:
            namespace: Namespace to check

        Returns:
            True if the namespace exists, False otherwise
        """
        ...

    @abstractmethod
    async def delete_namespace(
        self,
        namespace: str,
        *,
        wait: bool = True,
        timeout: str = "120s",
    ) -> CommandResult:
        """Delete a namespace and all its resources.

        An already-deleted namespace is reported as success.

        Args:
            namespace: Namespace to delete
            wait: Whether to wait for deletion to complete
            timeout: Maximum time to wait

        Returns:
            CommandResult with deletion status
        """
        ...


# =============================================================================
# Sync Wrapper
# =============================================================================


class KubernetesControllerSync:
    """Blocking facade over a `KubernetesController`.

    The orchestrators are single-threaded polling loops, so every call is
    driven to completion with `run_sync()` before returning.
    """

    def __init__(self, controller: KubernetesController) -> None:
        self._controller = controller

    @property
    def controller(self) -> KubernetesController:
        """Get the wrapped async controller."""
        return self._controller

    @staticmethod
    def extract_field(obj: dict[str, Any] | None, expression: str) -> str:
        """Extract a field from a resource. See `extract_field`."""
        return extract_field(obj, expression)

    def whoami(self) -> ClusterIdentity:
        return run_sync(self._controller.whoami())

    def get_current_context(self) -> str:
        return run_sync(self._controller.get_current_context())

    def get_resource(
        self, kind: str, name: str, namespace: str | None = None
    ) -> dict[str, Any] | None:
        return run_sync(self._controller.get_resource(kind, name, namespace))

    def list_resources(
        self,
        kind: str,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        return run_sync(
            self._controller.list_resources(kind, namespace, label_selector)
        )

    def patch_resource(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        patch: dict[str, Any] | list[dict[str, Any]],
        *,
        patch_type: str = "merge",
    ) -> CommandResult:
        return run_sync(
            self._controller.patch_resource(
                kind, name, namespace, patch, patch_type=patch_type
            )
        )

    def delete_resource(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        *,
        cascade: str | None = None,
        grace_period: int | None = None,
        wait: bool = False,
        timeout: str | None = None,
    ) -> CommandResult:
        return run_sync(
            self._controller.delete_resource(
                kind,
                name,
                namespace,
                cascade=cascade,
                grace_period=grace_period,
                wait=wait,
                timeout=timeout,
            )
        )

    def annotate(
        self, kind: str, name: str, namespace: str | None, key: str, value: str
    ) -> CommandResult:
        return run_sync(self._controller.annotate(kind, name, namespace, key, value))

    def apply_manifest(self, manifest_path: Path) -> CommandResult:
        return run_sync(self._controller.apply_manifest(manifest_path))

    def namespace_exists(self, namespace: str) -> bool:
        return run_sync(self._controller.namespace_exists(namespace))

    def delete_namespace(
        self, namespace: str, *, wait: bool = True, timeout: str = "120s"
    ) -> CommandResult:
        return run_sync(
            self._controller.delete_namespace(namespace, wait=wait, timeout=timeout)
        )
