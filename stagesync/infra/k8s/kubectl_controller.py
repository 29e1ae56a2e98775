"""CLI-based implementation of KubernetesController.

Uses subprocess calls to ``oc`` (or ``kubectl``) for all operations.
"""

from __future__ import annotations

import asyncio
import json
import subprocess
from pathlib import Path
from typing import Any

from .controller import (
    ClusterAPIError,
    ClusterIdentity,
    CommandResult,
    KubernetesController,
)

# stderr fragments that mean "the thing you asked about does not exist"
_NOT_FOUND_MARKERS = (
    "notfound",
    "not found",
    "doesn't have a resource type",
)


def _is_not_found(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in _NOT_FOUND_MARKERS)


def _namespace_args(namespace: str | None) -> list[str]:
    return ["-n", namespace] if namespace else []


class KubectlController(KubernetesController):
    """Kubernetes controller using ``oc``/``kubectl`` subprocess calls.

    All methods are async but internally use asyncio.to_thread()
    to run blocking subprocess calls without blocking the event loop.
    """

    def __init__(self, binary: str = "oc") -> None:
        """Initialize the controller.

        Args:
            binary: Cluster CLI executable ("oc" or "kubectl")
        """
        self.binary = binary

    async def _run_kubectl(
        self,
        args: list[str],
        *,
        capture_output: bool = True,
        input_data: str | None = None,
    ) -> CommandResult:
        """Run a cluster CLI command asynchronously.

        Args:
            args: Command arguments (without the binary prefix)
            capture_output: Whether to capture stdout/stderr
            input_data: Optional input to send to stdin

        Returns:
            CommandResult with execution results
        """
        cmd = [self.binary, *args]

        def _run() -> CommandResult:
            try:
                result = subprocess.run(
                    cmd,
                    capture_output=capture_output,
                    text=True,
                    input=input_data,
                )
            except FileNotFoundError:
                return CommandResult(
                    success=False,
                    stderr=f"{self.binary}: command not found",
                    returncode=127,
                )
            return CommandResult(
                success=result.returncode == 0,
                stdout=result.stdout or "",
                stderr=result.stderr or "",
                returncode=result.returncode,
            )

        return await asyncio.to_thread(_run)

    def _parse_json(self, result: CommandResult, what: str) -> Any:
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ClusterAPIError(
                f"Failed to parse {what}", details=result.stdout[:500]
            ) from e

    # =========================================================================
    # Cluster Context
    # =========================================================================

    async def whoami(self) -> ClusterIdentity:
        """Return the identity of the logged-in user."""
        if Path(self.binary).name == "oc":
            user = await self._run_kubectl(["whoami"])
            server = await self._run_kubectl(["whoami", "--show-server"])
        else:
            user = await self._run_kubectl(
                [
                    "auth",
                    "whoami",
                    "-o",
                    "jsonpath={.status.userInfo.username}",
                ]
            )
            server = await self._run_kubectl(
                [
                    "config",
                    "view",
                    "--minify",
                    "-o",
                    "jsonpath={.clusters[0].cluster.server}",
                ]
            )

        if not user.success:
            raise ClusterAPIError(
                "Not logged into a cluster", details=user.stderr.strip() or None
            )
        return ClusterIdentity(
            user=user.stdout.strip(),
            server=server.stdout.strip() if server.success else "",
        )

    async def get_current_context(self) -> str:
        """Get the current kubeconfig context name."""
        result = await self._run_kubectl(["config", "current-context"])
        return result.stdout.strip() if result.success else "unknown"

    # =========================================================================
    # Generic Resource Operations
    # =========================================================================

    async def get_resource(
        self,
        kind: str,
        name: str,
        namespace: str | None = None,
    ) -> dict[str, Any] | None:
        """Fetch a single resource."""
        result = await self._run_kubectl(
            ["get", kind, name, *_namespace_args(namespace), "-o", "json"]
        )
        if not result.success:
            if _is_not_found(result.stderr):
                return None
            raise ClusterAPIError(
                f"Failed to get {kind}/{name}", details=result.stderr.strip()
            )
        data: dict[str, Any] = self._parse_json(result, f"{kind}/{name}")
        return data

    async def list_resources(
        self,
        kind: str,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        """List resources of a kind."""
        args = ["get", kind, "-o", "json"]
        args.extend(_namespace_args(namespace) or ["-A"])
        if label_selector:
            args.extend(["-l", label_selector])

        result = await self._run_kubectl(args)
        if not result.success:
            if _is_not_found(result.stderr):
                return []
            raise ClusterAPIError(
                f"Failed to list {kind}", details=result.stderr.strip()
            )

        data = self._parse_json(result, f"{kind} list")
        items: list[dict[str, Any]] = data.get("items", [])
        return items

    async def patch_resource(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        patch: dict[str, Any] | list[dict[str, Any]],
        *,
        patch_type: str = "merge",
    ) -> CommandResult:
        """Patch a resource."""
        return await self._run_kubectl(
            [
                "patch",
                kind,
                name,
                *_namespace_args(namespace),
                f"--type={patch_type}",
                "-p",
                json.dumps(patch),
            ]
        )

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
        """Delete a resource by name."""
        args = [
            "delete",
            kind,
            name,
            *_namespace_args(namespace),
            "--ignore-not-found",
        ]
        if cascade:
            args.append(f"--cascade={cascade}")
        if grace_period is not None:
            args.append(f"--grace-period={grace_period}")
            if grace_period == 0:
                args.append("--force")
        args.append(f"--wait={'true' if wait else 'false'}")
        if timeout:
            args.append(f"--timeout={timeout}")
        return await self._run_kubectl(args)

    async def annotate(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        key: str,
        value: str,
    ) -> CommandResult:
        """Set (overwrite) an annotation on a resource."""
        return await self._run_kubectl(
            [
                "annotate",
                kind,
                name,
                *_namespace_args(namespace),
                f"{key}={value}",
                "--overwrite",
            ]
        )

    async def apply_manifest(self, manifest_path: Path) -> CommandResult:
        """Apply a manifest file."""
        return await self._run_kubectl(["apply", "-f", str(manifest_path)])

    # =========================================================================
    # Namespace Operations
    # =========================================================================

    async def namespace_exists(self, namespace: str) -> bool:
        """Check if a namespace exists."""
        result = await self._run_kubectl(["get", "namespace", namespace])
        return result.success

    async def delete_namespace(
        self,
        namespace: str,
        *,
        wait: bool = True,
        timeout: str = "120s",
    ) -> CommandResult:
        """Delete a namespace and all its resources."""
        args = ["delete", "namespace", namespace, "--ignore-not-found"]
        if wait:
            args.append("--wait=true")
            args.extend(["--timeout", timeout])
        else:
            args.append("--wait=false")
        return await self._run_kubectl(args)
