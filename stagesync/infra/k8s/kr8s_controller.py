"""Kr8s-based implementation of KubernetesController.

Uses the kr8s library for native async Kubernetes operations.
"""

from __future__ import annotations

import asyncio
import inspect
import subprocess
from pathlib import Path
from typing import Any

import kr8s
from kr8s.asyncio.objects import Namespace

from .controller import (
    ClusterAPIError,
    ClusterIdentity,
    CommandResult,
    KubernetesController,
)
from .utils import parse_timeout

_PROPAGATION_POLICIES = {
    "background": "Background",
    "foreground": "Foreground",
    "orphan": "Orphan",
}


def _is_not_found_error(error: Exception) -> bool:
    if isinstance(error, kr8s.NotFoundError):
        return True
    response = getattr(error, "response", None)
    return getattr(response, "status_code", None) == 404


async def _collect(result: Any) -> list[Any]:
    """Materialize the result of ``Api.get``.

    Older kr8s releases return a coroutine resolving to a list, newer ones
    return an async generator.
    """
    if inspect.isawaitable(result):
        result = await result
    if hasattr(result, "__aiter__"):
        return [obj async for obj in result]
    return list(result)


class Kr8sController(KubernetesController):
    """Kubernetes controller using kr8s library.

    All methods are natively async, leveraging kr8s's async API.

    Note: The kr8s API client is NOT cached because it's tied to the event loop
    that was running when created. When using run_sync() which calls asyncio.run(),
    each call creates a new event loop, making the cached API unusable.
    """

    def __init__(self, kubectl_binary: str = "oc") -> None:
        """Initialize the kr8s controller.

        Args:
            kubectl_binary: CLI used for operations kr8s has no equivalent for
        """
        self.kubectl_binary = kubectl_binary

    async def _get_api(self) -> Any:  # Returns kr8s._api.Api
        """Create a kr8s API client bound to the current event loop."""
        return await kr8s.asyncio.api()

    async def _get_objects(
        self,
        kind: str,
        *names: str,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[Any]:
        api = await self._get_api()
        kwargs: dict[str, Any] = {"namespace": namespace or kr8s.ALL}
        if label_selector:
            kwargs["label_selector"] = label_selector
        return await _collect(api.get(kind, *names, **kwargs))

    async def _get_object(self, kind: str, name: str, namespace: str | None) -> Any:
        try:
            objects = await self._get_objects(kind, name, namespace=namespace)
        except Exception as e:
            if _is_not_found_error(e):
                return None
            raise ClusterAPIError(f"Failed to get {kind}/{name}", details=str(e)) from e
        return objects[0] if objects else None

    # =========================================================================
    # Cluster Context
    # =========================================================================

    async def whoami(self) -> ClusterIdentity:
        """Return the identity of the logged-in user."""
        try:
            api = await self._get_api()
            user = await api.whoami()
            server = getattr(api.auth, "server", "") or ""
        except Exception as e:
            raise ClusterAPIError("Not logged into a cluster", details=str(e)) from e
        return ClusterIdentity(user=str(user), server=str(server))

    async def get_current_context(self) -> str:
        """Get the current kubeconfig context name."""
        try:
            api = await self._get_api()
            # Access context via auth object
            return api.auth.active_context or "unknown"
        except Exception:
            return "unknown"

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
        obj = await self._get_object(kind, name, namespace)
        if obj is None:
            return None
        raw: dict[str, Any] = obj.raw
        return raw

    async def list_resources(
        self,
        kind: str,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        """List resources of a kind."""
        try:
            objects = await self._get_objects(
                kind, namespace=namespace, label_selector=label_selector
            )
        except Exception as e:
            if _is_not_found_error(e) or isinstance(e, ValueError):
                # Unknown kind (CRD not installed yet)
                return []
            raise ClusterAPIError(f"Failed to list {kind}", details=str(e)) from e
        return [obj.raw for obj in objects]

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
        try:
            obj = await self._get_object(kind, name, namespace)
            if obj is None:
                return CommandResult(
                    success=False,
                    stderr=f'{kind} "{name}" not found',
                    returncode=1,
                )
            await obj.patch(patch, type="json" if patch_type == "json" else None)
            return CommandResult(success=True, stdout=f"{kind}/{name} patched")
        except Exception as e:
            return CommandResult(success=False, stderr=str(e), returncode=1)

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
        try:
            obj = await self._get_object(kind, name, namespace)
            if obj is None:
                return CommandResult(success=True, stdout=f"{kind}/{name} not found")

            kwargs: dict[str, Any] = {}
            if cascade:
                kwargs["propagation_policy"] = _PROPAGATION_POLICIES.get(
                    cascade.lower(), cascade
                )
            if grace_period is not None:
                kwargs["grace_period"] = grace_period
                kwargs["force"] = grace_period == 0
            await obj.delete(**kwargs)

            if wait:
                try:
                    await asyncio.wait_for(
                        self._wait_for_deletion(kind, name, namespace),
                        timeout=parse_timeout(timeout or "300s"),
                    )
                except TimeoutError:
                    return CommandResult(
                        success=False,
                        stderr=f"Timeout waiting for {kind}/{name} deletion",
                        returncode=1,
                    )

            return CommandResult(success=True, stdout=f'{kind} "{name}" deleted')
        except Exception as e:
            if _is_not_found_error(e):
                return CommandResult(success=True, stdout=f"{kind}/{name} not found")
            return CommandResult(success=False, stderr=str(e), returncode=1)

    async def _wait_for_deletion(
        self, kind: str, name: str, namespace: str | None
    ) -> None:
        """Wait until a resource no longer exists."""
        while await self._get_object(kind, name, namespace) is not None:
            await asyncio.sleep(1)

    async def annotate(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        key: str,
        value: str,
    ) -> CommandResult:
        """Set (overwrite) an annotation on a resource."""
        try:
            obj = await self._get_object(kind, name, namespace)
            if obj is None:
                return CommandResult(
                    success=False,
                    stderr=f'{kind} "{name}" not found',
                    returncode=1,
                )
            await obj.annotate({key: value})
            return CommandResult(success=True, stdout=f"{kind}/{name} annotated")
        except Exception as e:
            return CommandResult(success=False, stderr=str(e), returncode=1)

    async def apply_manifest(self, manifest_path: Path) -> CommandResult:
        """Apply a manifest file.

        Note: kr8s doesn't have a direct 'apply' equivalent, so we use
        the cluster CLI for this operation.
        """

        def _run() -> CommandResult:
            result = subprocess.run(
                [self.kubectl_binary, "apply", "-f", str(manifest_path)],
                capture_output=True,
                text=True,
            )
            return CommandResult(
                success=result.returncode == 0,
                stdout=result.stdout or "",
                stderr=result.stderr or "",
                returncode=result.returncode,
            )

        return await asyncio.to_thread(_run)

    # =========================================================================
    # Namespace Operations
    # =========================================================================

    async def namespace_exists(self, namespace: str) -> bool:
        """Check if a namespace exists."""
        try:
            api = await self._get_api()
            ns = await Namespace.get(namespace, api=api)
            return ns is not None
        except kr8s.NotFoundError:
            return False
        except Exception:
            return False

    async def delete_namespace(
        self,
        namespace: str,
        *,
        wait: bool = True,
        timeout: str = "120s",
    ) -> CommandResult:
        """Delete a namespace and all its resources."""
        try:
            api = await self._get_api()
            ns = await Namespace.get(namespace, api=api)
            await ns.delete()

            if wait:
                try:
                    await asyncio.wait_for(
                        self._wait_for_namespace_deletion(namespace),
                        timeout=parse_timeout(timeout),
                    )
                except TimeoutError:
                    return CommandResult(
                        success=False,
                        stderr=f"Timeout waiting for namespace {namespace} deletion",
                        returncode=1,
                    )

            return CommandResult(
                success=True, stdout=f'namespace "{namespace}" deleted'
            )
        except kr8s.NotFoundError:
            return CommandResult(
                success=True, stdout=f'namespace "{namespace}" not found'
            )
        except Exception as e:
            return CommandResult(success=False, stderr=str(e), returncode=1)

    async def _wait_for_namespace_deletion(self, namespace: str) -> None:
        """Wait until a namespace no longer exists."""
        while await self.namespace_exists(namespace):
            await asyncio.sleep(1)
