from __future__ import annotations

from cachetools.func import lru_cache  # type: ignore

from stagesync.infra.k8s.controller import (
    KubernetesController,
    KubernetesControllerSync,
)


@lru_cache(maxsize=4)
def get_k8s_controller(backend: str = "kr8s", binary: str = "oc") -> KubernetesController:
    """Get an instance of the KubernetesController.

    Args:
        backend: "kr8s" for the native client, "cli" for oc/kubectl subprocesses
        binary: Cluster CLI used by the subprocess backend

    Returns:
        An instance of KubernetesController
    """
    if backend == "cli":
        from stagesync.infra.k8s.kubectl_controller import KubectlController

        return KubectlController(binary)

    from stagesync.infra.k8s.kr8s_controller import Kr8sController

    return Kr8sController(binary)


@lru_cache(maxsize=4)
def get_k8s_controller_sync(
    backend: str = "kr8s", binary: str = "oc"
) -> KubernetesControllerSync:
    """Get a synchronous wrapper for KubernetesController.

    Returns:
        An instance of KubernetesControllerSync wrapping the async controller
    """
    return KubernetesControllerSync(get_k8s_controller(backend, binary))
