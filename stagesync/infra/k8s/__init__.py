"""Kubernetes infrastructure abstraction layer.

This module provides a clean abstraction over the cluster operations the
sync engine needs, supporting multiple backends (oc/kubectl subprocess,
kr8s library).

Example:
    from stagesync.infra.k8s import KubectlController, run_sync

    # Create controller
    controller = KubectlController()

    # Use async methods in sync context
    app = run_sync(
        controller.get_resource(
            "applications.argoproj.io", "nfd", "openshift-gitops"
        )
    )
"""

from .controller import (
    ClusterAPIError,
    ClusterIdentity,
    CommandResult,
    KubernetesController,
    KubernetesControllerSync,
    extract_field,
)
from .helpers import get_k8s_controller, get_k8s_controller_sync
from .kubectl_controller import KubectlController
from .utils import parse_timeout, run_sync

__all__ = [
    # Controller classes
    "KubernetesController",
    "KubernetesControllerSync",
    "KubectlController",
    # Data classes
    "CommandResult",
    "ClusterIdentity",
    # Errors
    "ClusterAPIError",
    # Factories
    "get_k8s_controller",
    "get_k8s_controller_sync",
    # Utilities
    "extract_field",
    "parse_timeout",
    "run_sync",
]
