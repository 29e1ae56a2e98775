"""Sync constants and the embedded unit tables.

This module centralizes the resource kinds, namespaces, annotation keys,
timeouts and patch documents used by the orchestrators, plus the default
operator stack they manage.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .models import AllOfSignal, CrdSignal, ResourcePhaseSignal, Unit, UnitKind


@dataclass(frozen=True)
class SyncConstants:
    """Constants for staged sync and teardown.

    All attributes are immutable; override individual values by passing
    them to the constructor (e.g. ``SyncConstants(GITOPS_NAMESPACE="argocd")``).
    """

    # Namespaces
    GITOPS_NAMESPACE: str = "openshift-gitops"
    INSTALL_GATE_NAMESPACE: str = "openshift-operators"

    # Resource kinds (group-qualified to avoid clashing with app.k8s.io Application)
    APPLICATION_RESOURCE: str = "applications.argoproj.io"
    APPLICATIONSET_RESOURCE: str = "applicationsets.argoproj.io"
    CRD_RESOURCE: str = "customresourcedefinitions"
    CSV_RESOURCE: str = "clusterserviceversions.operators.coreos.com"
    INSTALLPLAN_RESOURCE: str = "installplans.operators.coreos.com"
    SUBSCRIPTION_RESOURCE: str = "subscriptions.operators.coreos.com"
    OPERATORGROUP_RESOURCE: str = "operatorgroups.operators.coreos.com"
    CATALOGSOURCE_RESOURCE: str = "catalogsources.operators.coreos.com"

    # Annotations, finalizers, identities
    REFRESH_ANNOTATION: str = "argocd.argoproj.io/refresh"
    REFRESH_VALUE: str = "normal"
    CASCADE_FINALIZER: str = "resources-finalizer.argocd.argoproj.io"
    OPERATION_INITIATOR: str = "stagesync"

    # Sync timeouts (seconds) and poll intervals
    APP_WAIT_TIMEOUT: float = 60
    APP_WAIT_POLL: float = 3
    PREFLIGHT_TIMEOUT: float = 120
    PREFLIGHT_POLL: float = 3
    SIGNAL_TIMEOUT: float = 120
    SIGNAL_POLL: float = 5
    HEALTH_TIMEOUT: float = 300
    HEALTH_POLL: float = 10

    # Config application group
    CONFIG_HEALTH_TIMEOUT: float = 120
    CONFIG_HEALTH_POLL: float = 5

    # Teardown timeouts
    DELETION_TIMEOUT: float = 300
    DELETION_POLL: float = 5
    FORCE_DELETE_TIMEOUT: str = "30s"
    NAMESPACE_DELETE_TIMEOUT: str = "120s"
    INSTANCE_DELETE_TIMEOUT: str = "60s"

    # Automated sync retry policy
    RETRY_LIMIT: int = 5
    RETRY_BACKOFF_DURATION: str = "30s"
    RETRY_BACKOFF_FACTOR: int = 2
    RETRY_BACKOFF_MAX_DURATION: str = "3m"

    # Kinds whose finalizers are stripped before a namespace is deleted
    # (what ``oc get all`` returns)
    SWEEP_RESOURCE_KINDS: tuple[str, ...] = (
        "pods",
        "services",
        "replicationcontrollers",
        "deployments",
        "replicasets",
        "statefulsets",
        "daemonsets",
        "jobs",
        "cronjobs",
        "horizontalpodautoscalers",
    )

    @property
    def auto_sync_patch(self) -> dict[str, Any]:
        """Merge patch enabling automated sync with the retry policy."""
        return {
            "spec": {
                "syncPolicy": {
                    "automated": {"prune": True, "selfHeal": True},
                    "retry": {
                        "limit": self.RETRY_LIMIT,
                        "backoff": {
                            "duration": self.RETRY_BACKOFF_DURATION,
                            "factor": self.RETRY_BACKOFF_FACTOR,
                            "maxDuration": self.RETRY_BACKOFF_MAX_DURATION,
                        },
                    },
                }
            }
        }

    @property
    def disable_auto_sync_patch(self) -> dict[str, Any]:
        return {"spec": {"syncPolicy": {"automated": None}}}

    @property
    def retry_operation_patch(self) -> dict[str, Any]:
        """Merge patch that starts a fresh sync operation."""
        return {
            "operation": {
                "initiatedBy": {"username": self.OPERATION_INITIATOR},
                "sync": {"prune": True},
            }
        }

    @property
    def cascade_finalizer_patch(self) -> dict[str, Any]:
        return {"metadata": {"finalizers": [self.CASCADE_FINALIZER]}}


DEFAULT_CONSTANTS = SyncConstants()

# Patches that do not depend on configuration
APPROVE_INSTALL_PLAN_PATCH: dict[str, Any] = {"spec": {"approved": True}}
DISABLE_GENERATORS_PATCH: list[dict[str, Any]] = [
    {"op": "replace", "path": "/spec/generators", "value": []}
]
REMOVE_FINALIZERS_PATCH: list[dict[str, Any]] = [
    {"op": "remove", "path": "/metadata/finalizers"}
]


# =============================================================================
# Default Operator Stack
# =============================================================================

_OPERATOR = UnitKind.OPERATOR
_INSTANCE = UnitKind.INSTANCE

SYNC_UNITS: tuple[Unit, ...] = (
    # Foundation
    Unit("nfd", _OPERATOR),
    Unit(
        "instance-nfd",
        _INSTANCE,
        ("nfd",),
        CrdSignal("nodefeaturediscoveries.nfd.openshift.io"),
    ),
    Unit("nvidia-operator", _OPERATOR, ("instance-nfd",)),
    Unit(
        "instance-nvidia",
        _INSTANCE,
        ("nvidia-operator",),
        CrdSignal("clusterpolicies.nvidia.com"),
    ),
    # Dependent operators
    Unit("openshift-service-mesh", _OPERATOR),
    Unit("kueue-operator", _OPERATOR),
    Unit("leader-worker-set", _OPERATOR),
    Unit(
        "instance-lws",
        _INSTANCE,
        ("leader-worker-set",),
        CrdSignal("leaderworkersetoperators.operator.openshift.io"),
    ),
    Unit("jobset-operator", _OPERATOR),
    Unit(
        "instance-jobset",
        _INSTANCE,
        ("jobset-operator",),
        CrdSignal("jobsetoperators.operator.openshift.io"),
    ),
    Unit("connectivity-link", _OPERATOR, ("openshift-service-mesh",)),
    Unit(
        "instance-kuadrant",
        _INSTANCE,
        ("connectivity-link",),
        CrdSignal("kuadrants.kuadrant.io"),
    ),
    # RHOAI
    Unit(
        "rhoai-operator",
        _OPERATOR,
        (
            "instance-nvidia",
            "kueue-operator",
            "instance-lws",
            "instance-jobset",
            "instance-kuadrant",
        ),
    ),
    Unit(
        "instance-rhoai",
        _INSTANCE,
        ("rhoai-operator",),
        AllOfSignal(
            (
                CrdSignal("datascienceclusters.datasciencecluster.opendatahub.io"),
                ResourcePhaseSignal("dscinitialization", "default-dsci", "Ready"),
            )
        ),
    ),
)

# Synthetic units removed after everything in SYNC_UNITS
CLEANUP_EXTRAS: tuple[Unit, ...] = (Unit("cluster-config", UnitKind.CONFIG),)

GATEWAY_CLASS_CRD = "gatewayclasses.gateway.networking.k8s.io"

CONFIG_UNITS: tuple[Unit, ...] = (
    Unit("config-rbac", UnitKind.CONFIG),
    Unit("config-gateway", UnitKind.CONFIG, (), CrdSignal(GATEWAY_CLASS_CRD)),
    Unit("config-maas", UnitKind.CONFIG, (), CrdSignal(GATEWAY_CLASS_CRD)),
)

# Namespaces created by the GitOps deployment
MANAGED_NAMESPACES: tuple[str, ...] = (
    "redhat-ods-operator",
    "redhat-ods-applications",
    "redhat-ods-monitoring",
    "rhods-notebooks",
    "rhoai-model-registries",
    "kuadrant-system",
    "nvidia-gpu-operator",
    "openshift-nfd",
    "openshift-kueue-operator",
    "openshift-lws-operator",
    "openshift-jobset-operator",
)


# =============================================================================
# Conflicting Installations
# =============================================================================


@dataclass(frozen=True)
class ConflictingInstallation:
    """A pre-installed operator instance that blocks a GitOps install.

    ``instance_name == "*"`` means every instance of the kind in the namespace.
    """

    namespace: str
    subscription_pattern: str
    instance_kind: str
    instance_name: str

    @property
    def matches_all(self) -> bool:
        return self.instance_name == "*"


CONFLICTING_INSTALLATIONS: tuple[ConflictingInstallation, ...] = (
    # RHOAI
    ConflictingInstallation(
        "redhat-ods-operator", "rhods-operator", "DataScienceCluster", "default-dsc"
    ),
    ConflictingInstallation(
        "redhat-ods-operator", "rhods-operator", "DSCInitialization", "default-dsci"
    ),
    # Connectivity Link / Kuadrant
    ConflictingInstallation("kuadrant-system", "rhcl-operator", "Kuadrant", "kuadrant"),
    ConflictingInstallation(
        "kuadrant-system", "authorino-operator", "Authorino", "authorino"
    ),
    ConflictingInstallation(
        "kuadrant-system", "limitador-operator", "Limitador", "limitador"
    ),
    ConflictingInstallation("kuadrant-system", "dns-operator", "DNSPolicy", "*"),
    # Service Mesh 3
    ConflictingInstallation(
        "openshift-operators", "servicemeshoperator3", "ServiceMeshControlPlane", "*"
    ),
    # Kueue
    ConflictingInstallation(
        "openshift-kueue-operator", "kueue-operator", "ClusterQueue", "*"
    ),
    ConflictingInstallation(
        "openshift-kueue-operator", "kueue-operator", "LocalQueue", "*"
    ),
    # Leader Worker Set
    ConflictingInstallation(
        "openshift-lws-operator",
        "lws-operator",
        "LeaderWorkerSetOperator",
        "leaderworkersetoperator",
    ),
    # JobSet
    ConflictingInstallation(
        "openshift-jobset-operator",
        "jobset-operator",
        "JobSetOperator",
        "jobsetoperator",
    ),
    # NVIDIA GPU Operator
    ConflictingInstallation(
        "nvidia-gpu-operator",
        "gpu-operator-certified",
        "ClusterPolicy",
        "gpu-cluster-policy",
    ),
    # NFD
    ConflictingInstallation(
        "openshift-nfd", "nfd", "NodeFeatureDiscovery", "nfd-instance"
    ),
)

# Namespaces where conflicting operators might be installed
OPERATOR_NAMESPACES: tuple[str, ...] = (
    "redhat-ods-operator",
    "kuadrant-system",
    "openshift-operators",
    "openshift-kueue-operator",
    "openshift-lws-operator",
    "openshift-jobset-operator",
    "nvidia-gpu-operator",
    "openshift-nfd",
)

# Cluster-scoped (or cross-namespace) instances: (kind, name or "*", delete timeout)
CLUSTER_SCOPED_INSTANCES: tuple[tuple[str, str, str], ...] = (
    ("clusterpolicy", "gpu-cluster-policy", "60s"),
    ("nodefeaturediscovery", "*", "60s"),
    ("datasciencecluster", "*", "120s"),
    ("dscinitializations.dscinitialization.opendatahub.io", "*", "60s"),
)

# Namespace whose OperatorGroups are system-owned and must be kept
SYSTEM_OPERATOR_NAMESPACE = "openshift-operators"
SERVICE_MESH_PATTERN = r"servicemesh|istio"
MARKETPLACE_NAMESPACE = "openshift-marketplace"
CATALOG_SOURCE_PATTERN = r"rhoai|rhods"
