"""Service layer: cluster access, resolution, tunnels and the diagnostic flow."""

from kubetrbl.services.cluster import (
    ClusterGateway,
    controller_from_k8s,
    create_cluster_gateway,
    pod_from_k8s,
    service_from_k8s,
)
from kubetrbl.services.diagnostic import DiagnosticController
from kubetrbl.services.prompt import ConsolePrompter, Prompter, parse_index
from kubetrbl.services.resolver import (
    non_running_pods,
    not_ready_pods,
    pending_pods,
    resolve_container_port,
    resolve_controller,
    resolve_member_pods,
)
from kubetrbl.services.tunnel import (
    KubernetesTunnelProvider,
    PortForwardTunnel,
    Tunnel,
    TunnelProvider,
)
from kubetrbl.services.validator import TunnelValidator

__all__ = [
    # Cluster gateway
    "ClusterGateway",
    "create_cluster_gateway",
    "pod_from_k8s",
    "service_from_k8s",
    "controller_from_k8s",
    # Diagnostic flow
    "DiagnosticController",
    # Operator input
    "ConsolePrompter",
    "Prompter",
    "parse_index",
    # Resolution
    "resolve_controller",
    "resolve_container_port",
    "resolve_member_pods",
    "pending_pods",
    "non_running_pods",
    "not_ready_pods",
    # Tunnels
    "KubernetesTunnelProvider",
    "PortForwardTunnel",
    "Tunnel",
    "TunnelProvider",
    "TunnelValidator",
]
