"""Cluster gateway: read-only access to namespaces, pods, services and deployments."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from kubetrbl.core.errors import KubetrblError, NotFoundError, TransportError
from kubetrbl.models.k8s import (
    ContainerPortRecord,
    ContainerRecord,
    ControllerRecord,
    PodCondition,
    PodPhase,
    PodRecord,
    ServicePortRecord,
    ServiceRecord,
)

if TYPE_CHECKING:
    from kubernetes.client import (
        ApiClient,
        AppsV1Api,
        CoreV1Api,
        V1Deployment,
        V1Pod,
        V1Service,
    )

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------------
# Snapshot conversion
# -------------------------------------------------------------------------


def pod_from_k8s(pod: V1Pod) -> PodRecord:
    """Convert a V1Pod into an immutable PodRecord."""
    status = pod.status
    try:
        phase = PodPhase(status.phase) if status and status.phase else PodPhase.UNKNOWN
    except ValueError:
        logger.debug("Pod %s has unexpected phase %s", pod.metadata.name, status.phase)
        phase = PodPhase.UNKNOWN

    conditions: tuple[PodCondition, ...] = ()
    if status and status.conditions:
        conditions = tuple(
            PodCondition(type=c.type, status=c.status or "Unknown") for c in status.conditions
        )

    return PodRecord(
        name=pod.metadata.name,
        phase=phase,
        conditions=conditions,
        labels=dict(pod.metadata.labels or {}),
    )


def service_from_k8s(service: V1Service) -> ServiceRecord:
    """Convert a V1Service into an immutable ServiceRecord.

    A port without a targetPort forwards to its own port number, which is
    what the API server defaults it to.
    """
    spec = service.spec
    ports = tuple(
        ServicePortRecord(
            name=p.name or "",
            port=p.port,
            target_port=p.target_port if p.target_port is not None else p.port,
        )
        for p in ((spec.ports if spec else None) or [])
    )
    return ServiceRecord(
        name=service.metadata.name,
        selector=dict((spec.selector if spec else None) or {}),
        ports=ports,
    )


def controller_from_k8s(deployment: V1Deployment) -> ControllerRecord:
    """Convert a V1Deployment into an immutable ControllerRecord."""
    containers: list[ContainerRecord] = []
    template = deployment.spec.template if deployment.spec else None
    if template and template.spec:
        for container in template.spec.containers or []:
            containers.append(
                ContainerRecord(
                    name=container.name,
                    ports=tuple(
                        ContainerPortRecord(name=p.name or "", container_port=p.container_port)
                        for p in container.ports or []
                    ),
                )
            )

    return ControllerRecord(
        name=deployment.metadata.name,
        labels=dict(deployment.metadata.labels or {}),
        containers=tuple(containers),
    )


# -------------------------------------------------------------------------
# Gateway
# -------------------------------------------------------------------------


class ClusterGateway:
    """Read-only view of a Kubernetes cluster.

    Every object crossing this boundary is converted into a frozen record,
    and every client failure into NotFoundError or TransportError.

    Example:
        ```python
        gateway = ClusterGateway("~/.kube/config")
        gateway.connect()
        for namespace in gateway.list_namespaces():
            pods = gateway.list_pods(namespace)
        ```
    """

    def __init__(self, kubeconfig: str | None = None) -> None:
        """Initialize the gateway with lazy-loaded clients.

        Args:
            kubeconfig: Path to a kubeconfig file. None tries in-cluster
                configuration first, then the default kubeconfig.
        """
        self.kubeconfig = os.path.expanduser(kubeconfig) if kubeconfig else None
        self._api_client: ApiClient | None = None
        self._core_api: CoreV1Api | None = None
        self._apps_api: AppsV1Api | None = None
        self._initialized = False

    def connect(self) -> None:
        """Load credentials and build the API clients.

        Raises:
            TransportError: If no usable configuration could be loaded
        """
        if self._initialized:
            return

        try:
            if self.kubeconfig:
                self._api_client = config.new_client_from_config(config_file=self.kubeconfig)
                logger.info("Loaded Kubernetes configuration from %s", self.kubeconfig)
            else:
                try:
                    config.load_incluster_config()
                    logger.info("Loaded in-cluster Kubernetes configuration")
                except config.ConfigException:
                    config.load_kube_config()
                    logger.info("Loaded kubeconfig Kubernetes configuration")
                self._api_client = client.ApiClient()
        except (config.ConfigException, OSError) as e:
            logger.warning("Failed to load Kubernetes configuration: %s", e)
            raise TransportError(f"No usable Kubernetes configuration: {e}") from e

        self._core_api = client.CoreV1Api(self._api_client)
        self._apps_api = client.AppsV1Api(self._api_client)
        self._initialized = True

    @property
    def core_api(self) -> CoreV1Api:
        """Get the CoreV1 API client."""
        self.connect()
        assert self._core_api is not None
        return self._core_api

    @property
    def apps_api(self) -> AppsV1Api:
        """Get the AppsV1 API client."""
        self.connect()
        assert self._apps_api is not None
        return self._apps_api

    def _api_error(self, action: str, e: Exception) -> KubetrblError:
        if isinstance(e, ApiException):
            if e.status == 404:
                return NotFoundError(f"Failed to {action}: not found")
            return TransportError(f"Failed to {action}: {e.reason}")
        return TransportError(f"Failed to {action}: {e}")

    def list_namespaces(self) -> list[str]:
        """List namespace names in API order.

        Raises:
            TransportError: If the API cannot be queried
        """
        try:
            namespaces = self.core_api.list_namespace()
        except (ApiException, Urllib3HTTPError) as e:
            raise self._api_error("list namespaces", e) from e
        return [ns.metadata.name for ns in namespaces.items]

    def list_pods(self, namespace: str) -> list[PodRecord]:
        """List every pod in a namespace.

        Raises:
            NotFoundError: If the namespace does not exist
            TransportError: If the API cannot be queried
        """
        try:
            pods = self.core_api.list_namespaced_pod(namespace=namespace)
        except (ApiException, Urllib3HTTPError) as e:
            raise self._api_error(f"list pods in {namespace}", e) from e
        logger.debug("Fetched %d pods from %s", len(pods.items), namespace)
        return [pod_from_k8s(pod) for pod in pods.items]

    def list_services(self, namespace: str) -> list[ServiceRecord]:
        """List every service in a namespace."""
        try:
            services = self.core_api.list_namespaced_service(namespace=namespace)
        except (ApiException, Urllib3HTTPError) as e:
            raise self._api_error(f"list services in {namespace}", e) from e
        return [service_from_k8s(svc) for svc in services.items]

    def list_controllers(self, namespace: str) -> list[ControllerRecord]:
        """List every deployment in a namespace."""
        try:
            deployments = self.apps_api.list_namespaced_deployment(namespace=namespace)
        except (ApiException, Urllib3HTTPError) as e:
            raise self._api_error(f"list deployments in {namespace}", e) from e
        return [controller_from_k8s(dep) for dep in deployments.items]

    def read_controller(self, namespace: str, name: str) -> ControllerRecord:
        """Fetch a single deployment by name.

        Raises:
            NotFoundError: If the deployment does not exist
            TransportError: If the API cannot be queried
        """
        try:
            deployment = self.apps_api.read_namespaced_deployment(name=name, namespace=namespace)
        except (ApiException, Urllib3HTTPError) as e:
            raise self._api_error(f"read deployment {name} in {namespace}", e) from e
        return controller_from_k8s(deployment)


def create_cluster_gateway(kubeconfig: str | None = None) -> ClusterGateway:
    """Build a connected gateway, raising TransportError if credentials fail."""
    gateway = ClusterGateway(kubeconfig)
    gateway.connect()
    return gateway
