"""Tests for ClusterGateway and snapshot conversion."""

from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client import (
    V1Container,
    V1ContainerPort,
    V1Deployment,
    V1DeploymentList,
    V1DeploymentSpec,
    V1LabelSelector,
    V1Namespace,
    V1NamespaceList,
    V1ObjectMeta,
    V1Pod,
    V1PodCondition,
    V1PodList,
    V1PodSpec,
    V1PodStatus,
    V1PodTemplateSpec,
    V1Service,
    V1ServiceList,
    V1ServicePort,
    V1ServiceSpec,
)
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import MaxRetryError

from kubetrbl.core.errors import NotFoundError, TransportError
from kubetrbl.models.k8s import PodPhase
from kubetrbl.services.cluster import (
    ClusterGateway,
    controller_from_k8s,
    create_cluster_gateway,
    pod_from_k8s,
    service_from_k8s,
)


def k8s_pod(name: str, phase: str | None = "Running", ready: str | None = "True", labels=None):
    conditions = [V1PodCondition(type="Ready", status=ready)] if ready else None
    return V1Pod(
        metadata=V1ObjectMeta(name=name, labels=labels),
        status=V1PodStatus(phase=phase, conditions=conditions),
    )


def k8s_deployment(name: str, labels=None, containers=None) -> V1Deployment:
    return V1Deployment(
        metadata=V1ObjectMeta(name=name, labels=labels),
        spec=V1DeploymentSpec(
            selector=V1LabelSelector(match_labels=labels),
            template=V1PodTemplateSpec(
                metadata=V1ObjectMeta(labels=labels),
                spec=V1PodSpec(containers=containers or []),
            ),
        ),
    )


@pytest.fixture
def mock_core_api():
    """Create a mock CoreV1Api."""
    return MagicMock()


@pytest.fixture
def mock_apps_api():
    """Create a mock AppsV1Api."""
    return MagicMock()


@pytest.fixture
def gateway(mock_core_api, mock_apps_api):
    """Create a ClusterGateway with mocked clients."""
    gateway = ClusterGateway()
    gateway._core_api = mock_core_api
    gateway._apps_api = mock_apps_api
    gateway._initialized = True
    return gateway


class TestPodConversion:
    """Tests for converting V1Pod objects."""

    def test_running_ready_pod(self):
        record = pod_from_k8s(k8s_pod("web-1", labels={"app": "web"}))
        assert record.name == "web-1"
        assert record.phase == PodPhase.RUNNING
        assert record.ready_condition().is_true
        assert record.labels == {"app": "web"}

    def test_pod_without_status(self):
        record = pod_from_k8s(V1Pod(metadata=V1ObjectMeta(name="bare")))
        assert record.phase == PodPhase.UNKNOWN
        assert record.conditions == ()
        assert record.labels == {}

    def test_unexpected_phase_is_unknown(self):
        record = pod_from_k8s(k8s_pod("odd", phase="Evicting"))
        assert record.phase == PodPhase.UNKNOWN

    def test_not_ready_condition(self):
        record = pod_from_k8s(k8s_pod("web-1", ready="False"))
        assert record.ready_condition() is not None
        assert not record.ready_condition().is_true


class TestServiceConversion:
    """Tests for converting V1Service objects."""

    def test_named_and_numeric_targets(self):
        service = V1Service(
            metadata=V1ObjectMeta(name="web"),
            spec=V1ServiceSpec(
                selector={"app": "web"},
                ports=[
                    V1ServicePort(name="http", port=80, target_port="http"),
                    V1ServicePort(name="admin", port=9000, target_port=9001),
                ],
            ),
        )
        record = service_from_k8s(service)
        assert record.selector == {"app": "web"}
        assert [p.target_port for p in record.ports] == ["http", 9001]

    def test_missing_target_port_defaults_to_port(self):
        service = V1Service(
            metadata=V1ObjectMeta(name="web"),
            spec=V1ServiceSpec(ports=[V1ServicePort(port=8080)]),
        )
        record = service_from_k8s(service)
        assert record.ports[0].target_port == 8080
        assert record.ports[0].name == ""
        assert record.selector == {}


class TestControllerConversion:
    """Tests for converting V1Deployment objects."""

    def test_containers_and_ports_keep_order(self):
        deployment = k8s_deployment(
            "web",
            labels={"app": "web"},
            containers=[
                V1Container(
                    name="app",
                    ports=[
                        V1ContainerPort(name="http", container_port=8080),
                        V1ContainerPort(container_port=9100),
                    ],
                ),
                V1Container(name="sidecar"),
            ],
        )
        record = controller_from_k8s(deployment)
        assert record.labels == {"app": "web"}
        assert [c.name for c in record.containers] == ["app", "sidecar"]
        assert [(p.name, p.container_port) for p in record.containers[0].ports] == [
            ("http", 8080),
            ("", 9100),
        ]
        assert record.containers[1].ports == ()


class TestGatewayQueries:
    """Tests for listing cluster objects."""

    def test_list_namespaces(self, gateway: ClusterGateway, mock_core_api):
        mock_core_api.list_namespace.return_value = V1NamespaceList(
            items=[
                V1Namespace(metadata=V1ObjectMeta(name="default")),
                V1Namespace(metadata=V1ObjectMeta(name="shop")),
            ]
        )
        assert gateway.list_namespaces() == ["default", "shop"]

    def test_list_pods(self, gateway: ClusterGateway, mock_core_api):
        mock_core_api.list_namespaced_pod.return_value = V1PodList(
            items=[k8s_pod("web-1"), k8s_pod("web-2", phase="Pending", ready=None)]
        )
        pods = gateway.list_pods("shop")
        mock_core_api.list_namespaced_pod.assert_called_once_with(namespace="shop")
        assert [(p.name, p.phase) for p in pods] == [
            ("web-1", PodPhase.RUNNING),
            ("web-2", PodPhase.PENDING),
        ]

    def test_list_services(self, gateway: ClusterGateway, mock_core_api):
        mock_core_api.list_namespaced_service.return_value = V1ServiceList(
            items=[V1Service(metadata=V1ObjectMeta(name="web"), spec=V1ServiceSpec())]
        )
        services = gateway.list_services("shop")
        assert [s.name for s in services] == ["web"]

    def test_list_controllers(self, gateway: ClusterGateway, mock_apps_api):
        mock_apps_api.list_namespaced_deployment.return_value = V1DeploymentList(
            items=[k8s_deployment("web", labels={"app": "web"})]
        )
        controllers = gateway.list_controllers("shop")
        assert [c.name for c in controllers] == ["web"]

    def test_read_controller(self, gateway: ClusterGateway, mock_apps_api):
        mock_apps_api.read_namespaced_deployment.return_value = k8s_deployment("web")
        assert gateway.read_controller("shop", "web").name == "web"
        mock_apps_api.read_namespaced_deployment.assert_called_once_with(
            name="web", namespace="shop"
        )


class TestGatewayErrors:
    """Tests for mapping client failures."""

    def test_not_found(self, gateway: ClusterGateway, mock_apps_api):
        mock_apps_api.read_namespaced_deployment.side_effect = ApiException(
            status=404, reason="Not Found"
        )
        with pytest.raises(NotFoundError):
            gateway.read_controller("shop", "missing")

    def test_forbidden_is_transport_error(self, gateway: ClusterGateway, mock_core_api):
        mock_core_api.list_namespace.side_effect = ApiException(status=403, reason="Forbidden")
        with pytest.raises(TransportError, match="Forbidden"):
            gateway.list_namespaces()

    def test_connection_failure_is_transport_error(
        self, gateway: ClusterGateway, mock_core_api
    ):
        mock_core_api.list_namespaced_pod.side_effect = MaxRetryError(
            pool=None, url="/api/v1/namespaces/shop/pods"
        )
        with pytest.raises(TransportError):
            gateway.list_pods("shop")


class TestConnect:
    """Tests for loading credentials."""

    def test_kubeconfig_path_builds_clients(self):
        with patch("kubetrbl.services.cluster.config.new_client_from_config") as new_client:
            new_client.return_value = MagicMock()
            gateway = create_cluster_gateway("/tmp/kubeconfig")
        new_client.assert_called_once_with(config_file="/tmp/kubeconfig")
        assert gateway.core_api is not None
        assert gateway.apps_api is not None

    def test_kubeconfig_path_expands_user(self):
        gateway = ClusterGateway("~/cluster.yaml")
        assert not gateway.kubeconfig.startswith("~")

    def test_bad_kubeconfig_is_transport_error(self):
        from kubernetes.config import ConfigException

        with patch(
            "kubetrbl.services.cluster.config.new_client_from_config",
            side_effect=ConfigException("Invalid kube-config file"),
        ):
            with pytest.raises(TransportError, match="Invalid kube-config"):
                create_cluster_gateway("/nope")

    def test_default_falls_back_to_kubeconfig(self):
        from kubernetes.config import ConfigException

        with (
            patch(
                "kubetrbl.services.cluster.config.load_incluster_config",
                side_effect=ConfigException("not in cluster"),
            ),
            patch("kubetrbl.services.cluster.config.load_kube_config") as load_kube_config,
        ):
            gateway = create_cluster_gateway(None)
        load_kube_config.assert_called_once()
        assert gateway._initialized
