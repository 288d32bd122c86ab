"""Pytest configuration and shared fakes for kubetrbl tests."""

import threading
from collections.abc import Iterable

import pytest

from kubetrbl.core.config import Settings
from kubetrbl.core.errors import NotFoundError, OperatorAbortError
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
from kubetrbl.services.prompt import parse_index


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers",
        "live_cluster: marks tests that require a reachable Kubernetes cluster",
    )


# -------------------------------------------------------------------------
# Record builders
# -------------------------------------------------------------------------


def _make_pod(
    name: str,
    phase: PodPhase = PodPhase.RUNNING,
    ready: bool | None = True,
    labels: dict[str, str] | None = None,
) -> PodRecord:
    conditions = () if ready is None else (
        PodCondition(type="Ready", status="True" if ready else "False"),
    )
    return PodRecord(name=name, phase=phase, conditions=conditions, labels=labels or {})


def _make_service(
    name: str,
    selector: dict[str, str] | None = None,
    ports: Iterable[tuple[str, int, int | str]] = (),
) -> ServiceRecord:
    return ServiceRecord(
        name=name,
        selector=selector or {},
        ports=tuple(
            ServicePortRecord(name=port_name, port=port, target_port=target)
            for port_name, port, target in ports
        ),
    )


def _make_controller(
    name: str,
    labels: dict[str, str] | None = None,
    containers: Iterable[tuple[str, Iterable[tuple[str, int]]]] = (),
) -> ControllerRecord:
    return ControllerRecord(
        name=name,
        labels=labels or {},
        containers=tuple(
            ContainerRecord(
                name=container_name,
                ports=tuple(
                    ContainerPortRecord(name=port_name, container_port=number)
                    for port_name, number in ports
                ),
            )
            for container_name, ports in containers
        ),
    )


# -------------------------------------------------------------------------
# Fakes
# -------------------------------------------------------------------------


class ScriptedPrompter:
    """Prompter answering from a fixed script; running out means end of input."""

    def __init__(self, answers: Iterable[str]) -> None:
        self.answers = list(answers)
        self.prompts: list[str] = []

    def read_line(self, prompt: str, default: str | None = None) -> str:
        self.prompts.append(prompt)
        if not self.answers:
            raise OperatorAbortError("Input closed by operator")
        answer = self.answers.pop(0).strip()
        return answer or (default or "")

    def read_index(self, prompt: str) -> int:
        return parse_index(self.read_line(prompt))


class FakeGateway:
    """In-memory cluster gateway."""

    def __init__(
        self,
        namespaces: list[str] | None = None,
        pods: dict[str, list[PodRecord]] | None = None,
        services: dict[str, list[ServiceRecord]] | None = None,
        controllers: dict[str, list[ControllerRecord]] | None = None,
    ) -> None:
        self.namespaces = namespaces or []
        self.pods = pods or {}
        self.services = services or {}
        self.controllers = controllers or {}
        self.calls: list[str] = []
        self.core_api = None

    def list_namespaces(self) -> list[str]:
        self.calls.append("list_namespaces")
        return list(self.namespaces)

    def list_pods(self, namespace: str) -> list[PodRecord]:
        self.calls.append(f"list_pods:{namespace}")
        return list(self.pods.get(namespace, []))

    def list_services(self, namespace: str) -> list[ServiceRecord]:
        self.calls.append(f"list_services:{namespace}")
        return list(self.services.get(namespace, []))

    def list_controllers(self, namespace: str) -> list[ControllerRecord]:
        self.calls.append(f"list_controllers:{namespace}")
        return list(self.controllers.get(namespace, []))

    def read_controller(self, namespace: str, name: str) -> ControllerRecord:
        for controller in self.controllers.get(namespace, []):
            if controller.name == name:
                return controller
        raise NotFoundError(f"Deployment {name} not found")


class FakeTunnel:
    """Tunnel whose forwarding loop just waits for the stop signal."""

    def __init__(
        self,
        pod_name: str,
        local_port: int,
        remote_port: int,
        start_error: Exception | None = None,
        never_ready: bool = False,
    ) -> None:
        self.pod_name = pod_name
        self.remote_port = remote_port
        self.ready = threading.Event()
        self.stopped = threading.Event()
        self.started = False
        self._local_port = local_port
        self._start_error = start_error
        self._never_ready = never_ready

    @property
    def local_port(self) -> int:
        return self._local_port

    def start(self) -> None:
        self.started = True
        if self._start_error is not None:
            raise self._start_error
        if not self._never_ready:
            self.ready.set()
        self.stopped.wait(timeout=10)

    def stop(self) -> None:
        self.stopped.set()


class FakeTunnelProvider:
    """Hands out FakeTunnels on distinct local ports, one per pod."""

    BASE_PORT = 31000

    def __init__(
        self,
        start_errors: dict[str, Exception] | None = None,
        open_errors: dict[str, Exception] | None = None,
        never_ready: Iterable[str] = (),
    ) -> None:
        self.start_errors = start_errors or {}
        self.open_errors = open_errors or {}
        self.never_ready = set(never_ready)
        self.tunnels: list[FakeTunnel] = []

    def open(self, namespace: str, pod_name: str, local_port: int, remote_port: int) -> FakeTunnel:
        if pod_name in self.open_errors:
            raise self.open_errors[pod_name]
        tunnel = FakeTunnel(
            pod_name,
            local_port=self.BASE_PORT + len(self.tunnels),
            remote_port=remote_port,
            start_error=self.start_errors.get(pod_name),
            never_ready=pod_name in self.never_ready,
        )
        self.tunnels.append(tunnel)
        return tunnel

    def pod_for_port(self, port: int) -> str:
        return self.tunnels[port - self.BASE_PORT].pod_name


@pytest.fixture
def settings() -> Settings:
    """Settings with short timeouts for tests."""
    return Settings(
        _env_file=None,
        tunnel_ready_timeout_seconds=0.5,
        probe_timeout_seconds=1.0,
        max_state_retries=2,
        probe_path="/internal/metrics",
    )


# -------------------------------------------------------------------------
# Builder and fake fixtures
# -------------------------------------------------------------------------


@pytest.fixture
def make_pod():
    """Build a PodRecord: make_pod(name, phase=RUNNING, ready=True, labels=None)."""
    return _make_pod


@pytest.fixture
def make_service():
    """Build a ServiceRecord: make_service(name, selector, ports=[(name, port, target)])."""
    return _make_service


@pytest.fixture
def make_controller():
    """Build a ControllerRecord: make_controller(name, labels, containers=[(name, ports)])."""
    return _make_controller


@pytest.fixture
def make_prompter():
    """Build a ScriptedPrompter from a list of answers."""
    return ScriptedPrompter


@pytest.fixture
def make_gateway():
    """Build an in-memory FakeGateway."""
    return FakeGateway


@pytest.fixture
def tunnel_provider() -> FakeTunnelProvider:
    """A tunnel provider whose errors can be set per pod."""
    return FakeTunnelProvider()
