"""Port-forward tunnels from a local port to a container port of a pod."""

from __future__ import annotations

import logging
import selectors
import socket
import threading
from typing import TYPE_CHECKING, Protocol

from kubernetes.stream import portforward

if TYPE_CHECKING:
    from kubernetes.client import CoreV1Api

logger = logging.getLogger(__name__)

LOCAL_HOST = "127.0.0.1"
POLL_INTERVAL_SECONDS = 0.2  # How often blocked loops check the stop signal
BUFFER_SIZE = 64 * 1024
RELAY_JOIN_TIMEOUT_SECONDS = 2.0


class Tunnel(Protocol):
    """A single-use forwarded connection to one pod.

    start() blocks running the forwarding loop until stop() is called. The
    ready event is set once the local port accepts connections.
    """

    ready: threading.Event

    @property
    def local_port(self) -> int: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


class TunnelProvider(Protocol):
    """Hands out tunnels bound to (namespace, pod, local port, remote port)."""

    def open(self, namespace: str, pod_name: str, local_port: int, remote_port: int) -> Tunnel: ...


class PortForwardTunnel:
    """Local TCP listener relaying each connection over a pod port-forward.

    Each accepted connection gets its own port-forward stream. The first
    stream is opened before the tunnel reports ready so that credential and
    upgrade failures are raised from start() instead of surfacing later as
    a refused probe.
    """

    def __init__(
        self,
        core_api: CoreV1Api,
        namespace: str,
        pod_name: str,
        local_port: int,
        remote_port: int,
    ) -> None:
        self.namespace = namespace
        self.pod_name = pod_name
        self.remote_port = remote_port
        self.ready = threading.Event()
        self._core_api = core_api
        self._requested_port = local_port
        self._bound_port: int | None = None
        self._stopped = threading.Event()
        self._relays: list[threading.Thread] = []

    @property
    def local_port(self) -> int:
        """Port the listener is bound to, known once the tunnel is ready."""
        return self._bound_port if self._bound_port is not None else self._requested_port

    def _connect(self) -> socket.socket:
        """Open one port-forward stream to the pod and return its socket."""
        forward = portforward(
            self._core_api.connect_get_namespaced_pod_portforward,
            self.pod_name,
            self.namespace,
            ports=str(self.remote_port),
        )
        remote = forward.socket(self.remote_port)
        remote.setblocking(True)
        return remote

    def start(self) -> None:
        """Run the forwarding loop until stop() is called."""
        server = socket.create_server((LOCAL_HOST, self._requested_port))
        try:
            remote: socket.socket | None = self._connect()
        except BaseException:
            server.close()
            raise

        server.settimeout(POLL_INTERVAL_SECONDS)
        self._bound_port = server.getsockname()[1]
        logger.info(
            "Forwarding %s:%d -> %s/%s:%d",
            LOCAL_HOST,
            self._bound_port,
            self.namespace,
            self.pod_name,
            self.remote_port,
        )
        self.ready.set()

        try:
            while not self._stopped.is_set():
                try:
                    conn, _ = server.accept()
                except TimeoutError:
                    continue

                if remote is None:
                    try:
                        remote = self._connect()
                    except Exception as e:
                        logger.warning("Port-forward to %s failed: %s", self.pod_name, e)
                        conn.close()
                        continue

                relay = threading.Thread(
                    target=self._pump,
                    args=(conn, remote),
                    name=f"relay-{self.pod_name}",
                    daemon=True,
                )
                self._relays.append(relay)
                relay.start()
                remote = None
        finally:
            server.close()
            if remote is not None:
                remote.close()
            for relay in self._relays:
                relay.join(timeout=RELAY_JOIN_TIMEOUT_SECONDS)
            logger.debug("Tunnel to %s/%s closed", self.namespace, self.pod_name)

    def _pump(self, local: socket.socket, remote: socket.socket) -> None:
        """Copy bytes both ways until either side closes or the tunnel stops."""
        selector = selectors.DefaultSelector()
        selector.register(local, selectors.EVENT_READ, remote)
        selector.register(remote, selectors.EVENT_READ, local)
        try:
            while not self._stopped.is_set():
                for key, _ in selector.select(timeout=POLL_INTERVAL_SECONDS):
                    data = key.fileobj.recv(BUFFER_SIZE)  # type: ignore[union-attr]
                    if not data:
                        return
                    key.data.sendall(data)
        except OSError as e:
            logger.debug("Relay for %s ended: %s", self.pod_name, e)
        finally:
            selector.close()
            local.close()
            remote.close()

    def stop(self) -> None:
        """Signal the forwarding loop to stop.

        start() notices within POLL_INTERVAL_SECONDS, closes the listener and
        waits for the relays, so the local port is released shortly after.
        """
        self._stopped.set()


class KubernetesTunnelProvider:
    """Opens port-forward tunnels through the Kubernetes API server."""

    def __init__(self, core_api: CoreV1Api) -> None:
        self._core_api = core_api

    def open(
        self, namespace: str, pod_name: str, local_port: int, remote_port: int
    ) -> PortForwardTunnel:
        return PortForwardTunnel(
            self._core_api,
            namespace=namespace,
            pod_name=pod_name,
            local_port=local_port,
            remote_port=remote_port,
        )
