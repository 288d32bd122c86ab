"""Connectivity validation through per-pod tunnels."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

import httpx

from kubetrbl.core.config import Settings, get_settings
from kubetrbl.core.errors import TransportError
from kubetrbl.core.telemetry import get_tracer
from kubetrbl.models.k8s import PodRecord, TunnelOutcome
from kubetrbl.services.tunnel import LOCAL_HOST, Tunnel, TunnelProvider

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

TUNNEL_JOIN_TIMEOUT_SECONDS = 5.0


class TunnelValidator:
    """Probes pods one at a time through a freshly opened tunnel.

    For each pod a tunnel is opened, its forwarding loop started in a
    background thread, and the caller blocks until the tunnel is ready. A
    single HTTP GET is then sent to the forwarded port. The tunnel is always
    stopped afterwards, whatever the probe returned.

    Probe failures are recorded as unreachable outcomes. Failures to set up
    the tunnel itself raise TransportError.

    Example:
        ```python
        validator = TunnelValidator(KubernetesTunnelProvider(core_api))
        outcomes = validator.validate("shop", member_pods, container_port=8080)
        ```
    """

    def __init__(
        self,
        provider: TunnelProvider,
        settings: Settings | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the validator.

        Args:
            provider: Source of tunnels
            settings: Application settings (uses default if not provided)
            http_client: Client used for probes, owned by the caller. If omitted
                each probe opens and closes its own client built from settings
        """
        self.provider = provider
        self.settings = settings or get_settings()
        self._http_client = http_client

    def validate(
        self, namespace: str, pods: Iterable[PodRecord], container_port: int
    ) -> list[TunnelOutcome]:
        """Probe every pod in order; one unreachable pod does not stop the rest.

        Raises:
            TransportError: If a tunnel cannot be established
        """
        return [self.probe_pod(namespace, pod.name, container_port) for pod in pods]

    def probe_pod(self, namespace: str, pod_name: str, container_port: int) -> TunnelOutcome:
        """Open a tunnel to one pod, probe it and tear the tunnel down.

        Raises:
            TransportError: If the tunnel cannot be established
        """
        with tracer.start_as_current_span("probe_pod") as span:
            span.set_attribute("k8s.namespace.name", namespace)
            span.set_attribute("k8s.pod.name", pod_name)
            span.set_attribute("kubetrbl.container_port", container_port)

            try:
                tunnel = self.provider.open(
                    namespace, pod_name, self.settings.tunnel_local_port, container_port
                )
            except TransportError:
                raise
            except Exception as e:
                raise TransportError(f"Failed to open tunnel to {pod_name}: {e}") from e

            outcome = self._probe_through(tunnel, pod_name)
            span.set_attribute("kubetrbl.reachable", outcome.reachable)
            return outcome

    def _probe_through(self, tunnel: Tunnel, pod_name: str) -> TunnelOutcome:
        failures: list[BaseException] = []

        def forward() -> None:
            try:
                tunnel.start()
            except Exception as e:
                failures.append(e)
            finally:
                # Unblock the waiting caller if start() died before ready
                tunnel.ready.set()

        worker = threading.Thread(target=forward, name=f"tunnel-{pod_name}", daemon=True)
        worker.start()
        try:
            timeout = self.settings.tunnel_ready_timeout_seconds
            if not tunnel.ready.wait(timeout):
                logger.warning("Tunnel to %s not ready after %.1fs", pod_name, timeout)
                return TunnelOutcome(
                    pod_name=pod_name,
                    reachable=False,
                    detail=f"Tunnel timed out after {timeout:g}s waiting to become ready",
                    timed_out=True,
                )
            if failures:
                raise TransportError(
                    f"Failed to establish tunnel to {pod_name}: {failures[0]}"
                ) from failures[0]
            return self._probe(pod_name, tunnel.local_port)
        finally:
            tunnel.stop()
            worker.join(timeout=TUNNEL_JOIN_TIMEOUT_SECONDS)
            if worker.is_alive():
                logger.warning("Tunnel to %s did not shut down in time", pod_name)

    def _probe(self, pod_name: str, local_port: int) -> TunnelOutcome:
        url = f"http://{LOCAL_HOST}:{local_port}{self.settings.probe_path}"
        try:
            if self._http_client is not None:
                response = self._http_client.get(url)
            else:
                with httpx.Client(timeout=self.settings.probe_timeout_seconds) as client:
                    response = client.get(url)
        except httpx.HTTPError as e:
            logger.info("Probe of %s failed: %s", pod_name, e)
            return TunnelOutcome(
                pod_name=pod_name,
                reachable=False,
                detail=f"{type(e).__name__}: {e}",
            )

        detail = f"{response.status_code} {response.reason_phrase}".strip()
        logger.info("Probe of %s returned %s", pod_name, detail)
        return TunnelOutcome(
            pod_name=pod_name,
            reachable=response.status_code < 400,
            detail=detail,
            status_code=response.status_code,
        )
