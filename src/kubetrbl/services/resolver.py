"""Resolution of a service endpoint down to the pods that back it.

Every function here works on snapshots that were already fetched and has no
side effects. The chain is:

    service --(identity label)--> deployment --(port name)--> container port
    deployment --(identity label)--> member pods
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Literal

from kubetrbl.core.errors import AmbiguousError, NotFoundError
from kubetrbl.models.k8s import (
    ControllerRecord,
    PodPhase,
    PodRecord,
    ServicePortRecord,
    ServiceRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_IDENTITY_LABEL = "app"

ControllerPolicy = Literal["fail", "first-by-name"]


def resolve_controller(
    service: ServiceRecord,
    controllers: Iterable[ControllerRecord],
    label_key: str = DEFAULT_IDENTITY_LABEL,
    policy: ControllerPolicy = "fail",
) -> ControllerRecord:
    """Find the deployment a service routes to.

    Args:
        service: The selected service
        controllers: Deployments in the service's namespace
        label_key: Label whose selector value identifies the deployment
        policy: What to do when several deployments match. "fail" raises,
            "first-by-name" picks the lexicographically smallest name.

    Returns:
        The matching deployment

    Raises:
        NotFoundError: If the service has no selector for the label, or no
            deployment carries a matching label
        AmbiguousError: If several deployments match and policy is "fail"
    """
    value = service.selector.get(label_key)
    if value is None:
        raise NotFoundError(f"Service {service.name} has no selector for label {label_key!r}")

    matches = sorted(
        (c for c in controllers if c.labels.get(label_key) == value),
        key=lambda c: c.name,
    )
    if not matches:
        raise NotFoundError(f"No deployment found with label {label_key}={value}")

    if len(matches) > 1:
        names = [c.name for c in matches]
        if policy == "fail":
            raise AmbiguousError(
                f"{len(matches)} deployments match label {label_key}={value}: {', '.join(names)}",
                candidates=names,
            )
        logger.info("Several deployments match %s=%s, using %s", label_key, value, names[0])

    return matches[0]


def resolve_container_port(controller: ControllerRecord, service_port: ServicePortRecord) -> int:
    """Resolve the container port a service port forwards to.

    A numeric target is returned as is. A named target is looked up across
    the deployment's containers in declaration order and the first port with
    that name wins, even if a later container declares the same name.

    Raises:
        NotFoundError: If no container declares a port with the target name
    """
    if isinstance(service_port.target_port, int):
        return service_port.target_port

    for container in controller.containers:
        for port in container.ports:
            if port.name == service_port.target_port:
                return port.container_port

    raise NotFoundError(
        f"No container in deployment {controller.name} exposes a port named "
        f"{service_port.target_port!r}"
    )


def resolve_member_pods(
    controller: ControllerRecord,
    pods: Sequence[PodRecord],
    label_key: str = DEFAULT_IDENTITY_LABEL,
) -> list[PodRecord]:
    """Return the pods, in snapshot order, that belong to a deployment.

    An empty list is a valid answer: the deployment simply has no pods.
    """
    value = controller.labels.get(label_key)
    if value is None:
        logger.debug("Deployment %s has no %s label", controller.name, label_key)
        return []
    return [pod for pod in pods if pod.labels.get(label_key) == value]


# -------------------------------------------------------------------------
# Pod health partitions
# -------------------------------------------------------------------------


def pending_pods(pods: Iterable[PodRecord]) -> list[PodRecord]:
    return [pod for pod in pods if pod.phase == PodPhase.PENDING]


def non_running_pods(pods: Iterable[PodRecord]) -> list[PodRecord]:
    return [pod for pod in pods if pod.phase != PodPhase.RUNNING]


def not_ready_pods(pods: Iterable[PodRecord]) -> list[PodRecord]:
    """Pods that report a Ready condition which is not True.

    Pods without a Ready condition at all are left out.
    """
    result = []
    for pod in pods:
        condition = pod.ready_condition()
        if condition is not None and not condition.is_true:
            result.append(pod)
    return result
