"""Kubernetes object snapshots used by the diagnostic flow.

Records are immutable once built: the session captures them once and every
later step reads the same view of the cluster.
"""

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator


def _freeze(value: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(value))


# Label and selector maps are read-only once validated
Labels = Annotated[Mapping[str, str], AfterValidator(_freeze)]


class PodPhase(str, Enum):
    """Lifecycle phase of a pod."""

    PENDING = "Pending"  # Accepted, containers not all created yet
    RUNNING = "Running"  # Bound to a node, at least one container running
    SUCCEEDED = "Succeeded"  # All containers exited successfully
    FAILED = "Failed"  # All containers exited, at least one failed
    UNKNOWN = "Unknown"  # Node lost contact


class PodCondition(BaseModel):
    """A named pod condition such as Ready or PodScheduled."""

    model_config = ConfigDict(frozen=True)

    type: str
    status: str = "Unknown"  # "True", "False" or "Unknown"

    @property
    def is_true(self) -> bool:
        return self.status == "True"


class PodRecord(BaseModel):
    """Snapshot of a pod.

    Attributes:
        name: Pod name
        phase: Current lifecycle phase
        conditions: Conditions reported in the pod status
        labels: Pod labels
    """

    model_config = ConfigDict(frozen=True)

    name: str
    phase: PodPhase = PodPhase.UNKNOWN
    conditions: tuple[PodCondition, ...] = ()
    labels: Labels = Field(default_factory=dict, validate_default=True)

    def condition(self, condition_type: str) -> PodCondition | None:
        """Return the condition of the given type, if reported."""
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None

    def ready_condition(self) -> PodCondition | None:
        return self.condition("Ready")


class ServicePortRecord(BaseModel):
    """A port exposed by a service.

    The target is either a container port number or the name of a container
    port that has to be looked up on the backing deployment.
    """

    model_config = ConfigDict(frozen=True)

    name: str = ""
    port: int
    target_port: int | str

    @field_validator("target_port", mode="before")
    @classmethod
    def _numeric_strings_are_ports(cls, value: int | str) -> int | str:
        if isinstance(value, str) and value.isdigit():
            return int(value)
        return value

    @property
    def is_symbolic(self) -> bool:
        return isinstance(self.target_port, str)

    def describe(self) -> str:
        label = self.name or "<unnamed>"
        return f"{label}:{self.port} -> {self.target_port}"


class ServiceRecord(BaseModel):
    """Snapshot of a service with its selector and ports."""

    model_config = ConfigDict(frozen=True)

    name: str
    selector: Labels = Field(default_factory=dict, validate_default=True)
    ports: tuple[ServicePortRecord, ...] = ()


class ContainerPortRecord(BaseModel):
    """A port declared on a container of a deployment template."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    container_port: int


class ContainerRecord(BaseModel):
    """A container of a deployment template and its declared ports."""

    model_config = ConfigDict(frozen=True)

    name: str
    ports: tuple[ContainerPortRecord, ...] = ()


class ControllerRecord(BaseModel):
    """Snapshot of a deployment: its labels and template containers."""

    model_config = ConfigDict(frozen=True)

    name: str
    labels: Labels = Field(default_factory=dict, validate_default=True)
    containers: tuple[ContainerRecord, ...] = ()


class TunnelOutcome(BaseModel):
    """Result of probing one pod through a tunnel.

    Attributes:
        pod_name: Name of the probed pod
        reachable: True if the probe answered with a status below 400
        detail: HTTP status line or failure reason
        status_code: HTTP status code if a response was received
        timed_out: True if the tunnel never became ready
    """

    model_config = ConfigDict(frozen=True)

    pod_name: str
    reachable: bool
    detail: str | None = None
    status_code: int | None = None
    timed_out: bool = False
