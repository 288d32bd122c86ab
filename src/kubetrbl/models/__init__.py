"""Pydantic models and session state for the diagnostic flow."""

from kubetrbl.models.k8s import (
    ContainerPortRecord,
    ContainerRecord,
    ControllerRecord,
    PodCondition,
    PodPhase,
    PodRecord,
    ServicePortRecord,
    ServiceRecord,
    TunnelOutcome,
)
from kubetrbl.models.session import Finding, Session

__all__ = [
    "ContainerPortRecord",
    "ContainerRecord",
    "ControllerRecord",
    "PodCondition",
    "PodPhase",
    "PodRecord",
    "ServicePortRecord",
    "ServiceRecord",
    "TunnelOutcome",
    "Finding",
    "Session",
]
