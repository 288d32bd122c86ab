"""Core modules for configuration, errors, the state machine and telemetry."""

from kubetrbl.core.config import Settings, get_settings
from kubetrbl.core.errors import (
    AmbiguousError,
    InputError,
    InvalidInputError,
    KubetrblError,
    NotFoundError,
    OperatorAbortError,
    OutOfRangeError,
    TransportError,
    UnknownStateError,
)
from kubetrbl.core.fsm import State, StateMachine
from kubetrbl.core.telemetry import get_tracer, setup_telemetry

__all__ = [
    "Settings",
    "get_settings",
    "AmbiguousError",
    "InputError",
    "InvalidInputError",
    "KubetrblError",
    "NotFoundError",
    "OperatorAbortError",
    "OutOfRangeError",
    "TransportError",
    "UnknownStateError",
    "State",
    "StateMachine",
    "get_tracer",
    "setup_telemetry",
]
