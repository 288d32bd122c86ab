"""Session state accumulated while walking the diagnostic flow."""

from dataclasses import dataclass, field

from kubetrbl.models.k8s import (
    ControllerRecord,
    PodRecord,
    ServicePortRecord,
    ServiceRecord,
    TunnelOutcome,
)


@dataclass(frozen=True)
class Finding:
    """Something the operator should look at, reported at the end of the run."""

    step: str
    message: str
    pod_names: tuple[str, ...] = ()


@dataclass
class Session:
    """Everything learned about the cluster during one run.

    Fields are filled in step order. A field is only set once the step that
    owns it has succeeded, so a failed or retried step never leaves partial
    data behind.
    """

    kubeconfig: str | None = None
    namespace: str = ""
    pods: tuple[PodRecord, ...] = ()
    service: ServiceRecord | None = None
    service_port: ServicePortRecord | None = None
    controller: ControllerRecord | None = None
    container_port: int | None = None
    member_pods: tuple[PodRecord, ...] = ()
    outcomes: list[TunnelOutcome] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    aborted: bool = False

    def reset_namespace(self) -> None:
        """Forget everything derived from the selected namespace."""
        self.pods = ()
        self.service = None
        self.service_port = None
        self.controller = None
        self.container_port = None
        self.member_pods = ()
        self.outcomes = []

    def add_finding(self, step: str, message: str, pod_names: list[str] | None = None) -> Finding:
        finding = Finding(step=step, message=message, pod_names=tuple(pod_names or ()))
        self.findings.append(finding)
        return finding
