"""Guided diagnostic flow for an unreachable workload.

The flow is a fixed sequence of steps, each registered as a state of a
StateMachine. Every step receives the Session explicitly, records what it
learned there and then moves the machine on. Failures are funnelled through
a single error handler which decides whether a step is retried or the run
gives up.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Sequence

import click

from kubetrbl.core.config import Settings, get_settings
from kubetrbl.core.errors import InputError, KubetrblError, OperatorAbortError, OutOfRangeError
from kubetrbl.core.fsm import State, StateMachine
from kubetrbl.core.telemetry import get_tracer
from kubetrbl.models.k8s import PodRecord
from kubetrbl.models.session import Session
from kubetrbl.services.cluster import ClusterGateway, create_cluster_gateway
from kubetrbl.services.prompt import Prompter
from kubetrbl.services.resolver import (
    non_running_pods,
    not_ready_pods,
    pending_pods,
    resolve_container_port,
    resolve_controller,
    resolve_member_pods,
)
from kubetrbl.services.tunnel import KubernetesTunnelProvider
from kubetrbl.services.validator import TunnelValidator

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

# Step names, in flow order
WELCOME = "welcome"
ACQUIRE_CONNECTION = "acquire-connection"
SELECT_NAMESPACE = "select-namespace"
FETCH_PODS = "fetch-pods"
CHECK_PENDING = "check-pending"
CHECK_RUNNING = "check-running"
CHECK_READY = "check-ready"
SELECT_SERVICE = "select-service"
SELECT_SERVICE_PORT = "select-service-port"
RESOLVE_CONTROLLER = "resolve-controller"
RESOLVE_CONTAINER_PORT = "resolve-container-port"
RESOLVE_MEMBER_PODS = "resolve-member-pods"
VALIDATE_CONNECTIVITY = "validate-connectivity"
FINISH = "finish"

POD_CHECKS = (CHECK_PENDING, CHECK_RUNNING, CHECK_READY)

TROUBLESHOOTING_GUIDE_URL = "https://learnk8s.io/a/troubleshooting-kubernetes.pdf"

GatewayFactory = Callable[[str | None], ClusterGateway]
ValidatorFactory = Callable[[ClusterGateway], TunnelValidator]


class DiagnosticController:
    """Walks the operator from a kubeconfig to a probed container port.

    Example:
        ```python
        controller = DiagnosticController(ConsolePrompter())
        session = controller.run()
        for outcome in session.outcomes:
            print(outcome.pod_name, outcome.reachable)
        ```
    """

    def __init__(
        self,
        prompter: Prompter,
        settings: Settings | None = None,
        gateway_factory: GatewayFactory = create_cluster_gateway,
        validator_factory: ValidatorFactory | None = None,
        echo: Callable[[str], None] = click.echo,
        session: Session | None = None,
    ) -> None:
        """Initialize the controller and register every step.

        Args:
            prompter: Source of operator answers
            settings: Application settings (uses default if not provided)
            gateway_factory: Builds a connected gateway from a kubeconfig path
            validator_factory: Builds the tunnel validator for a gateway
            echo: Writes one line of operator-facing output
            session: Starting session, a fresh one if omitted
        """
        self.settings = settings or get_settings()
        self.prompter = prompter
        self.echo = echo
        self.session = session or Session(kubeconfig=self.settings.kubeconfig)
        self.gateway: ClusterGateway | None = None
        self._gateway_factory = gateway_factory
        self._validator_factory = validator_factory or self._default_validator
        self._validator: TunnelValidator | None = None
        self._failures: Counter[str] = Counter()

        self.machine = StateMachine(error_handler=self.handle_error)
        self._register_states()

    def _register_states(self) -> None:
        steps: dict[str, Callable[[Session], None]] = {
            WELCOME: self.welcome,
            SELECT_NAMESPACE: self.select_namespace,
            FETCH_PODS: self.fetch_pods,
            CHECK_PENDING: self.check_pending,
            CHECK_RUNNING: self.check_running,
            CHECK_READY: self.check_ready,
            SELECT_SERVICE: self.select_service,
            SELECT_SERVICE_PORT: self.select_service_port,
            RESOLVE_CONTROLLER: self.resolve_controller,
            RESOLVE_CONTAINER_PORT: self.resolve_container_port,
            RESOLVE_MEMBER_PODS: self.resolve_member_pods,
            VALIDATE_CONNECTIVITY: self.validate_connectivity,
            FINISH: self.finish,
        }
        for name, handler in steps.items():
            self.machine.register(name, State(on_enter=self._bind(name, handler)))

        # Reading the path and connecting are split so a bad kubeconfig
        # fails in the update hook and re-prompts from the enter hook.
        self.machine.register(
            ACQUIRE_CONNECTION,
            State(
                on_enter=self._bind(ACQUIRE_CONNECTION, self.read_kubeconfig),
                on_update=self._bind(ACQUIRE_CONNECTION, self.connect),
            ),
        )

    def _bind(self, name: str, handler: Callable[[Session], None]) -> Callable[[], None]:
        def hook() -> None:
            with tracer.start_as_current_span(f"step {name}"):
                handler(self.session)

        return hook

    def run(self) -> Session:
        """Run the whole flow and return the resulting session."""
        self.machine.change(WELCOME)
        return self.session

    # -------------------------------------------------------------------------
    # Flow helpers
    # -------------------------------------------------------------------------

    def _advance(self, name: str) -> None:
        self._failures.clear()
        self.machine.change(name)

    @property
    def _cluster(self) -> ClusterGateway:
        if self.gateway is None:
            raise KubetrblError("Not connected to a cluster yet")
        return self.gateway

    def _default_validator(self, gateway: ClusterGateway) -> TunnelValidator:
        return TunnelValidator(KubernetesTunnelProvider(gateway.core_api), settings=self.settings)

    def _choose(self, options: Sequence[str], prompt: str) -> int:
        """List options indexed from 0 and read a valid selection.

        Raises:
            InvalidInputError: If the answer is not a number
            OutOfRangeError: If the number is not a listed index
        """
        for i, option in enumerate(options):
            self.echo(f"{i}) {option}")
        index = self.prompter.read_index(prompt)
        if not 0 <= index < len(options):
            raise OutOfRangeError(index, len(options))
        return index

    def _check_pods(
        self,
        session: Session,
        step: str,
        affected: list[PodRecord],
        problem: str,
        next_step: str,
        all_clear: str,
    ) -> None:
        if not affected:
            self.echo(all_clear)
            self._advance(next_step)
            return

        names = [pod.name for pod in affected]
        for name in names:
            self.echo(f"### {problem.capitalize()} - {name}")
        session.add_finding(
            step, f"{len(names)} pod(s) {problem} in namespace {session.namespace}", names
        )
        logger.info("%s: %d pod(s) %s", step, len(names), problem)

        answer = self.prompter.read_line(
            "Fix the pods above, then re-check them? [y/N]", default="n"
        )
        if answer.lower() in ("y", "yes"):
            self._advance(FETCH_PODS)
        else:
            self._advance(FINISH)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def welcome(self, session: Session) -> None:
        self.echo("Welcome to kubetrbl.")
        self.echo("kubetrbl guides you through troubleshooting a Kubernetes deployment.")
        self.echo(f"Its checks follow the troubleshooting flow at {TROUBLESHOOTING_GUIDE_URL}.")
        self.echo("")
        self._advance(ACQUIRE_CONNECTION)

    def read_kubeconfig(self, session: Session) -> None:
        self.echo("We need to start by connecting to a Kubernetes cluster.")
        answer = self.prompter.read_line(
            "Enter the location of your KUBECONFIG file (blank for the default)",
            default=self.settings.kubeconfig,
        )
        session.kubeconfig = answer or None
        self.machine.update()

    def connect(self, session: Session) -> None:
        """Build the cluster gateway for the chosen kubeconfig."""
        self.gateway = self._gateway_factory(session.kubeconfig)
        self._validator = None
        logger.info("Connected using %s", session.kubeconfig or "default configuration")
        self._advance(SELECT_NAMESPACE)

    def select_namespace(self, session: Session) -> None:
        namespaces = self._cluster.list_namespaces()
        if not namespaces:
            self.echo("The cluster has no namespaces you can see.")
            session.add_finding(SELECT_NAMESPACE, "No namespaces are visible with these credentials")
            self._advance(FINISH)
            return

        index = self._choose(namespaces, "Choose the Kubernetes namespace of interest")
        session.reset_namespace()
        session.namespace = namespaces[index]
        self._advance(FETCH_PODS)

    def fetch_pods(self, session: Session) -> None:
        """Capture the pod snapshot every later step works from."""
        if not session.namespace:
            raise KubetrblError("No namespace selected")

        pods = self._cluster.list_pods(session.namespace)
        session.pods = tuple(pods)
        session.findings = [f for f in session.findings if f.step not in POD_CHECKS]
        self.echo(f"There are {len(pods)} pods in namespace {session.namespace}.")
        self._advance(CHECK_PENDING)

    def check_pending(self, session: Session) -> None:
        self._check_pods(
            session,
            CHECK_PENDING,
            pending_pods(session.pods),
            problem="pending",
            next_step=CHECK_RUNNING,
            all_clear="No pods are pending.",
        )

    def check_running(self, session: Session) -> None:
        self._check_pods(
            session,
            CHECK_RUNNING,
            non_running_pods(session.pods),
            problem="not running",
            next_step=CHECK_READY,
            all_clear="All pods are running.",
        )

    def check_ready(self, session: Session) -> None:
        self._check_pods(
            session,
            CHECK_READY,
            not_ready_pods(session.pods),
            problem="not ready",
            next_step=SELECT_SERVICE,
            all_clear="All pods are ready.",
        )

    def select_service(self, session: Session) -> None:
        services = self._cluster.list_services(session.namespace)
        if not services:
            self.echo(f"There are no services in namespace {session.namespace}.")
            session.add_finding(SELECT_SERVICE, f"Namespace {session.namespace} has no services")
            self._advance(FINISH)
            return

        index = self._choose([s.name for s in services], "Which service is unreachable?")
        session.service = services[index]
        session.service_port = None
        self._advance(SELECT_SERVICE_PORT)

    def select_service_port(self, session: Session) -> None:
        service = session.service
        if service is None:
            raise KubetrblError("No service selected")

        if not service.ports:
            self.echo(f"Service {service.name} exposes no ports, pick another one.")
            session.add_finding(SELECT_SERVICE_PORT, f"Service {service.name} exposes no ports")
            self._advance(SELECT_SERVICE)
            return

        index = self._choose([p.describe() for p in service.ports], "Select the service port")
        session.service_port = service.ports[index]
        self._advance(RESOLVE_CONTROLLER)

    def resolve_controller(self, session: Session) -> None:
        if session.service is None:
            raise KubetrblError("No service selected")

        controllers = self._cluster.list_controllers(session.namespace)
        controller = resolve_controller(
            session.service,
            controllers,
            label_key=self.settings.identity_label,
            policy=self.settings.controller_policy,
        )
        session.controller = controller
        self.echo(f"Service {session.service.name} is backed by deployment {controller.name}.")
        self._advance(RESOLVE_CONTAINER_PORT)

    def resolve_container_port(self, session: Session) -> None:
        if session.controller is None or session.service_port is None:
            raise KubetrblError("No deployment or service port resolved")

        port = resolve_container_port(session.controller, session.service_port)
        session.container_port = port
        self.echo(f"Service port {session.service_port.describe()} maps to container port {port}.")
        self._advance(RESOLVE_MEMBER_PODS)

    def resolve_member_pods(self, session: Session) -> None:
        controller = session.controller
        if controller is None:
            raise KubetrblError("No deployment resolved")

        label_key = self.settings.identity_label
        members = resolve_member_pods(controller, session.pods, label_key=label_key)
        session.member_pods = tuple(members)
        if members:
            self.echo(f"Found {len(members)} pod(s) for deployment {controller.name}:")
            for pod in members:
                self.echo(f"  {pod.name}")
        else:
            value = controller.labels.get(label_key, "<missing>")
            self.echo(f"No pods found for deployment {controller.name}.")
            session.add_finding(
                RESOLVE_MEMBER_PODS,
                f"Deployment {controller.name} has no pods labelled {label_key}={value}",
            )
        self._advance(VALIDATE_CONNECTIVITY)

    def validate_connectivity(self, session: Session) -> None:
        """Probe every member pod through its own tunnel."""
        if session.container_port is None:
            raise KubetrblError("No container port resolved")

        session.outcomes = []
        if session.member_pods:
            if self._validator is None:
                self._validator = self._validator_factory(self._cluster)
            self.echo(
                f"Probing {len(session.member_pods)} pod(s) on port {session.container_port} "
                f"at {self.settings.probe_path} ..."
            )
            for pod in session.member_pods:
                outcome = self._validator.probe_pod(
                    session.namespace, pod.name, session.container_port
                )
                session.outcomes.append(outcome)
                verdict = "reachable" if outcome.reachable else "UNREACHABLE"
                self.echo(f"  {pod.name}: {verdict} ({outcome.detail})")
        self._advance(FINISH)

    def finish(self, session: Session) -> None:
        """Print the summary. Terminal: no further transitions."""
        self.echo("")
        if session.namespace:
            self.echo(f"Summary for namespace {session.namespace}:")
        else:
            self.echo("Summary:")

        if not session.findings and not session.outcomes:
            self.echo("  Nothing to report.")
        for finding in session.findings:
            self.echo(f"  [{finding.step}] {finding.message}")
            for name in finding.pod_names:
                self.echo(f"    - {name}")
        for outcome in session.outcomes:
            verdict = "reachable" if outcome.reachable else "unreachable"
            self.echo(f"  {outcome.pod_name}: {verdict} ({outcome.detail})")
        if session.aborted:
            self.echo("The run was stopped before every check completed.")
        self.echo("See ya!")

    # -------------------------------------------------------------------------
    # Error handling
    # -------------------------------------------------------------------------

    def handle_error(self, machine: StateMachine, error: Exception) -> None:
        """Report a failed step, then retry it or end the run.

        Input mistakes are always re-prompted. Any other failure counts
        against the step, and past max_state_retries the run moves to the
        summary instead of retrying forever.
        """
        step = machine.state
        self.echo("An error occurred when troubleshooting your Kubernetes deployment.")
        self.echo(str(error))
        logger.debug("Step %s failed", step, exc_info=error)

        if step is None or step == FINISH:
            return

        if isinstance(error, OperatorAbortError):
            self.session.aborted = True
            machine.change(FINISH)
            return

        if not isinstance(error, InputError):
            self._failures[step] += 1
            limit = self.settings.max_state_retries
            if limit and self._failures[step] > limit:
                logger.warning("Giving up on %s after %d retries", step, limit)
                self.echo(f"Giving up on step {step} after {limit} retries.")
                self.session.aborted = True
                self.session.add_finding(step, f"Step failed repeatedly: {error}")
                machine.change(FINISH)
                return

        machine.change(step)
