"""Command-line entry point."""

import logging
import sys

import click

from kubetrbl import __version__
from kubetrbl.core.config import get_settings
from kubetrbl.core.telemetry import setup_telemetry
from kubetrbl.services.diagnostic import DiagnosticController
from kubetrbl.services.prompt import ConsolePrompter

logger = logging.getLogger(__name__)


@click.command()
@click.version_option(version=__version__, prog_name="kubetrbl")
@click.option("--kubeconfig", "-k", help="Kubeconfig file offered as the default answer")
@click.option("--probe-path", help="HTTP path probed on each pod")
@click.option("--ready-timeout", type=float, help="Seconds to wait for a tunnel to be ready")
@click.option("--max-retries", type=int, help="Retries per failing step, 0 for unlimited")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Diagnostic log level (logs go to stderr)",
)
def main(
    kubeconfig: str | None,
    probe_path: str | None,
    ready_timeout: float | None,
    max_retries: int | None,
    log_level: str | None,
) -> None:
    """Walk through troubleshooting an unreachable Kubernetes workload.

    The checks run in order: pods pending, pods not running, pods not ready,
    then the chosen service is traced to its deployment, container port and
    pods, and each pod is probed through a port-forward.
    """
    overrides = {
        "kubeconfig": kubeconfig,
        "probe_path": probe_path,
        "tunnel_ready_timeout_seconds": ready_timeout,
        "max_state_retries": max_retries,
        "log_level": log_level.upper() if log_level else None,
    }
    settings = get_settings().model_copy(
        update={key: value for key, value in overrides.items() if value is not None}
    )

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    setup_telemetry(settings)

    controller = DiagnosticController(ConsolePrompter(), settings=settings)
    session = controller.run()
    logger.info("Run finished in state %s", controller.machine.state)

    if session.aborted or any(not outcome.reachable for outcome in session.outcomes):
        sys.exit(1)


if __name__ == "__main__":
    main()
