from __future__ import annotations

import logging
import signal
from typing import Optional

import typer
from kubernetes import client, config

from src.common.config import ControllerSettings
from src.common.logs import configure_logging

from .reconciler import Reconciler
from .runner import ControllerRunner

app = typer.Typer(help="Reconcile PersistentVolumeClaims for pods converted by the webhook.")

logger = logging.getLogger(__name__)


def load_kube_config(kubeconfig: Optional[str] = None) -> None:
    """Prefer in-cluster credentials; fall back to a kubeconfig file."""

    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


@app.command()
def run(
    namespace: Optional[str] = typer.Option(
        None,
        "--namespace",
        "-n",
        help="Only watch this namespace (default: WATCH_NAMESPACE or all namespaces).",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers",
        "-j",
        min=1,
        help="Concurrent reconcile workers (default: CONTROLLER_WORKERS or 2).",
    ),
    request_timeout: Optional[float] = typer.Option(
        None,
        "--request-timeout",
        help="Timeout in seconds for each API call (default: KUBE_REQUEST_TIMEOUT or 30).",
    ),
    kubeconfig: Optional[str] = typer.Option(
        None,
        "--kubeconfig",
        help="Kubeconfig file used outside the cluster.",
    ),
    record_events: bool = typer.Option(
        True,
        "--record-events/--no-record-events",
        help="Record a PVCProvisioned event on the pod after creating a claim.",
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (default: LOG_LEVEL or INFO)."),
) -> None:
    try:
        configure_logging(log_level)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--log-level") from exc
    try:
        settings = ControllerSettings.from_env(
            namespace=namespace, workers=workers, request_timeout=request_timeout
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    try:
        load_kube_config(kubeconfig)
    except config.ConfigException as exc:
        raise typer.BadParameter(f"No usable cluster configuration: {exc}") from exc

    core_api = client.CoreV1Api()
    reconciler = Reconciler(
        core_api,
        request_timeout=settings.request_timeout,
        record_events=record_events,
        api_client=core_api.api_client,
    )
    runner = ControllerRunner(core_api, reconciler, settings)

    def _handle_signal(signum, _frame) -> None:
        logger.info("Received signal %d; stopping", signum)
        runner.stop()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)
    runner.run()


if __name__ == "__main__":  # pragma: no cover
    app()
