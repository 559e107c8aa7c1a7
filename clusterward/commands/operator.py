"""
Operator commands: the long-running reconcile loop and one-off reconciles.
"""
import logging
import signal
import threading
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from clusterward.config import Config
from clusterward.errors import ReconcileErrors
from clusterward.modules.cluster.models import OperatorStatus
from clusterward.modules.operator.config import OperatorConfig, set_config
from clusterward.modules.operator.poller import Poller
from clusterward.modules.operator.reconciler import Reconciler
from clusterward.modules.operator.suspend import SuspensionRegistry
from clusterward.utils import kube, redact_sensitive_data

app = typer.Typer(help="Run the cluster operator")
logger = logging.getLogger("clusterward.operator")


def load_operator_config(config_path: Optional[Path]) -> OperatorConfig:
    try:
        config = OperatorConfig.load(config_path)
    except FileNotFoundError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)
    except ValueError as e:
        typer.echo(f"❌ Invalid configuration: {e}", err=True)
        raise typer.Exit(1)
    set_config(config)
    return config


def serve_api(registry: SuspensionRegistry, status: OperatorStatus) -> threading.Thread:
    from clusterward.api.main import create_app

    api = create_app(registry, status)
    server = uvicorn.Server(
        uvicorn.Config(api, host=Config.API_HOST, port=Config.API_PORT, log_level="warning")
    )
    # uvicorn only installs signal handlers on the main thread
    thread = threading.Thread(target=server.run, name="clusterward-api", daemon=True)
    thread.start()
    logger.info("Serving API on %s:%s", Config.API_HOST, Config.API_PORT)
    return thread


@app.command("run")
def run_operator(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Operator config file"),
    kubeconfig: Optional[str] = typer.Option(None, "--kubeconfig", help="Kubeconfig path, defaults to in-cluster"),
    api: bool = typer.Option(True, "--api/--no-api", help="Serve the status and suspension API"),
    max_ticks: Optional[int] = typer.Option(None, "--max-ticks", help="Stop after this many reconciles"),
):
    """Reconcile the cluster on an interval until interrupted."""
    config = load_operator_config(config_path)
    logger.debug("Operator config: %s", redact_sensitive_data(config.model_dump(mode="json")))
    if api:
        try:
            Config.validate()
        except ValueError as e:
            typer.echo(f"❌ {e}", err=True)
            raise typer.Exit(1)

    gateway = kube.connect(kubeconfig)
    cancel = threading.Event()
    registry = SuspensionRegistry()
    status = OperatorStatus()
    reconciler = Reconciler(config, gateway, registry=registry, cancel=cancel)
    poller = Poller(reconciler, gateway, config.reconcile_interval,
                    full_reconcile_every=config.full_reconcile_every, status=status)

    def _stop(signum, frame):
        logger.info("Received signal %s, stopping", signum)
        cancel.set()

    previous = {sig: signal.signal(sig, _stop) for sig in (signal.SIGTERM, signal.SIGINT)}

    if api:
        serve_api(registry, status)

    typer.echo("🚀 Starting operator")
    try:
        ticks = poller.run(cancel, max_ticks=max_ticks)
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    typer.echo(f"✅ Operator stopped after {ticks} reconcile(s)")


@app.command("reconcile-once")
def reconcile_once(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Operator config file"),
    kubeconfig: Optional[str] = typer.Option(None, "--kubeconfig", help="Kubeconfig path, defaults to in-cluster"),
    full: bool = typer.Option(False, "--full", help="Re-apply state even when nothing changed"),
):
    """Run a single reconcile and exit."""
    config = load_operator_config(config_path)
    gateway = kube.connect(kubeconfig)
    reconciler = Reconciler(config, gateway)

    try:
        reconciler.reconcile(gateway.list_nodes(), full_reconcile=full)
    except ReconcileErrors as e:
        for err in e.errors:
            typer.echo(f"❌ {err}", err=True)
        raise typer.Exit(1)
    typer.echo("✅ Reconcile complete")
