import typer

from clusterward.errors import ClusterwardError
from clusterward.modules.cluster import kubeconfig
from clusterward.modules.cluster.hosttask import HostTaskExecutor
from clusterward.modules.operator.config import get_config
from clusterward.utils import kube

app = typer.Typer(help="Manage node kubeconfigs")


@app.command("set-server")
def set_server(
    server: str = typer.Option(..., "--server", help="New API server URL"),
    kubeconfig_path: str = typer.Option(None, "--kubeconfig", help="Kubeconfig path"),
):
    """Point kubelet and admin kubeconfigs on every node at a new API server."""
    config = get_config()
    gateway = kube.connect(kubeconfig_path)
    executor = HostTaskExecutor(
        gateway,
        poll_interval=config.host_task_poll_interval,
        node_delay=config.host_task_node_delay,
    )
    updater = kubeconfig.KubeconfigServerUpdater(
        executor, config.host_task_image, config.host_task_namespace, config.host_task_binary
    )

    try:
        updater.set_server(gateway.list_nodes(), server)
    except ClusterwardError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"✅ All nodes now use {server}")


@app.command("rewrite")
def rewrite(
    server: str = typer.Option(..., "--server", help="New API server URL"),
    host_etc_dir: str = typer.Option("/etc", "--host-etc-dir", help="Where the host's /etc is mounted"),
    admin: bool = typer.Option(False, "--admin/--no-admin", help="Also rewrite admin.conf"),
    restart_kubelet: bool = typer.Option(True, "--restart-kubelet/--no-restart-kubelet"),
):
    """Rewrite this host's kubeconfigs. Runs inside the host task pod."""
    try:
        for path in kubeconfig.rewrite_host_kubeconfigs(server, host_etc_dir, admin):
            typer.echo(f"Updated {path}")
        if restart_kubelet:
            typer.echo("Restarting kubelet")
            kubeconfig.restart_kubelet()
    except (OSError, ValueError, ClusterwardError) as e:
        typer.echo(f"Error: {e}")
        raise typer.Exit(1)
