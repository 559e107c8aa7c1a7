import typer

from clusterward.errors import PurgeError
from clusterward.modules.cluster.etcd import EtcdMembership
from clusterward.modules.cluster.purge import NodePurger
from clusterward.utils import kube

app = typer.Typer(help="Remove departed nodes from the cluster")


@app.command("node")
def purge_node(
    name: str = typer.Argument(..., help="Node name"),
    storage: bool = typer.Option(False, "--storage/--no-storage", help="Also remove the node's Ceph OSDs"),
    certificates_dir: str = typer.Option("/etc/kubernetes/pki", help="Directory with the etcd client certificates"),
    kubeconfig: str = typer.Option(None, "--kubeconfig", help="Kubeconfig path"),
):
    """Purge a node from Ceph, etcd, kubeadm and the Kubernetes API."""
    gateway = kube.connect(kubeconfig)
    purger = NodePurger(gateway, etcd=EtcdMembership(certificates_dir))

    typer.echo(f"🧹 Purging node {name}")
    try:
        task = purger.purge(name, storage=storage)
    except PurgeError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)

    for step in task.steps:
        typer.echo(f"  ✔ {step}")
    typer.echo(f"✅ Purged node {name}")
