import typer

from clusterward.errors import ClusterwardError
from clusterward.modules.cluster import rotate
from clusterward.utils import parse_duration


def rotate_certs(
    ttl: str = typer.Option("4320h", "--ttl", help="Rotate certificates expiring within this time"),
    hostname: str = typer.Option("", "--hostname", envvar="HOSTNAME", help="Node this pod runs on"),
):
    """Rotate this control-plane node's kubeadm certificates. Runs inside the host task pod."""
    try:
        rotate.rotate_certs(parse_duration(ttl), hostname, echo=typer.echo)
    except (OSError, ValueError, ClusterwardError) as e:
        typer.echo(f"Error: {e}")
        raise typer.Exit(1)
