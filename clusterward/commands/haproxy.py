"""
haproxy config and manifest generation, run on each node by the internal
load balancer host task.
"""
from typing import List

import typer

from clusterward.modules.cluster import haproxy

app = typer.Typer(help="Generate internal load balancer files")


def _hosts(values: List[str]) -> List[str]:
    # Accepts repeated flags or one comma separated list
    return [host for value in values for host in value.split(",") if host]


@app.command("generate-config")
def generate_config(
    primary_host: List[str] = typer.Option(..., "--primary-host", help="Control-plane address, repeatable"),
):
    """Print haproxy.cfg for the given control-plane addresses."""
    typer.echo(haproxy.generate_config(_hosts(primary_host)), nl=False)


@app.command("generate-manifest")
def generate_manifest(
    primary_host: List[str] = typer.Option(..., "--primary-host", help="Control-plane address, repeatable"),
    file: str = typer.Option(..., "--file", help="Static pod manifest to write"),
    image: str = typer.Option(haproxy.DEFAULT_HAPROXY_IMAGE, "--image", help="haproxy image"),
):
    """Write the haproxy static pod manifest if its config hash changed."""
    if haproxy.write_manifest(file, _hosts(primary_host), image):
        typer.echo(f"Wrote {file}")
    else:
        typer.echo(f"{file} is up to date")
