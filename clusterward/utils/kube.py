import os
from pathlib import Path
from typing import Optional

from kubernetes import config


def load_kubeconfig(path: Optional[str] = None) -> str:
    """
    Load Kubernetes client configuration.

    Order: an explicit kubeconfig path, the KUBECONFIG_CONTENT env var,
    the in-cluster service account, then the default kubeconfig.
    Returns a description of the source that was used.
    """
    # Local path loading
    if path:
        resolved = Path(os.path.expanduser(path)).resolve()
        if not resolved.exists():
            raise FileNotFoundError(f"Kubeconfig not found: {resolved}")
        config.load_kube_config(config_file=str(resolved))
        return str(resolved)

    # CI/CD secret-based loading
    if "KUBECONFIG_CONTENT" in os.environ:
        temp_path = "/tmp/ci-kubeconfig.yaml"
        with open(temp_path, "w") as f:
            f.write(os.environ["KUBECONFIG_CONTENT"])
        config.load_kube_config(config_file=temp_path)
        return temp_path

    try:
        config.load_incluster_config()
        return "in-cluster"
    except config.ConfigException:
        config.load_kube_config()
        return os.environ.get("KUBECONFIG", "~/.kube/config")


def connect(kubeconfig: Optional[str] = None):
    """Load client configuration and return a gateway over the default API client."""
    from clusterward.gateway import KubeGateway

    load_kubeconfig(kubeconfig)
    return KubeGateway()
