"""Point node kubeconfigs at a new API server address."""
import logging
import os
import subprocess
import threading
from typing import List, Optional, Sequence

import yaml
from kubernetes.client import V1Node

from .constants import SET_KUBECONFIG_SERVER
from .hosttask import HostTaskExecutor
from .models import HostMount, HostTask
from .nodes import is_master

logger = logging.getLogger("clusterward.kubeconfig")


def set_server(path: str, server: str) -> int:
    """Set the server of every cluster in a kubeconfig file.

    Returns:
        int: Number of clusters updated
    """
    with open(path) as f:
        config = yaml.safe_load(f) or {}

    clusters = config.get("clusters") or []
    for entry in clusters:
        entry.setdefault("cluster", {})["server"] = server

    with open(path, "w") as f:
        yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
    return len(clusters)


def rewrite_host_kubeconfigs(server: str, host_etc_dir: str = "/etc", admin: bool = False) -> List[str]:
    """Update kubelet.conf, and admin.conf on control-plane nodes.

    Returns:
        List of files updated
    """
    files = [os.path.join(host_etc_dir, "kubernetes/kubelet.conf")]
    if admin:
        files.append(os.path.join(host_etc_dir, "kubernetes/admin.conf"))

    for path in files:
        set_server(path, server)
        logger.info("Updated server in %s to %s", path, server)

    return files


def restart_kubelet() -> None:
    subprocess.run(["systemctl", "restart", "kubelet"], check=True)


class KubeconfigServerUpdater:
    """Runs the kubeconfig server rewrite as a host task on each node."""

    def __init__(self, executor: HostTaskExecutor, image: str, namespace: str,
                 binary: str = "clusterward"):
        self.executor = executor
        self.image = image
        self.namespace = namespace
        self.binary = binary

    def task(self, server: str, admin: bool) -> HostTask:
        return HostTask(
            kind=SET_KUBECONFIG_SERVER,
            image=self.image,
            namespace=self.namespace,
            command=[
                self.binary, "kubeconfig", "rewrite",
                f"--server={server}",
                "--host-etc-dir=/host/etc",
                "--admin" if admin else "--no-admin",
            ],
            mounts=[
                HostMount(name="var-run-dbus", host_path="/var/run/dbus", mount_path="/var/run/dbus"),
                HostMount(name="etc", host_path="/etc", mount_path="/host/etc"),
            ],
            privileged=True,
        )

    def set_server(self, nodes: Sequence[V1Node], server: str,
                   cancel: Optional[threading.Event] = None) -> None:
        """Rewrite kubeconfigs on every node, one node at a time."""
        logger.info("Scheduling %s task on %d node(s)", SET_KUBECONFIG_SERVER, len(nodes))
        self.executor.run_tasks(
            [(node.metadata.name, self.task(server, is_master(node))) for node in nodes], cancel
        )
        logger.info("Successfully completed %s task", SET_KUBECONFIG_SERVER)
