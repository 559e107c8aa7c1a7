"""Keeps the haproxy internal load balancer on every node pointed at the
current control-plane addresses."""
import logging
import threading
from typing import List, Optional, Sequence

from kubernetes.client import V1Node

from ...errors import ClusterwardError
from ...gateway import KubeGateway
from .constants import (
    HAPROXY_CONTAINER,
    HAPROXY_SELECTOR,
    HAPROXY_SIGHUP,
    KUBE_SYSTEM_NS,
    UPDATE_INTERNAL_LB,
)
from .haproxy import DEFAULT_HAPROXY_IMAGE
from .hosttask import HostTaskExecutor
from .markers import MarkerStore, node_fingerprint
from .models import HostMount, HostTask
from .nodes import internal_ip, is_master

logger = logging.getLogger("clusterward.internallb")

MANIFEST_PATH = "/host/etc/kubernetes/manifests/haproxy.yaml"
CONFIG_PATH = "/host/etc/haproxy/haproxy.cfg"


class InternalLoadBalancer:
    def __init__(self, gateway: KubeGateway, executor: HostTaskExecutor, markers: MarkerStore,
                 image: str, namespace: str, haproxy_image: str = DEFAULT_HAPROXY_IMAGE,
                 binary: str = "clusterward"):
        self.gateway = gateway
        self.executor = executor
        self.markers = markers
        self.image = image
        self.namespace = namespace
        self.haproxy_image = haproxy_image
        self.binary = binary

    def task(self, primaries: Sequence[str]) -> HostTask:
        hosts = ",".join(primaries)
        return HostTask(
            kind=UPDATE_INTERNAL_LB,
            image=self.image,
            namespace=self.namespace,
            init_command=[
                "/bin/bash", "-c",
                f"mkdir -p /host/etc/haproxy && {self.binary} haproxy generate-config "
                f"--primary-host={hosts} > {CONFIG_PATH}",
            ],
            command=[
                "/bin/bash", "-c",
                f"{self.binary} haproxy generate-manifest --primary-host={hosts} "
                f"--file {MANIFEST_PATH} --image={self.haproxy_image}",
            ],
            mounts=[HostMount(name="etc", host_path="/etc", mount_path="/host/etc")],
            container_name="manifest",
        )

    def reconcile(self, nodes: Sequence[V1Node], cancel: Optional[threading.Event] = None) -> bool:
        """Update every node if the set of nodes, roles or addresses changed.

        Returns:
            bool: True if an update ran
        """
        return self.markers.has_changed(
            UPDATE_INTERNAL_LB, node_fingerprint(nodes), lambda: self.update(nodes, cancel)
        )

    def update(self, nodes: Sequence[V1Node], cancel: Optional[threading.Event] = None) -> None:
        """Write haproxy.cfg and the haproxy manifest on all nodes, then reload haproxy."""
        primaries = [ip for ip in (internal_ip(n) for n in nodes if is_master(n)) if ip]
        if not primaries:
            logger.warning("Skipping update of internal loadbalancer: no primary hosts found")
            return

        logger.info("Running internal loadbalancer update task on all nodes")
        names: List[str] = [node.metadata.name for node in nodes]
        self.executor.run_on_nodes(names, self.task(primaries), cancel)

        try:
            self.sighup_haproxy()
        except ClusterwardError as e:
            logger.warning("Failed to send SIGHUP to haproxy pods: %s", e)
            return
        logger.info("Successfully completed internal loadbalancer update task on all nodes")

    def sighup_haproxy(self) -> None:
        pods = self.gateway.list_pods(KUBE_SYSTEM_NS, label_selector=HAPROXY_SELECTOR)
        if not pods:
            raise ClusterwardError("found no haproxy pods")
        for pod in pods:
            code, _, stderr = self.gateway.exec_in_pod(
                KUBE_SYSTEM_NS, pod.metadata.name, HAPROXY_CONTAINER, list(HAPROXY_SIGHUP)
            )
            if code != 0:
                raise ClusterwardError(f"exec pod {pod.metadata.name}: exit code {code}, stderr={stderr!r}")
