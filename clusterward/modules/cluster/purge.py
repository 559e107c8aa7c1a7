"""Purge a departed node from the cluster.

Order matters: Ceph and etcd membership are removed before the Node is
deleted because the etcd step may need the Node's InternalIP. Completed
steps are not rolled back when a later one fails; the next reconcile
retries and each step is a no-op once done.
"""
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import yaml

from ...errors import ClusterwardError, PurgeError
from ...gateway import KubeGateway
from .constants import CONTROL_PLANE_ROLE_LABEL, HOSTNAME_LABEL
from .etcd import EtcdMembership
from .kubeadm import api_server_addresses_from_pods, remove_api_endpoint
from .models import PurgeTask
from .nodes import internal_ip, is_master
from .storage import CephStorage

logger = logging.getLogger("clusterward.purge")


def _unpin(pod_spec: Any, node_name: str) -> bool:
    selector = pod_spec.node_selector or {}
    if selector.get(HOSTNAME_LABEL) != node_name:
        return False
    del selector[HOSTNAME_LABEL]
    selector[CONTROL_PLANE_ROLE_LABEL] = ""
    pod_spec.node_selector = selector
    return True


def fix_pinned_workloads(gateway: KubeGateway, node_name: str) -> int:
    """Move workloads pinned to a node by hostname onto the control-plane role.

    Returns:
        int: Number of workloads updated
    """
    updated = 0
    for deploy in gateway.list_deployments():
        labels = deploy.metadata.labels or {}
        if labels.get("app") == "rook-ceph-osd":
            continue
        if _unpin(deploy.spec.template.spec, node_name):
            logger.info("Removing node %s selector from deployment %s/%s",
                        node_name, deploy.metadata.namespace, deploy.metadata.name)
            gateway.replace_deployment(deploy)
            updated += 1
    for sts in gateway.list_stateful_sets():
        if _unpin(sts.spec.template.spec, node_name):
            logger.info("Removing node %s selector from statefulset %s/%s",
                        node_name, sts.metadata.namespace, sts.metadata.name)
            gateway.replace_stateful_set(sts)
            updated += 1
    return updated


class NodePurger:
    """Runs the purge protocol for one node at a time."""

    def __init__(self, gateway: KubeGateway, storage: Optional[CephStorage] = None,
                 etcd: Optional[EtcdMembership] = None):
        self.gateway = gateway
        self.storage = storage or CephStorage(gateway)
        self.etcd = etcd or EtcdMembership()

    def purge(self, name: str, storage: bool = False) -> PurgeTask:
        """Remove a node from Ceph, etcd, kubeadm metadata and the API.

        Args:
            name: Node name
            storage: Whether the node may be a Rook/Ceph storage node

        Returns:
            PurgeTask: The completed task with its steps

        Raises:
            PurgeError: Naming the step that failed
        """
        logger.info("Purge node %r", name)
        task = PurgeTask(node_name=name, storage=storage)

        with self._step(task, "get node"):
            task.node = self.gateway.get_node(name)
        if task.node is None:
            logger.debug("Purge node %r: Node object not found", name)

        if storage:
            self._purge_storage(task)

        # Only a Node we can see without a control-plane label is certainly a worker
        task.maybe_master = task.node is None or is_master(task.node)
        if task.maybe_master:
            self._purge_control_plane(task)

        with self._step(task, "fix pinned workloads"):
            fix_pinned_workloads(self.gateway, name)

        if task.node is not None:
            with self._step(task, "delete node"):
                self.gateway.delete_node(name)
            logger.info("Purge node %r: deleted Kubernetes Node object", name)

        return task

    def _purge_storage(self, task: PurgeTask) -> None:
        name = task.node_name
        with self._step(task, "remove from CephCluster"):
            if self.storage.remove_storage_node(name):
                logger.info("Purge node %r: removed from CephCluster node storage list", name)

        with self._step(task, "delete OSD deployment"):
            osd_id = self.storage.delete_osd_deployment(name)

        if osd_id:
            with self._step(task, f"purge ceph osd {osd_id}"):
                self.storage.purge_osd(osd_id, name)
            logger.info("Purge node %r: ceph osd purge command executed", name)

    def _purge_control_plane(self, task: PurgeTask) -> None:
        name = task.node_name
        with self._step(task, "remove kubeadm API endpoint"):
            task.ip, task.remaining_ips = remove_api_endpoint(self.gateway, name)

        if not task.ip and task.node is not None:
            task.ip = internal_ip(task.node)
            if task.ip:
                logger.debug("Purge node %r: got ip from Node", name)

        if task.remaining_ips is None:
            with self._step(task, "get API server endpoints from pods"):
                addresses = api_server_addresses_from_pods(self.gateway)
            task.remaining_ips = [addr for addr in addresses if addr != task.ip]

        if task.ip:
            with self._step(task, "remove etcd member"):
                self.etcd.remove_peer(task.ip, task.remaining_ips)

    @contextmanager
    def _step(self, task: PurgeTask, step: str) -> Iterator[None]:
        try:
            yield
        except (ClusterwardError, ValueError, yaml.YAMLError) as e:
            logger.error("Purge node %r failed at %s after %s", task.node_name, step,
                         ", ".join(task.steps) or "no steps")
            raise PurgeError(task.node_name, step, e) from e
        task.complete(step)
