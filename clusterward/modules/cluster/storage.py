"""Rook/Ceph storage membership and ceph commands.

Ceph commands run in the Rook tools pod. Exit code 2 from ceph means the
named entity does not exist and is raised as CephENOENT so callers can
decide whether that matters.
"""
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from ...errors import CephENOENT, GatewayError, StorageError
from ...gateway import KubeGateway
from .constants import (
    CEPH_CLUSTER_NAME,
    CEPH_ENOENT_EXIT_CODE,
    CEPH_OSD_ID_LABEL,
    CEPH_OSD_SELECTOR,
    CEPH_TOOLS_CONTAINER,
    CEPH_TOOLS_SELECTOR,
    HOSTNAME_LABEL,
    ROOK_AGENT_DAEMON_SET,
    ROOK_CEPH_NS,
    ROOK_PRIORITY_SELECTORS,
)

logger = logging.getLogger("clusterward.storage")

CEPH_OSD_STATUS_RX = re.compile(r"^\s*\d+\s+(?P<host>\S+)")


def parse_osd_hosts(output: str) -> List[str]:
    """Return the unique hosts listed in ``ceph osd status`` output, in order."""
    hosts: List[str] = []
    for line in output.splitlines():
        match = CEPH_OSD_STATUS_RX.match(line.replace("|", " "))
        if match and match.group("host") not in hosts:
            hosts.append(match.group("host"))
    return hosts


class CephStorage:
    """Operations against the Rook CephCluster and the ceph CLI."""

    def __init__(self, gateway: KubeGateway, namespace: str = ROOK_CEPH_NS,
                 cluster_name: str = CEPH_CLUSTER_NAME):
        self.gateway = gateway
        self.namespace = namespace
        self.cluster_name = cluster_name

    def exec_ceph(self, *args: str) -> str:
        """Run a ceph command in the tools pod and return its stdout.

        Raises:
            CephENOENT: If the command exits with code 2
            StorageError: For any other failure
        """
        command = list(args)
        try:
            pods = self.gateway.list_pods(self.namespace, label_selector=CEPH_TOOLS_SELECTOR)
        except GatewayError as e:
            raise StorageError(f"list Rook tools pods: {e}") from e
        if not pods:
            raise StorageError("found no Rook tools pods for executing ceph commands")

        try:
            code, stdout, stderr = self.gateway.exec_in_pod(
                self.namespace, pods[0].metadata.name, CEPH_TOOLS_CONTAINER, command
            )
        except GatewayError as e:
            raise StorageError(f"exec {' '.join(command)}: {e}") from e

        if code == CEPH_ENOENT_EXIT_CODE:
            logger.debug("Rook ceph exec %r exited with code %d and stderr: %s", command, code, stderr)
            raise CephENOENT(f"exec {' '.join(command)}: {stderr.strip()}")
        if code != 0:
            logger.info("Rook ceph exec %r exited with code %d and stderr: %s", command, code, stderr)
            raise StorageError(f"exec {' '.join(command)}: exit code {code}: {stderr.strip()}")

        logger.debug("Rook ceph exec %r stdout: %s", command, stdout)
        return stdout

    def get_cluster(self) -> Optional[Dict[str, Any]]:
        return self.gateway.get_custom_object("cephclusters", self.namespace, self.cluster_name)

    def _storage_nodes(self, cluster: Dict[str, Any]) -> List[Dict[str, Any]]:
        storage = cluster.setdefault("spec", {}).setdefault("storage", {})
        return storage.setdefault("nodes", []) or []

    def use_nodes_for_storage(self, names: Sequence[str]) -> int:
        """Append nodes to the CephCluster storage list. Never removes nodes.

        Returns:
            int: Number of unique hosts running an OSD, which may exceed
            ``len(names)`` while a not ready node is still unpurged
        """
        cluster = self.get_cluster()
        if cluster is None:
            raise StorageError(f"CephCluster {self.namespace}/{self.cluster_name} not found")

        nodes = self._storage_nodes(cluster)
        existing = {node.get("name") for node in nodes}
        changed = False
        for name in names:
            if name not in existing:
                logger.info("Adding node %r to CephCluster node storage list", name)
                nodes.append({"name": name})
                existing.add(name)
                changed = True

        if changed:
            cluster["spec"]["storage"]["nodes"] = nodes
            cluster["spec"]["storage"]["useAllNodes"] = False
            self.gateway.replace_custom_object("cephclusters", self.namespace, self.cluster_name, cluster)

        return self.count_unique_hosts_with_osd()

    def count_unique_hosts_with_osd(self) -> int:
        return len(parse_osd_hosts(self.exec_ceph("ceph", "osd", "status")))

    def remove_storage_node(self, name: str) -> bool:
        """Remove a node from the CephCluster storage list. Returns True if it was listed."""
        cluster = self.get_cluster()
        if cluster is None:
            logger.debug("CephCluster not found, nothing to remove for node %s", name)
            return False

        nodes = self._storage_nodes(cluster)
        keep = [node for node in nodes if node.get("name") != name]
        if len(keep) == len(nodes):
            return False

        logger.info("Removing node %r from CephCluster storage list", name)
        cluster["spec"]["storage"]["nodes"] = keep
        self.gateway.replace_custom_object("cephclusters", self.namespace, self.cluster_name, cluster)
        return True

    def delete_osd_deployment(self, name: str) -> str:
        """Delete the OSD deployment pinned to a node.

        Returns:
            str: The OSD id from the deployment's labels, or an empty string
        """
        for deploy in self.gateway.list_deployments(self.namespace, label_selector=CEPH_OSD_SELECTOR):
            selector = deploy.spec.template.spec.node_selector or {}
            if selector.get(HOSTNAME_LABEL) != name:
                continue
            osd_id = (deploy.metadata.labels or {}).get(CEPH_OSD_ID_LABEL, "")
            self.gateway.delete_deployment(self.namespace, deploy.metadata.name)
            logger.info("Deleted OSD Deployment %s for node %s", deploy.metadata.name, name)
            return osd_id
        return ""

    def purge_osd(self, osd_id: str, hostname: str) -> None:
        """Mark an OSD down, purge it and drop its host from the CRUSH map."""
        try:
            self.exec_ceph("ceph", "osd", "down", osd_id)
        except StorageError as e:
            # The OSD is usually down already
            logger.debug("ceph osd down %s: %s", osd_id, e)

        self.exec_ceph("ceph", "osd", "purge", osd_id, "--yes-i-really-mean-it")

        try:
            self.exec_ceph("ceph", "osd", "crush", "rm", hostname)
        except CephENOENT:
            logger.debug("Host %s is not in the CRUSH map", hostname)

    def reconcile_mon_count(self, node_count: int) -> None:
        """One mon for clusters under three storage nodes, three otherwise. Never reduces."""
        count = 1 if node_count < 3 else 3
        cluster = self.get_cluster()
        if cluster is None:
            return

        mon = cluster.setdefault("spec", {}).setdefault("mon", {})
        current = int(mon.get("count") or 0)
        if current == count:
            return
        if current > count:
            logger.debug("Will not reduce mon count from %d to %d", current, count)
            return

        logger.info("Changing mon count from %d to %d", current, count)
        mon["count"] = count
        self.gateway.replace_custom_object("cephclusters", self.namespace, self.cluster_name, cluster)

    def prioritize(self, priority_class: str) -> None:
        """Give the Rook agent and the Ceph daemons a priority class.

        Objects that already have any priority class are left alone. At most
        one deployment per Ceph daemon type is changed per call.
        """
        agent = self.gateway.get_daemon_set(self.namespace, ROOK_AGENT_DAEMON_SET)
        if agent is None:
            logger.debug("%s daemonset not found", ROOK_AGENT_DAEMON_SET)
        elif agent.spec.template.spec.priority_class_name:
            logger.debug("%s daemonset has priority class %s",
                         ROOK_AGENT_DAEMON_SET, agent.spec.template.spec.priority_class_name)
        else:
            logger.info("Setting %s priority class %s", ROOK_AGENT_DAEMON_SET, priority_class)
            agent.spec.template.spec.priority_class_name = priority_class
            self.gateway.replace_daemon_set(agent)

        for selector in ROOK_PRIORITY_SELECTORS:
            for deploy in self.gateway.list_deployments(self.namespace, label_selector=selector):
                current = deploy.spec.template.spec.priority_class_name
                if current:
                    logger.debug("Deployment %s has priority class %s", deploy.metadata.name, current)
                    continue
                logger.info("Setting %s priority class %s", deploy.metadata.name, priority_class)
                deploy.spec.template.spec.priority_class_name = priority_class
                self.gateway.replace_deployment(deploy)
                break
