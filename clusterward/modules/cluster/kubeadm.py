"""kubeadm control-plane registration metadata."""
import logging
from typing import List, Optional, Tuple

import yaml

from ...gateway import KubeGateway
from .constants import (
    CLUSTER_STATUS_KEY,
    KUBE_APISERVER_ENDPOINT_ANNOTATION,
    KUBE_APISERVER_SELECTOR,
    KUBE_SYSTEM_NS,
    KUBEADM_CONFIG_MAP,
)

logger = logging.getLogger("clusterward.kubeadm")


def split_host_port(endpoint: str) -> Tuple[str, str]:
    """Split ``host:port`` or ``[v6host]:port``.

    Raises:
        ValueError: If the endpoint has no port
    """
    host, sep, port = endpoint.rpartition(":")
    if not sep or not host:
        raise ValueError(f"missing port in address {endpoint!r}")
    return host.strip("[]"), port


def join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def remove_api_endpoint(gateway: KubeGateway, node_name: str) -> Tuple[str, Optional[List[str]]]:
    """Remove a node's entry from the kubeadm ClusterStatus.

    Clusters from Kubernetes 1.22 on have no ClusterStatus; a missing
    ConfigMap or key yields no address and no remaining endpoints.

    Returns:
        Tuple of (removed advertise address or "", remaining addresses or None)
    """
    cm = gateway.get_config_map(KUBE_SYSTEM_NS, KUBEADM_CONFIG_MAP)
    if cm is None:
        logger.debug("ConfigMap %s/%s not found", KUBE_SYSTEM_NS, KUBEADM_CONFIG_MAP)
        return "", None

    data = cm.data or {}
    if CLUSTER_STATUS_KEY not in data:
        return "", None

    status = yaml.safe_load(data[CLUSTER_STATUS_KEY]) or {}
    endpoints = status.get("apiEndpoints") or {}

    ip = ""
    if node_name in endpoints:
        ip = (endpoints.pop(node_name) or {}).get("advertiseAddress", "")
        status["apiEndpoints"] = endpoints
        data[CLUSTER_STATUS_KEY] = yaml.safe_dump(status, default_flow_style=False)
        cm.data = data
        gateway.update_config_map(cm)
        logger.info("Purge node %r: kubeadm-config API endpoint removed", node_name)

    remaining = [ep.get("advertiseAddress", "") for ep in endpoints.values() if ep]
    return ip, [addr for addr in remaining if addr]


def api_server_addresses_from_pods(gateway: KubeGateway) -> List[str]:
    """Advertise addresses of the running kube-apiserver static pods."""
    addresses = []
    for pod in gateway.list_pods(KUBE_SYSTEM_NS, label_selector=KUBE_APISERVER_SELECTOR):
        annotations = pod.metadata.annotations or {}
        endpoint = annotations.get(KUBE_APISERVER_ENDPOINT_ANNOTATION)
        if not endpoint:
            continue
        host, _ = split_host_port(endpoint)
        addresses.append(host)
    return addresses
