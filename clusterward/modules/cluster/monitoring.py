"""Prometheus and Alertmanager replicas follow the node count."""
import logging

from ...errors import ClusterwardError
from ...gateway import KubeGateway

logger = logging.getLogger("clusterward.monitoring")

MONITORING_NS = "monitoring"
MONITORING_GROUP = "monitoring.coreos.com"
MONITORING_VERSION = "v1"

PROMETHEUS_NAME = "k8s"
ALERTMANAGER_NAME = "prometheus-alertmanager"
MAX_PROMETHEUS_REPLICAS = 2
MAX_ALERTMANAGER_REPLICAS = 3


def scale_monitoring(gateway: KubeGateway, node_count: int) -> None:
    """Scale Prometheus to min(2, nodes) and Alertmanager to min(3, nodes).

    Either resource may be missing, in which case it is skipped.
    """
    scale_replicas(gateway, "prometheuses", PROMETHEUS_NAME, min(MAX_PROMETHEUS_REPLICAS, node_count))
    scale_replicas(gateway, "alertmanagers", ALERTMANAGER_NAME, min(MAX_ALERTMANAGER_REPLICAS, node_count))


def scale_replicas(gateway: KubeGateway, plural: str, name: str, replicas: int) -> bool:
    """Set spec.replicas on a monitoring custom resource.

    Returns:
        bool: True if the resource was updated
    """
    obj = gateway.get_custom_object(plural, MONITORING_NS, name,
                                    group=MONITORING_GROUP, version=MONITORING_VERSION)
    if obj is None:
        logger.debug("%s %s/%s not found", plural, MONITORING_NS, name)
        return False

    spec = obj.setdefault("spec", {})
    current = spec.get("replicas")
    if isinstance(current, bool) or not isinstance(current, int):
        raise ClusterwardError(f"failed to parse {plural} {name} replicas: {current!r}")
    if current == replicas:
        return False

    logger.info("Scaling %s %s from %d to %d replicas", plural, name, current, replicas)
    spec["replicas"] = replicas
    gateway.replace_custom_object(plural, MONITORING_NS, name, obj,
                                  group=MONITORING_GROUP, version=MONITORING_VERSION)
    return True
