import logging
from datetime import datetime
from typing import Optional

from ...gateway import KubeGateway
from ...utils import as_aware, utcnow
from .constants import TERMINATING_POD_GRACE_SECONDS

logger = logging.getLogger("clusterward.clear")


def clear_node(gateway: KubeGateway, node_name: str, now: Optional[datetime] = None) -> int:
    """Force delete pods stuck terminating on a node.

    Only pods whose deletion timestamp is more than 30 seconds in the
    past are deleted; younger ones may still terminate gracefully.

    Returns:
        int: Number of pods deleted
    """
    now = as_aware(now) if now else utcnow()
    logger.debug("Deleting terminating pods on node %s", node_name)

    deleted = 0
    for pod in gateway.list_pods(field_selector=f"spec.nodeName={node_name}"):
        deletion = pod.metadata.deletion_timestamp
        if deletion is None:
            continue
        if (now - as_aware(deletion)).total_seconds() <= TERMINATING_POD_GRACE_SECONDS:
            continue
        logger.info("Force deleting pod %s/%s on node %s", pod.metadata.namespace, pod.metadata.name, node_name)
        gateway.delete_pod(pod.metadata.namespace, pod.metadata.name, grace_period_seconds=0)
        deleted += 1
    return deleted
