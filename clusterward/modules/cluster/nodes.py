"""Node classification by taints and role labels.

Taint keys are matched exactly; no prefix or substring matching.
"""
from datetime import datetime
from typing import Iterable, Optional, Tuple

from kubernetes.client import V1Node

from ...utils import as_aware, utcnow
from .constants import (
    CONTROL_PLANE_ROLE_LABEL,
    MASTER_ROLE_LABEL,
    NOT_READY_TAINTS,
    UNREACHABLE_TAINT,
)


def _taints(node: V1Node) -> list:
    if node.spec is None or not node.spec.taints:
        return []
    return node.spec.taints


def _labels(node: V1Node) -> dict:
    if node.metadata is None or not node.metadata.labels:
        return {}
    return node.metadata.labels


def is_ready(node: V1Node) -> bool:
    """Return False if the node carries any not-ready taint, regardless of value."""
    return not any(taint.key in NOT_READY_TAINTS for taint in _taints(node))


def is_master(node: V1Node) -> bool:
    """Return True if either control-plane role label key is present."""
    labels = _labels(node)
    return MASTER_ROLE_LABEL in labels or CONTROL_PLANE_ROLE_LABEL in labels


def ready_counts(nodes: Iterable[V1Node]) -> Tuple[int, int]:
    """Count ready nodes by role.

    Returns:
        Tuple of (ready masters, ready workers)
    """
    masters = 0
    workers = 0
    for node in nodes:
        if not is_ready(node):
            continue
        if is_master(node):
            masters += 1
        else:
            workers += 1
    return masters, workers


def is_dead(node: V1Node, toleration: float, now: Optional[datetime] = None) -> bool:
    """Return True if the node has been unreachable for longer than toleration seconds.

    A taint added exactly ``toleration`` seconds ago is not dead yet.
    """
    now = as_aware(now) if now else utcnow()
    for taint in _taints(node):
        if taint.key != UNREACHABLE_TAINT:
            continue
        if taint.time_added is None:
            return False
        return (now - as_aware(taint.time_added)).total_seconds() > toleration
    return False


def internal_ip(node: V1Node) -> str:
    """Return the node's InternalIP address, or an empty string."""
    if node.status is None or not node.status.addresses:
        return ""
    for address in node.status.addresses:
        if address.type == "InternalIP":
            return address.address
    return ""


def storage_eligible(node: V1Node, label: Optional[str] = None) -> bool:
    """Return True if the node is ready and carries the storage label, when one is set.

    Args:
        node: Node to check
        label: Optional ``key=value`` (or bare ``key``) label selector
    """
    if not is_ready(node):
        return False
    if not label:
        return True
    key, _, value = label.partition("=")
    labels = _labels(node)
    if key not in labels:
        return False
    return not value or labels[key] == value
