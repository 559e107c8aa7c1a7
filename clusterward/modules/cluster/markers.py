"""Idempotency markers for cluster-wide tasks.

Each task kind owns one ConfigMap named after the kind. It holds either
the time the task was last attempted or a fingerprint of the state the
task last applied. Markers are created on first use and never deleted.
"""
import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from kubernetes.client import V1Node

from ...gateway import KubeGateway
from ...utils import format_rfc3339, parse_rfc3339, utcnow
from .constants import ROTATE_CERTS_LAST_ATTEMPTED
from .nodes import internal_ip, is_master

logger = logging.getLogger("clusterward.markers")


def node_fingerprint(nodes: Iterable[V1Node]) -> str:
    """Order-independent fingerprint of node names, roles and addresses."""
    props = [
        f"{node.metadata.name},{str(is_master(node)).lower()},{internal_ip(node)}"
        for node in nodes
    ]
    return " ".join(sorted(props))


class MarkerStore:
    """Reads and writes task markers in one namespace."""

    def __init__(self, gateway: KubeGateway, namespace: str,
                 clock: Callable[[], datetime] = utcnow):
        self.gateway = gateway
        self.namespace = namespace
        self.clock = clock

    def is_due(self, kind: str, check_interval: float, force: bool = False) -> bool:
        """Return True if the task should run now, recording the attempt.

        The first call for a kind creates the marker and reports due.

        Args:
            kind: Task kind, also the ConfigMap name
            check_interval: Minimum seconds between attempts
            force: Report due regardless of the last attempt

        Returns:
            bool: True if the caller should run the task
        """
        now = self.clock()
        cm = self.gateway.get_config_map(self.namespace, kind)
        if cm is None:
            logger.info("Creating %s marker in namespace %s", kind, self.namespace)
            self.gateway.create_config_map(
                self.namespace, kind, {ROTATE_CERTS_LAST_ATTEMPTED: format_rfc3339(now)}
            )
            return True

        data = cm.data or {}
        last = data.get(ROTATE_CERTS_LAST_ATTEMPTED, "")
        try:
            last_attempted = parse_rfc3339(last)
        except ValueError:
            logger.warning("Unparseable %s timestamp %r in marker %s, treating as due",
                           ROTATE_CERTS_LAST_ATTEMPTED, last, kind)
        else:
            if (now - last_attempted).total_seconds() < check_interval and not force:
                return False

        data[ROTATE_CERTS_LAST_ATTEMPTED] = format_rfc3339(now)
        cm.data = data
        self.gateway.update_config_map(cm)
        return True

    def has_changed(self, kind: str, fingerprint: str,
                    update: Optional[Callable[[], None]] = None) -> bool:
        """Run ``update`` if the fingerprint differs from the stored one.

        The first call for a kind stores an empty fingerprint and reports
        no change. The new fingerprint is persisted only after ``update``
        returns; if it raises, the marker is left as it was.

        Returns:
            bool: True if the fingerprint changed and the update ran
        """
        cm = self.gateway.get_config_map(self.namespace, kind)
        if cm is None:
            logger.info("Creating %s marker in namespace %s", kind, self.namespace)
            self.gateway.create_config_map(self.namespace, kind, {kind: ""})
            return False

        data = cm.data or {}
        if data.get(kind, "") == fingerprint:
            return False

        logger.debug("%s fingerprint changed: %r -> %r", kind, data.get(kind, ""), fingerprint)
        if update is not None:
            update()

        data[kind] = fingerprint
        cm.data = data
        self.gateway.update_config_map(cm)
        return True
