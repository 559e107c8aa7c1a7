"""The reconcile loop body.

One reconcile classifies the node snapshot once, handles dead nodes one by
one, then runs the cluster-wide sub-flows. A failing sub-flow does not stop
the others; all failures are raised together at the end.
"""
import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from kubernetes.client import V1Node

from ...errors import ClusterwardError, ReconcileErrors
from ...gateway import KubeGateway
from ...utils import utcnow
from ..cluster.certs import CertificateAuthority, CertRotator
from ..cluster.clear import clear_node
from ..cluster.csr import approve_kubelet_csrs
from ..cluster.etcd import EtcdMembership
from ..cluster.hosttask import HostTaskExecutor
from ..cluster.internallb import InternalLoadBalancer
from ..cluster.markers import MarkerStore
from ..cluster.monitoring import scale_monitoring
from ..cluster.nodes import is_dead, is_master, is_ready, ready_counts, storage_eligible
from ..cluster.purge import NodePurger
from ..cluster.replication import ReplicationController
from ..cluster.storage import CephStorage
from . import suspend
from .config import OperatorConfig
from .suspend import SuspensionRegistry

logger = logging.getLogger("clusterward.reconciler")


class Reconciler:
    """Applies the operator's invariants to a snapshot of the cluster's nodes."""

    def __init__(
        self,
        config: OperatorConfig,
        gateway: KubeGateway,
        registry: Optional[SuspensionRegistry] = None,
        cancel: Optional[threading.Event] = None,
        authority: Optional[CertificateAuthority] = None,
        purger: Optional[NodePurger] = None,
        executor: Optional[HostTaskExecutor] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.gateway = gateway
        self.registry = registry or SuspensionRegistry()
        self.cancel = cancel or threading.Event()
        self.clock = clock
        self._lock = threading.Lock()

        self.storage = CephStorage(gateway)
        self.purger = purger or NodePurger(
            gateway, storage=self.storage, etcd=EtcdMembership(config.certificates_dir)
        )
        self.replication = ReplicationController(
            gateway,
            self.storage,
            block_pool=config.ceph_block_pool,
            filesystem=config.ceph_filesystem,
            object_store=config.ceph_object_store,
        )
        self.executor = executor or HostTaskExecutor(
            gateway,
            poll_interval=config.host_task_poll_interval,
            node_delay=config.host_task_node_delay,
        )
        self.cert_rotator = CertRotator(
            gateway,
            self.executor,
            MarkerStore(gateway, config.rotate_certs_namespace, clock=clock),
            image=config.rotate_certs_image,
            namespace=config.rotate_certs_namespace,
            ttl=config.rotate_certs_ttl,
            check_interval=config.rotate_certs_check_interval,
            binary=config.host_task_binary,
            authority=authority,
            secret_certificates=config.secret_certificates,
        )
        self.internal_lb = InternalLoadBalancer(
            gateway,
            self.executor,
            MarkerStore(gateway, config.host_task_namespace, clock=clock),
            image=config.host_task_image,
            namespace=config.host_task_namespace,
            haproxy_image=config.internal_load_balancer_haproxy_image,
            binary=config.host_task_binary,
        )

    def reconcile(self, nodes: Sequence[V1Node], full_reconcile: bool = False) -> None:
        """Run one reconcile over a node snapshot.

        Overlapping calls wait for each other.

        Raises:
            ReconcileErrors: If any node or sub-flow failed
        """
        with self._lock:
            errors: List[Exception] = []
            ready_masters, ready_workers = ready_counts(nodes)
            now = self.clock()
            logger.debug("Reconciling %d node(s): %d ready master(s), %d ready worker(s), full=%s",
                         len(nodes), ready_masters, ready_workers, full_reconcile)

            for node in nodes:
                if not is_dead(node, self.config.node_unreachable_toleration, now):
                    continue
                name = node.metadata.name
                self._subflow(errors, suspend.PURGE, self.config.purge_dead_nodes,
                              lambda: self._purge_dead_node(node, ready_masters, ready_workers))
                self._subflow(errors, suspend.CLEAR, self.config.clear_dead_nodes,
                              lambda: clear_node(self.gateway, name, now))

            self._subflow(errors, suspend.STORAGE, self.config.maintain_rook_storage_nodes,
                          lambda: self.reconcile_storage(nodes, full_reconcile))
            self._subflow(errors, suspend.CERTS, self.config.rotate_certs and full_reconcile,
                          lambda: self.cert_rotator.rotate_if_due(self.cancel))
            self._subflow(errors, suspend.INTERNAL_LB, self.config.enable_internal_load_balancer,
                          lambda: self.internal_lb.reconcile(nodes, self.cancel))
            self._subflow(errors, suspend.CSR, self.config.auto_approve_kubelet_csrs,
                          lambda: approve_kubelet_csrs(self.gateway))
            self._subflow(errors, suspend.PROMETHEUS, self.config.scale_prometheus,
                          lambda: scale_monitoring(self.gateway, len(nodes)))
            self._subflow(errors, suspend.ROOK_PRIORITY, bool(self.config.rook_priority_class),
                          lambda: self.storage.prioritize(self.config.rook_priority_class))

            if errors:
                raise ReconcileErrors(errors)

    def _subflow(self, errors: List[Exception], name: str, enabled: bool, run: Callable[[], object]) -> None:
        if not enabled:
            return
        if self.registry.is_suspended(name):
            logger.debug("Skipping %s: suspended", name)
            return
        try:
            run()
        except ClusterwardError as e:
            logger.error("%s failed: %s", name, e)
            errors.append(e)
        except Exception as e:
            logger.exception("%s failed: %s", name, e)
            errors.append(e)

    def purge_allowed(self, node: V1Node, ready_masters: int, ready_workers: int) -> bool:
        """Return False if purging the node would leave too few ready nodes of its role.

        Counts come from the reconcile's snapshot and are not re-read
        between purges in the same reconcile.
        """
        remaining = 1 if is_ready(node) else 0
        name = node.metadata.name
        if is_master(node):
            if ready_masters - remaining < self.config.min_ready_master_nodes:
                logger.info("Skipping auto-purge of master %s: %d ready masters", name, ready_masters)
                return False
        elif ready_workers - remaining < self.config.min_ready_worker_nodes:
            logger.info("Skipping auto-purge of worker %s: %d ready workers", name, ready_workers)
            return False
        return True

    def _purge_dead_node(self, node: V1Node, ready_masters: int, ready_workers: int) -> None:
        if not self.purge_allowed(node, ready_masters, ready_workers):
            return
        logger.info("Automatically purging dead node %s", node.metadata.name)
        self.purger.purge(node.metadata.name, storage=self.config.maintain_rook_storage_nodes)

    def reconcile_storage(self, nodes: Sequence[V1Node], full_reconcile: bool) -> None:
        """Use every eligible node for Ceph storage and match pool replication to OSD hosts."""
        names = [
            node.metadata.name for node in nodes
            if storage_eligible(node, self.config.rook_storage_nodes_label)
        ]
        count = self.storage.use_nodes_for_storage(names)
        self.storage.reconcile_mon_count(count)
        self.replication.adjust(
            count,
            self.config.min_ceph_pool_replication,
            self.config.max_ceph_pool_replication,
            full_reconcile,
        )
