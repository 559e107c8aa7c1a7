"""Ceph pool replication matched to the number of ready storage nodes."""
import logging
from typing import Any, Dict, List, Optional

from ...errors import CephENOENT
from ...gateway import KubeGateway
from .constants import (
    CEPH_DEVICE_HEALTH_METRICS_POOL,
    OBJECT_STORE_DATA_POOLS,
    OBJECT_STORE_METADATA_POOLS,
    OBJECT_STORE_ROOT_POOL,
    ROOK_CEPH_NS,
)
from .models import ReplicationTarget
from .storage import CephStorage

logger = logging.getLogger("clusterward.replication")


def object_store_pool_name(store: str, pool: str) -> str:
    # Pools starting with "." span object stores
    if pool.startswith("."):
        return pool
    return f"{store}.{pool}"


def _replicated_size(pool_spec: Optional[Dict[str, Any]]) -> int:
    if not pool_spec:
        return 0
    return int((pool_spec.get("replicated") or {}).get("size") or 0)


def _set_replicated_size(pool_spec: Dict[str, Any], size: int) -> None:
    pool_spec.setdefault("replicated", {})["size"] = size


class ReplicationController:
    """Keeps the replicated size of every managed pool at the target factor.

    A pool is written when its declared size differs from the target, or on
    a full reconcile. Writes update the custom resource and then set
    ``size`` and ``min_size`` on the live pool through the ceph CLI.
    """

    def __init__(self, gateway: KubeGateway, storage: CephStorage,
                 block_pool: str = "", filesystem: str = "", object_store: str = "",
                 namespace: str = ROOK_CEPH_NS):
        self.gateway = gateway
        self.storage = storage
        self.block_pool = block_pool
        self.filesystem = filesystem
        self.object_store = object_store
        self.namespace = namespace

    def adjust(self, ready_count: int, min_factor: int, max_factor: int,
               full_reconcile: bool = False) -> ReplicationTarget:
        """Apply the clamped replication factor to every managed pool.

        Returns:
            ReplicationTarget: The factor that was applied
        """
        target = ReplicationTarget.from_ready_count(ready_count, min_factor, max_factor)
        self.set_block_pool_replication(target, full_reconcile)
        self.set_filesystem_replication(target, full_reconcile)
        self.set_object_store_replication(target, full_reconcile)
        self.set_device_health_metrics_replication(target, full_reconcile)
        return target

    def set_pool_size(self, pool: str, target: ReplicationTarget, optional: bool = False) -> None:
        """Set size and min_size on a live pool.

        Args:
            pool: Ceph pool name
            target: Replication target
            optional: Tolerate the pool not existing
        """
        try:
            self.storage.exec_ceph("ceph", "osd", "pool", "set", pool, "size", str(target.factor))
            self.storage.exec_ceph("ceph", "osd", "pool", "set", pool, "min_size", str(target.min_size))
        except CephENOENT:
            if not optional:
                raise
            logger.debug("Pool %s does not exist, skipping", pool)

    def _log_change(self, kind: str, name: str, current: int, target: ReplicationTarget) -> None:
        if current != target.factor:
            logger.info("Changing %s %s replication level from %d to %d", kind, name, current, target.factor)
        else:
            logger.debug("Ensuring %s %s replication level is %d", kind, name, target.factor)

    def set_block_pool_replication(self, target: ReplicationTarget, full_reconcile: bool) -> None:
        if not self.block_pool:
            return
        pool = self.gateway.get_custom_object("cephblockpools", self.namespace, self.block_pool)
        if pool is None:
            return

        spec = pool.setdefault("spec", {})
        current = _replicated_size(spec)
        if current == target.factor and not full_reconcile:
            return

        self._log_change("CephBlockPool", self.block_pool, current, target)
        _set_replicated_size(spec, target.factor)
        self.gateway.replace_custom_object("cephblockpools", self.namespace, self.block_pool, pool)
        self.set_pool_size(self.block_pool, target)

    def set_filesystem_replication(self, target: ReplicationTarget, full_reconcile: bool) -> None:
        if not self.filesystem:
            return
        fs = self.gateway.get_custom_object("cephfilesystems", self.namespace, self.filesystem)
        if fs is None:
            return

        spec = fs.setdefault("spec", {})
        metadata_pool = spec.setdefault("metadataPool", {})
        data_pools = spec.setdefault("dataPools", []) or []

        current = _replicated_size(metadata_pool)
        changed = current != target.factor
        for data_pool in data_pools:
            if _replicated_size(data_pool) != target.factor:
                changed = True
        if not changed and not full_reconcile:
            return

        self._log_change("CephFilesystem", self.filesystem, current, target)
        _set_replicated_size(metadata_pool, target.factor)
        for data_pool in data_pools:
            _set_replicated_size(data_pool, target.factor)
        self.gateway.replace_custom_object("cephfilesystems", self.namespace, self.filesystem, fs)

        self.set_pool_size(f"{self.filesystem}-metadata", target)
        for i in range(max(len(data_pools), 1)):
            self.set_pool_size(f"{self.filesystem}-data{i}", target)

    def object_store_pools(self) -> List[str]:
        """Metadata pools of the object store, root pool first."""
        return [OBJECT_STORE_ROOT_POOL] + [
            object_store_pool_name(self.object_store, pool) for pool in OBJECT_STORE_METADATA_POOLS
        ]

    def set_object_store_replication(self, target: ReplicationTarget, full_reconcile: bool) -> None:
        if not self.object_store:
            return
        store = self.gateway.get_custom_object("cephobjectstores", self.namespace, self.object_store)
        if store is None:
            return

        spec = store.setdefault("spec", {})
        metadata_pool = spec.setdefault("metadataPool", {})
        data_pool = spec.setdefault("dataPool", {})

        current = _replicated_size(metadata_pool)
        changed = current != target.factor or _replicated_size(data_pool) != target.factor
        if not changed and not full_reconcile:
            return

        self._log_change("CephObjectStore", self.object_store, current, target)
        _set_replicated_size(metadata_pool, target.factor)
        _set_replicated_size(data_pool, target.factor)
        self.gateway.replace_custom_object("cephobjectstores", self.namespace, self.object_store, store)

        # Not every metadata pool exists, e.g. rgw.buckets.non-ec
        for pool in self.object_store_pools():
            self.set_pool_size(pool, target, optional=True)
        for pool in OBJECT_STORE_DATA_POOLS:
            self.set_pool_size(object_store_pool_name(self.object_store, pool), target)

    def set_device_health_metrics_replication(self, target: ReplicationTarget, full_reconcile: bool) -> None:
        # There is no custom resource to compare against
        if not full_reconcile:
            return
        logger.debug("Ensuring %s replication level is %d", CEPH_DEVICE_HEALTH_METRICS_POOL, target.factor)
        self.set_pool_size(CEPH_DEVICE_HEALTH_METRICS_POOL, target, optional=True)
