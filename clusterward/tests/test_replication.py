import pytest

from clusterward.modules.cluster.models import ReplicationTarget
from clusterward.modules.cluster.replication import ReplicationController, object_store_pool_name
from clusterward.modules.cluster.storage import CephStorage
from clusterward.tests.fakes import FakeGateway, add_ceph_tools


def _pools(size):
    return {
        ("cephblockpools", "rook-ceph", "replicapool"): {
            "spec": {"replicated": {"size": size}},
        },
        ("cephfilesystems", "rook-ceph", "rook-shared-fs"): {
            "spec": {
                "metadataPool": {"replicated": {"size": size}},
                "dataPools": [{"replicated": {"size": size}}],
            },
        },
        ("cephobjectstores", "rook-ceph", "replicated"): {
            "spec": {
                "metadataPool": {"replicated": {"size": size}},
                "dataPool": {"replicated": {"size": size}},
            },
        },
    }


def _controller(gateway):
    return ReplicationController(
        gateway,
        CephStorage(gateway),
        block_pool="replicapool",
        filesystem="rook-shared-fs",
        object_store="replicated",
    )


@pytest.fixture
def gateway():
    gateway = FakeGateway()
    add_ceph_tools(gateway)
    return gateway


@pytest.mark.parametrize("ready,expected", [(0, 1), (1, 1), (2, 2), (3, 3), (5, 3)])
def test_target_is_clamped(ready, expected):
    assert ReplicationTarget.from_ready_count(ready, 1, 3).factor == expected


def test_min_size():
    assert ReplicationTarget(1).min_size == 1
    assert ReplicationTarget(2).min_size == 2
    assert ReplicationTarget(3).min_size == 2


def test_object_store_pool_name():
    assert object_store_pool_name("replicated", "rgw.meta") == "replicated.rgw.meta"
    assert object_store_pool_name("replicated", ".rgw.root") == ".rgw.root"


def test_no_writes_when_pools_already_match(gateway):
    gateway.custom_objects.update(_pools(3))

    target = _controller(gateway).adjust(5, 1, 3)

    assert target.factor == 3
    assert gateway.called("replace_custom_object") == []
    assert gateway.called("exec_in_pod") == []


def test_scale_up_updates_resources_then_pools(gateway):
    gateway.custom_objects.update(_pools(1))

    _controller(gateway).adjust(2, 1, 3)

    for key in _pools(1):
        assert "'size': 2" in repr(gateway.custom_objects[key]["spec"])
    commands = [c[4] for c in gateway.called("exec_in_pod")]
    assert ("ceph", "osd", "pool", "set", "replicapool", "size", "2") in commands
    assert ("ceph", "osd", "pool", "set", "replicapool", "min_size", "2") in commands
    assert ("ceph", "osd", "pool", "set", "rook-shared-fs-metadata", "size", "2") in commands
    assert ("ceph", "osd", "pool", "set", "rook-shared-fs-data0", "size", "2") in commands
    assert ("ceph", "osd", "pool", "set", ".rgw.root", "size", "2") in commands
    assert ("ceph", "osd", "pool", "set", "replicated.rgw.buckets.data", "size", "2") in commands
    # device_health_metrics only on a full reconcile
    assert not any("device_health_metrics" in c for c in commands)


def test_adjust_is_idempotent(gateway):
    gateway.custom_objects.update(_pools(1))
    controller = _controller(gateway)
    controller.adjust(3, 1, 3)
    gateway.calls.clear()

    controller.adjust(3, 1, 3)

    assert gateway.called("replace_custom_object") == []


def test_full_reconcile_rewrites_and_tolerates_missing_pools(gateway):
    gateway.custom_objects.update(_pools(3))
    gateway.exec_results[("ceph", "osd", "pool", "set", "replicated.rgw.buckets.non-ec", "size", "3")] = (2, "", "")
    gateway.exec_results[("ceph", "osd", "pool", "set", "device_health_metrics", "size", "3")] = (2, "", "")

    _controller(gateway).adjust(3, 1, 3, full_reconcile=True)

    assert len(gateway.called("replace_custom_object")) == 3
    commands = [c[4] for c in gateway.called("exec_in_pod")]
    assert ("ceph", "osd", "pool", "set", "device_health_metrics", "size", "3") in commands


def test_missing_resources_are_skipped(gateway):
    _controller(gateway).adjust(3, 1, 3, full_reconcile=False)
    assert gateway.called("replace_custom_object") == []
    assert gateway.called("exec_in_pod") == []
